"""Natural units (hbar = c = 1, energies in GeV) used throughout dmlimits.

Every physical quantity inside the package is stored in these units. Multiply
by a unit to enter a value (``1e-36 * cm**2``) and use :func:`in_units` to read
it back out (``in_units(sigma, cm**2)``).
"""

from __future__ import annotations

import numpy as np

GeV = 1.0
MeV = 1.0e-3 * GeV
keV = 1.0e-6 * GeV

# hbar * c = 1.973269804e-14 GeV cm
cm = 1.0 / 1.973269804e-14
meter = 100.0 * cm
km = 1000.0 * meter

# hbar = 6.582119569e-25 GeV s
sec = 1.0 / 6.582119569e-25
day = 86_400.0 * sec
year = 365.25 * day

kg = 5.609588604e26 * GeV
gram = 1.0e-3 * kg

proton_mass = 0.938272088 * GeV


def in_units(value, unit: float):
    """Express ``value`` (natural units) as a multiple of ``unit``."""
    return value / unit


def log_space(start: float, stop: float, num: int) -> np.ndarray:
    """Logarithmically spaced points from ``start`` to ``stop`` inclusive."""
    if num == 1:
        return np.array([float(start)])
    return np.geomspace(start, stop, num)
