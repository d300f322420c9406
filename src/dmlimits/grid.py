"""Grid store for (coupling, mass) parameter scans."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import numpy as np


P_VALUE_FLOOR = 1.0e-100


def clamp_p_value(p: float, floor: float = P_VALUE_FLOOR) -> float:
    """Return 0.0 for p-values below ``floor``, otherwise ``p`` unchanged."""
    return 0.0 if p < floor else p


@dataclass
class ParameterGrid:
    """Mass and coupling axes with the p-value table indexed [coupling, mass].

    Both axes are sorted ascending on construction; duplicates are kept. The
    table starts at 1.0 everywhere, i.e. nothing is excluded until a scan says
    otherwise. Physical ranges are not validated.

    Attributes:
        masses: Candidate masses, ascending [natural units].
        couplings: Candidate couplings (cross sections), ascending [natural units].
        sample_size: Number of simulated particles per dataset.
        p_values: Array of shape (n_couplings, n_masses).
    """

    masses: np.ndarray
    couplings: np.ndarray
    sample_size: int
    p_values: np.ndarray = field(init=False)

    def __post_init__(self) -> None:
        self.masses = np.sort(np.asarray(self.masses, dtype=float).ravel(), kind="stable")
        self.couplings = np.sort(np.asarray(self.couplings, dtype=float).ravel(), kind="stable")
        self.p_values = np.ones((self.couplings.size, self.masses.size))

    @property
    def n_masses(self) -> int:
        return int(self.masses.size)

    @property
    def n_couplings(self) -> int:
        return int(self.couplings.size)

    @property
    def shape(self) -> tuple[int, int]:
        return (self.n_couplings, self.n_masses)

    @property
    def size(self) -> int:
        return self.n_couplings * self.n_masses

    def mass(self, index: int) -> float:
        return float(self.masses[index])

    def coupling(self, index: int) -> float:
        return float(self.couplings[index])

    def p_value(self, coupling_index: int, mass_index: int) -> float:
        return float(self.p_values[coupling_index, mass_index])

    def set_p_value(
        self,
        coupling_index: int,
        mass_index: int,
        p: float,
        floor: float = P_VALUE_FLOOR,
    ) -> float:
        """Store a clamped p-value and return the stored value."""
        stored = clamp_p_value(p, floor)
        self.p_values[coupling_index, mass_index] = stored
        return stored

    def replace(
        self,
        masses: Sequence[float],
        couplings: Sequence[float],
        p_values: np.ndarray,
    ) -> None:
        """Swap in new axes and table, e.g. after reading a p-value file."""
        masses = np.asarray(masses, dtype=float).ravel()
        couplings = np.asarray(couplings, dtype=float).ravel()
        p_values = np.asarray(p_values, dtype=float)
        if p_values.shape != (couplings.size, masses.size):
            raise ValueError(
                f"p-value table shape {p_values.shape} does not match axes "
                f"({couplings.size} couplings, {masses.size} masses)."
            )
        self.masses = masses
        self.couplings = couplings
        self.p_values = p_values.copy()
