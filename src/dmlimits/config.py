"""Configuration primitives for dark-matter parameter scans."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from pathlib import Path

import numpy as np

from .units import GeV, cm, log_space


REQUIRED_KEYS = ("sample_size", "cross_section_min", "cross_section_max", "cross_sections")


class ConfigurationError(ValueError):
    """Raised when a configuration file is missing a setting or has an invalid one."""


@dataclass(frozen=True)
class ScanConfig:
    """Holds tunable constants for the scan, limit and synthetic pipeline.

    Physical ranges are given in the units a user types: masses in GeV and
    cross sections in cm^2. The derived :attr:`mass_grid` and
    :attr:`coupling_grid` are converted to natural units.

    **Axes:**
    - mass_min, mass_max, masses: log-spaced mass axis [GeV]
    - cross_section_min, cross_section_max, cross_sections: log-spaced coupling axis [cm^2]

    **Scan heuristics:**
    - exclusion_threshold: p below this counts as excluded for pruning (~90% CL)
    - p_value_floor: p below this is stored as exactly 0

    **Rate model refresh:**
    - rate_radius_points, rate_velocity_points: interpolation table resolution

    **Limits:**
    - certainty_levels: confidence levels exported from a finished grid
    - limit_xtol_fraction: root tolerance as a fraction of the smallest coupling
    - reflection_masses: number of masses for the direct root-finder (0 disables it)
    - reflection_log_xtol: root tolerance in log(coupling)
    """

    run_id: str = "default"
    sample_size: int = 100

    mass_min: float = 0.5
    mass_max: float = 10.0
    masses: int = 8

    cross_section_min: float = 1.0e-38
    cross_section_max: float = 1.0e-30
    cross_sections: int = 9

    certainty_levels: tuple[float, ...] = (0.90, 0.95)

    exclusion_threshold: float = 0.1
    p_value_floor: float = 1.0e-100

    rate_radius_points: int = 1000
    rate_velocity_points: int = 50

    limit_xtol_fraction: float = 0.01
    reflection_masses: int = 4
    reflection_log_xtol: float = 1.0e-2

    seed: int = 1337

    _mass_grid: np.ndarray = field(init=False, repr=False, compare=False)
    _coupling_grid: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "certainty_levels", tuple(float(cl) for cl in self.certainty_levels))
        masses = log_space(self.mass_min, self.mass_max, self.masses) * GeV
        couplings = log_space(self.cross_section_min, self.cross_section_max, self.cross_sections) * cm * cm
        object.__setattr__(self, "_mass_grid", masses)
        object.__setattr__(self, "_coupling_grid", couplings)

    @property
    def mass_grid(self) -> np.ndarray:
        """Candidate masses in natural units."""
        return self._mass_grid

    @property
    def coupling_grid(self) -> np.ndarray:
        """Candidate cross sections in natural units."""
        return self._coupling_grid

    @property
    def coupling_min(self) -> float:
        return self.cross_section_min * cm * cm

    @property
    def coupling_max(self) -> float:
        return self.cross_section_max * cm * cm


def config_from_mapping(settings: dict) -> ScanConfig:
    for key in REQUIRED_KEYS:
        if key not in settings:
            raise ConfigurationError(f"No '{key}' setting in configuration file.")

    known = {f.name for f in fields(ScanConfig) if f.init}
    unknown = sorted(set(settings) - known)
    if unknown:
        raise ConfigurationError(f"Unknown configuration setting(s): {', '.join(unknown)}")

    try:
        return ScanConfig(**settings)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def load_config(path: str | Path) -> ScanConfig:
    """Read a JSON configuration file into a :class:`ScanConfig`."""
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Configuration file not found: {path}")
    try:
        settings = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Could not parse configuration file {path}: {e}") from e
    if not isinstance(settings, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a JSON object.")
    return config_from_mapping(settings)
