"""Exclusion limits from a filled grid, or directly by root finding.

:func:`limit_curve` reduces a :class:`~dmlimits.grid.ParameterGrid` to a limit
curve. :class:`ReflectionLimit` skips the grid and solves
``p(coupling) = 1 - CL`` for each mass with Brent's method in log(coupling).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
from scipy.optimize import brentq

from .config import ScanConfig
from .grid import ParameterGrid
from .pipeline import ParticleModel, ReflectionPipeline, preserved_parameters
from .reporting import NullReporter, Reporter
from .units import GeV, cm, in_units, log_space


def limit_curve(grid: ParameterGrid, certainty_level: float, xtol_fraction: float = 0.01) -> np.ndarray:
    """Coupling at which p crosses ``1 - certainty_level``, for every mass that has one.

    A mass is kept only if the p-value in the largest-coupling row is below the
    threshold. The column is assumed to be monotonic in the coupling; this is
    not checked, so a non-monotonic column can be dropped or mislocated.

    Inside a kept column the p-values are linearly interpolated across the full
    coupling axis and the crossing is located with :func:`scipy.optimize.brentq`.
    ``ValueError`` (no sign change) and ``RuntimeError`` (no convergence) from
    the root finder propagate.

    Returns:
        Array of shape (n, 2) with rows (mass, coupling limit).
    """
    threshold = 1.0 - certainty_level
    couplings = grid.couplings
    limit: list[tuple[float, float]] = []
    for i in range(grid.n_masses):
        if grid.p_values[-1, i] < threshold:
            offsets = grid.p_values[:, i] - threshold
            coupling_limit = brentq(
                lambda coupling: float(np.interp(coupling, couplings, offsets)),
                couplings[0],
                couplings[-1],
                xtol=xtol_fraction * couplings[0],
            )
            limit.append((grid.mass(i), float(coupling_limit)))
    return np.array(limit, dtype=float).reshape(-1, 2)


@dataclass
class ReflectionLimit:
    """Direct upper limits for a list of masses, without building a grid.

    Attributes:
        sample_size: Simulated particles per p-value evaluation.
        masses: Masses to solve for [natural units].
        coupling_min, coupling_max: Search bracket for the coupling [natural units].
        certainty_level: Target confidence level, e.g. 0.9.
        log_xtol: Absolute root tolerance in log(coupling).
        limits: Limits computed so far, one per processed mass.
    """

    sample_size: int
    masses: np.ndarray
    coupling_min: float
    coupling_max: float
    certainty_level: float
    log_xtol: float = 1.0e-2
    limits: list[float] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.masses = np.asarray(self.masses, dtype=float).ravel()

    @classmethod
    def from_mass_range(
        cls,
        sample_size: int,
        mass_min: float,
        mass_max: float,
        n_masses: int,
        coupling_min: float,
        coupling_max: float,
        certainty_level: float,
        log_xtol: float = 1.0e-2,
    ) -> "ReflectionLimit":
        return cls(
            sample_size=sample_size,
            masses=log_space(mass_min, mass_max, n_masses),
            coupling_min=coupling_min,
            coupling_max=coupling_max,
            certainty_level=certainty_level,
            log_xtol=log_xtol,
        )

    @property
    def cl_percent(self) -> int:
        return round(100.0 * self.certainty_level)

    @property
    def curve(self) -> np.ndarray:
        n = len(self.limits)
        return np.column_stack([self.masses[:n], np.asarray(self.limits, dtype=float)]).reshape(-1, 2)

    def upper_limit(
        self,
        mass: float,
        particle: ParticleModel,
        pipeline: ReflectionPipeline,
        reporter: Reporter | None = None,
        config: ScanConfig | None = None,
    ) -> float:
        """Coupling at which the p-value for ``mass`` equals ``1 - certainty_level``.

        The rate-model resolution comes from ``config`` (defaults when omitted).
        """
        reporter = reporter or NullReporter()
        config = config or ScanConfig()
        threshold = 1.0 - self.certainty_level
        target = pipeline.target

        with preserved_parameters(particle, target):
            particle.set_mass(mass)

            def p_value_offset(log_coupling: float) -> float:
                particle.set_interaction_parameter(math.exp(log_coupling), target)
                p = pipeline.p_value(
                    particle,
                    self.sample_size,
                    config.rate_radius_points,
                    config.rate_velocity_points,
                )
                reporter.root_step(p)
                return p - threshold

            log_limit = brentq(
                p_value_offset,
                math.log(self.coupling_min),
                math.log(self.coupling_max),
                xtol=self.log_xtol,
            )
        return math.exp(log_limit)

    def compute_limit_curve(
        self,
        particle: ParticleModel,
        pipeline: ReflectionPipeline,
        reporter: Reporter | None = None,
        output_path: str | Path | None = None,
        config: ScanConfig | None = None,
    ) -> np.ndarray:
        """Solve every mass in turn, optionally streaming each result to ``output_path``.

        Each line is flushed as soon as its mass is done, so a crash keeps the
        limits found so far. A failing mass aborts the whole call. Limits from a
        previous call are discarded.
        """
        reporter = reporter or NullReporter()
        self.limits = []
        stream = open(output_path, "w", encoding="utf-8") if output_path is not None else None
        try:
            for mass in self.masses:
                limit = self.upper_limit(float(mass), particle, pipeline, reporter, config=config)
                self.limits.append(limit)
                reporter.limit(float(mass), limit)
                if stream is not None:
                    stream.write(f"{in_units(mass, GeV):.10e}\t{in_units(limit, cm * cm):.10e}\n")
                    stream.flush()
        finally:
            if stream is not None:
                stream.close()
        return self.curve
