"""Grid scan over (coupling, mass) with monotonicity pruning."""

from __future__ import annotations

from dataclasses import dataclass

from .config import ScanConfig
from .grid import ParameterGrid
from .pipeline import ParticleModel, ReflectionPipeline, preserved_parameters
from .reporting import NullReporter, Reporter


@dataclass(frozen=True)
class ScanSummary:
    evaluations: int
    rows_scanned: int
    evaluated_cells: tuple[tuple[int, int], ...]
    terminated_early: bool


def perform_scan(
    grid: ParameterGrid,
    particle: ParticleModel,
    pipeline: ReflectionPipeline,
    config: ScanConfig | None = None,
    reporter: Reporter | None = None,
) -> ScanSummary:
    """Fill ``grid`` with p-values, strongest coupling and heaviest mass first.

    Larger couplings and masses are assumed easier to exclude, which allows two
    shortcuts:

    * Within a row, the scan stops at the first non-excluded mass after an
      exclusion in that row, or once the loop counter ``j`` has moved more than
      one step past ``last_excluded_mass_index``. That index is kept across rows
      so the previous row's boundary bounds the search in the next one.
    * A row without any exclusion ends the whole scan.

    Every evaluation refreshes the rate model at ``config.rate_radius_points``
    by ``config.rate_velocity_points``.

    The particle's mass and coupling are restored on return, including when a
    collaborator raises. Collaborator exceptions are not caught.
    """
    config = config or ScanConfig()
    reporter = reporter or NullReporter()
    target = pipeline.target

    n_couplings, n_masses = grid.shape
    counter = 0
    rows_scanned = 0
    terminated_early = False
    evaluated: list[tuple[int, int]] = []
    last_excluded_mass_index = n_masses

    with preserved_parameters(particle, target), reporter.progress(grid.size, "Scanning parameter grid") as bar:
        for i in range(n_couplings):
            row_exclusion = False
            index_coupling = n_couplings - 1 - i
            particle.set_interaction_parameter(grid.coupling(index_coupling), target)
            rows_scanned += 1
            for j in range(n_masses):
                index_mass = n_masses - 1 - j
                particle.set_mass(grid.mass(index_mass))
                counter += 1
                reporter.cell_started(counter, grid, i, j)

                p = pipeline.p_value(
                    particle,
                    grid.sample_size,
                    config.rate_radius_points,
                    config.rate_velocity_points,
                )
                grid.set_p_value(index_coupling, index_mass, p, floor=config.p_value_floor)
                evaluated.append((index_coupling, index_mass))
                reporter.p_value(p)
                bar.update(1)

                if p < config.exclusion_threshold:
                    row_exclusion = True
                    last_excluded_mass_index = j
                elif row_exclusion or j > last_excluded_mass_index + 1:
                    break
            if not row_exclusion:
                terminated_early = i < n_couplings - 1
                break

    return ScanSummary(
        evaluations=counter,
        rows_scanned=rows_scanned,
        evaluated_cells=tuple(evaluated),
        terminated_early=terminated_early,
    )
