"""Analysis routines orchestrating a full scan-and-limit run."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import matplotlib.pyplot as plt
import numpy as np

from .config import ScanConfig
from .data_io import export_limits, export_p_values, export_reflection_limit, results_directory
from .grid import ParameterGrid
from .limits import ReflectionLimit, limit_curve
from .pipeline import ParticleModel, ReflectionPipeline
from .reporting import Reporter, print_limit_tables, render_grid, reporter_for_rank
from .scan import ScanSummary, perform_scan
from .synthetic_data import make_synthetic_pipeline
from .units import GeV, cm, in_units


@dataclass(slots=True)
class AnalysisArtifacts:
    config: ScanConfig
    grid: ParameterGrid
    scan_summary: ScanSummary
    limit_curves: Dict[float, np.ndarray]
    reflection: Optional[ReflectionLimit]
    output_dir: Path
    written_files: list[Path]


class LimitAnalysis:
    def __init__(
        self,
        config: ScanConfig | None = None,
        particle: ParticleModel | None = None,
        pipeline: ReflectionPipeline | None = None,
        reporter: Reporter | None = None,
    ) -> None:
        self.config = config or ScanConfig()
        if particle is None or pipeline is None:
            particle, pipeline = make_synthetic_pipeline(self.config)
        self.particle = particle
        self.pipeline = pipeline
        self.reporter = reporter or reporter_for_rank(0, threshold=self.config.exclusion_threshold)

    def _plot_p_value_grid(self, grid: ParameterGrid, out_path: Path) -> None:
        masses = in_units(grid.masses, GeV)
        couplings = in_units(grid.couplings, cm * cm)
        plt.figure(figsize=(7.5, 5.0))
        mesh = plt.pcolormesh(masses, couplings, grid.p_values, shading="nearest", cmap="viridis", vmin=0.0, vmax=1.0)
        plt.colorbar(mesh, label="p-value")
        plt.xscale("log")
        plt.yscale("log")
        plt.xlabel("DM mass [GeV]")
        plt.ylabel("Cross section [cm$^2$]")
        plt.title("p-value grid")
        plt.tight_layout()
        plt.savefig(out_path)
        plt.close()

    def _plot_limits(
        self,
        curves: Dict[float, np.ndarray],
        reflection: Optional[ReflectionLimit],
        out_path: Path,
    ) -> None:
        plt.figure(figsize=(7.5, 5.0))
        for certainty_level, curve in curves.items():
            if curve.size == 0:
                continue
            plt.plot(
                in_units(curve[:, 0], GeV),
                in_units(curve[:, 1], cm * cm),
                "o-",
                linewidth=2.0,
                label=f"Grid scan ({round(100 * certainty_level)}% CL)",
            )
        if reflection is not None and reflection.limits:
            curve = reflection.curve
            plt.plot(
                in_units(curve[:, 0], GeV),
                in_units(curve[:, 1], cm * cm),
                "^--",
                linewidth=2.0,
                label=f"Direct ({reflection.cl_percent}% CL)",
            )
        plt.xscale("log")
        plt.yscale("log")
        plt.xlabel("DM mass [GeV]")
        plt.ylabel("Cross section [cm$^2$]")
        plt.title("Exclusion limits")
        plt.grid(True, alpha=0.3)
        plt.legend()
        plt.tight_layout()
        plt.savefig(out_path)
        plt.close()

    def run(self, output_dir: str | Path = "results") -> AnalysisArtifacts:
        config = self.config
        reporter = self.reporter
        reporter.summary(config)

        grid = ParameterGrid(config.mass_grid, config.coupling_grid, config.sample_size)
        scan_summary = perform_scan(grid, self.particle, self.pipeline, config=config, reporter=reporter)
        reporter.message(f"\nScan finished after {scan_summary.evaluations} evaluations.")
        reporter.message(render_grid(grid, threshold=config.exclusion_threshold))

        curves = {
            cl: limit_curve(grid, cl, xtol_fraction=config.limit_xtol_fraction)
            for cl in config.certainty_levels
        }
        print_limit_tables(curves.items(), reporter)

        run_dir = Path(output_dir) / config.run_id
        written: list[Path] = []
        if reporter.is_primary:
            run_dir = results_directory(output_dir, config.run_id)
            written.extend(export_p_values(grid, run_dir))
            written.extend(
                export_limits(grid, run_dir, config.certainty_levels, xtol_fraction=config.limit_xtol_fraction).values()
            )

        reflection: Optional[ReflectionLimit] = None
        if config.reflection_masses > 0:
            reflection = ReflectionLimit.from_mass_range(
                config.sample_size,
                config.mass_grid[0],
                config.mass_grid[-1],
                config.reflection_masses,
                config.coupling_min,
                config.coupling_max,
                config.certainty_levels[0],
                log_xtol=config.reflection_log_xtol,
            )
            stream_path = run_dir / f"Reflection_Limit_{reflection.cl_percent}.txt" if reporter.is_primary else None
            reporter.message(f"\nDirect limits ({reflection.cl_percent}% CL):")
            reflection.compute_limit_curve(
                self.particle, self.pipeline, reporter, output_path=stream_path, config=config
            )
            if reporter.is_primary:
                written.append(export_reflection_limit(reflection, run_dir))

        if reporter.is_primary:
            grid_plot = run_dir / "p_value_grid.png"
            limits_plot = run_dir / "limits.png"
            self._plot_p_value_grid(grid, grid_plot)
            self._plot_limits(curves, reflection, limits_plot)
            written.extend([grid_plot, limits_plot])

        return AnalysisArtifacts(
            config=config,
            grid=grid,
            scan_summary=scan_summary,
            limit_curves=curves,
            reflection=reflection,
            output_dir=run_dir,
            written_files=written,
        )


def run_synthetic_pipeline(
    output_dir: str | Path = "results",
    config: ScanConfig | None = None,
    rank: int = 0,
) -> AnalysisArtifacts:
    config = config or ScanConfig()
    reporter = reporter_for_rank(rank, threshold=config.exclusion_threshold)
    analysis = LimitAnalysis(config=config, reporter=reporter)
    return analysis.run(output_dir=output_dir)
