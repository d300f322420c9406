"""
Basic Scan Example for dmlimits

This script demonstrates the fundamental workflow:
1. Build a configuration and the synthetic collaborators
2. Scan the (cross section, mass) grid
3. Interpolate exclusion limits from the grid
4. Compute a few limits directly with the root finder
5. Save and reload the p-value grid
"""

import tempfile

from dmlimits import ParameterGrid, ReflectionLimit, ScanConfig, limit_curve, perform_scan
from dmlimits.data_io import export_p_values, import_p_values
from dmlimits.reporting import ConsoleReporter, render_grid, summarize_limit_curve
from dmlimits.synthetic_data import make_synthetic_pipeline


def main():
    print("=" * 60)
    print("dmlimits Basic Scan Example")
    print("=" * 60)

    # Step 1: Configuration and collaborators
    print("\n1. Building configuration...")
    config = ScanConfig(
        run_id="example",
        sample_size=200,
        masses=6,
        cross_sections=8,
        rate_radius_points=200,
        rate_velocity_points=20,
    )
    particle, pipeline = make_synthetic_pipeline(config)
    reporter = ConsoleReporter(verbosity=1, threshold=config.exclusion_threshold)
    print(f"   Grid: {config.cross_sections} cross sections x {config.masses} masses")

    # Step 2: Scan
    print("\n2. Scanning parameter grid...")
    grid = ParameterGrid(config.mass_grid, config.coupling_grid, config.sample_size)
    summary = perform_scan(grid, particle, pipeline, config=config, reporter=reporter)
    print(f"   Evaluations: {summary.evaluations} of {grid.size} cells")
    print(render_grid(grid, threshold=config.exclusion_threshold))

    # Step 3: Interpolated limits
    print("\n3. Interpolating limits...")
    curve = limit_curve(grid, 0.90, xtol_fraction=config.limit_xtol_fraction)
    print(summarize_limit_curve(curve, 0.90))

    # Step 4: Direct limits
    print("\n4. Direct limits for three masses...")
    reflection = ReflectionLimit.from_mass_range(
        config.sample_size,
        config.mass_grid[0],
        config.mass_grid[-1],
        3,
        config.coupling_min,
        config.coupling_max,
        0.90,
    )
    reflection.compute_limit_curve(particle, pipeline, reporter, config=config)

    # Step 5: Persistence
    print("\n5. Saving and reloading p-values...")
    with tempfile.TemporaryDirectory() as directory:
        export_p_values(grid, directory)
        reloaded = ParameterGrid([1.0], [1.0], config.sample_size)
        import_p_values(reloaded, directory)
        print(f"   Reloaded grid shape: {reloaded.shape}")

    print("\n" + "=" * 60)
    print("Example complete!")
    print("=" * 60)


if __name__ == "__main__":
    main()
