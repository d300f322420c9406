"""Command-line entry point for running a synthetic scan and limit analysis."""

from __future__ import annotations

import argparse
import os
import sys
import time
from pathlib import Path

from .analysis import run_synthetic_pipeline
from .config import ConfigurationError, ScanConfig, load_config
from .units import GeV, cm, in_units


def format_elapsed(seconds: float) -> str:
    """Wall-clock time of a scan, e.g. ``12.34s``, ``3m 04s`` or ``1d 02h 03m``."""
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes, secs = divmod(int(round(seconds)), 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)
    if days:
        return f"{days}d {hours:02d}h {minutes:02d}m"
    if hours:
        return f"{hours}h {minutes:02d}m {secs:02d}s"
    return f"{minutes}m {secs:02d}s"


def print_banner(title: str, rule: str = "=", width: int = 70) -> None:
    print(f"\n{rule * width}\n  {title}\n{rule * width}")


def print_summary(artifacts, elapsed: float) -> None:
    """Print analysis summary statistics."""
    print_banner("Analysis Summary")

    print(f"\nRuntime: {format_elapsed(elapsed)}")
    print(f"Output Directory: {artifacts.output_dir}")

    summary = artifacts.scan_summary
    n_couplings, n_masses = artifacts.grid.shape
    print("\n--- Grid Scan ---")
    print(f"  Grid size:                  {n_couplings} x {n_masses}")
    print(f"  Evaluations:                {summary.evaluations}")
    print(f"  Coupling rows scanned:      {summary.rows_scanned}")
    print(f"  Stopped early:              {summary.terminated_early}")

    print("\n--- Limits ---")
    for certainty_level, curve in artifacts.limit_curves.items():
        print(f"  {round(100 * certainty_level)}% CL masses with a limit: {len(curve)}")
    if artifacts.reflection is not None and artifacts.reflection.limits:
        best = min(artifacts.reflection.limits)
        print(f"  Strongest direct limit:     {in_units(best, cm * cm):.3e} cm^2")
        print(f"  Direct limit masses [GeV]:  {', '.join(f'{in_units(m, GeV):.3g}' for m in artifacts.reflection.masses)}")


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Scan (mass, cross section) space with synthetic collaborators and derive exclusion limits.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                           # Run with default settings
  %(prog)s --config scan.json        # Read settings from a JSON file
  %(prog)s --output-dir results/     # Custom output directory
  %(prog)s --rank 3                  # Non-primary process: compute, write nothing
        """,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON configuration file (default: built-in settings).",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("results"),
        help="Directory under which results/<run_id>/ is written (default: results).",
    )
    parser.add_argument(
        "--rank",
        type=int,
        default=0,
        help="Process rank; only rank 0 prints and writes files (default: 0).",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show the grid picture and every p-value.",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress all output except errors.",
    )
    args = parser.parse_args()

    if args.quiet:
        os.environ["DMLIMITS_VERBOSITY"] = "0"
    elif args.verbose:
        os.environ["DMLIMITS_VERBOSITY"] = "2"
    else:
        os.environ["DMLIMITS_VERBOSITY"] = "1"

    start_time = time.time()

    try:
        config = load_config(args.config) if args.config is not None else ScanConfig()
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    primary = args.rank == 0
    if primary and not args.quiet:
        print_banner("Dark Matter Parameter Scan")
        print(f"\nOutput directory: {args.output_dir.resolve()}")

    try:
        artifacts = run_synthetic_pipeline(output_dir=args.output_dir, config=config, rank=args.rank)
        elapsed = time.time() - start_time

        if primary and not args.quiet:
            print_summary(artifacts, elapsed)
            print_banner("Analysis Complete")
            print(f"Results written to: {artifacts.output_dir.resolve()}\n")

    except FileNotFoundError as e:
        elapsed = time.time() - start_time
        print(
            f"\nError after {format_elapsed(elapsed)}:\n"
            f"File not found: {e}",
            file=sys.stderr
        )
        sys.exit(1)
    except (ValueError, RuntimeError) as e:
        elapsed = time.time() - start_time
        print(
            f"\nError after {format_elapsed(elapsed)}:\n"
            f"Limit computation failed: {e}\n"
            f"Check that the cross section range brackets the limit for every mass.",
            file=sys.stderr
        )
        sys.exit(1)
    except Exception as e:
        elapsed = time.time() - start_time
        print(
            f"\nError after {format_elapsed(elapsed)}: {e}\n"
            f"For help, run: python -m dmlimits --help",
            file=sys.stderr
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
