"""Reporting utilities for scans and limits.

Only one process of a multi-rank run prints anything. The algorithms receive a
:class:`Reporter` and never check ranks themselves; :func:`reporter_for_rank`
hands out a console reporter to rank 0 and a silent one to everybody else.
"""

from __future__ import annotations

import os
from typing import Iterable

import numpy as np
from tabulate import tabulate
from tqdm import tqdm

from .config import ScanConfig
from .grid import ParameterGrid
from .units import GeV, cm, in_units


def _get_verbosity() -> int:
    """Get verbosity level from environment: 0=quiet, 1=normal, 2=verbose."""
    return int(os.environ.get("DMLIMITS_VERBOSITY", "1"))


def round_significant(value: float, digits: int = 3) -> float:
    if value == 0 or not np.isfinite(value):
        return value
    return float(f"{value:.{digits}g}")


def render_grid(
    grid: ParameterGrid,
    row: int = -1,
    col: int = -1,
    threshold: float = 0.1,
) -> str:
    """Draw the p-value grid with the largest coupling on top.

    ``row`` and ``col`` are the scan loop counters (counted from the largest
    coupling and the largest mass). Cells the scan has not reached yet are
    drawn as ``·``, the current cell as ``¤``, excluded cells as ``█`` and
    allowed ones as ``░``. Negative counters draw the finished grid.
    """
    show_progress = row >= 0 and col >= 0
    n_couplings, n_masses = grid.shape
    lines = []
    for r in range(n_couplings):
        chars = []
        for c in range(n_masses):
            scan_col = n_masses - 1 - c
            p = grid.p_values[n_couplings - 1 - r, c]
            if show_progress and (r > row or (r == row and col < scan_col)):
                chars.append("·")
            elif show_progress and r == row and col == scan_col:
                chars.append("¤")
            else:
                chars.append("░" if p > threshold else "█")
        lines.append("\t" + "".join(chars))
    return "\n".join(lines)


def summarize_limit_curve(curve: np.ndarray, certainty_level: float) -> str:
    rows = [
        (f"{in_units(mass, GeV):.4g}", f"{in_units(limit, cm * cm):.4e}")
        for mass, limit in np.asarray(curve).reshape(-1, 2)
    ]
    table = tabulate(
        rows,
        headers=["Mass [GeV]", f"Limit ({round(100 * certainty_level)}% CL) [cm^2]"],
        tablefmt="github",
    )
    return table + f"\nMasses with a limit: {len(rows)}"


def format_config_summary(config: ScanConfig) -> str:
    rows = [
        ("Run ID", config.run_id),
        ("Sample size", config.sample_size),
        ("Mass range [GeV]", f"[{config.mass_min:g}, {config.mass_max:g}] ({config.masses} points)"),
        (
            "Cross section range [cm^2]",
            f"[{config.cross_section_min:.1e}, {config.cross_section_max:.1e}] ({config.cross_sections} points)",
        ),
        ("Certainty levels", ", ".join(f"{cl:g}" for cl in config.certainty_levels)),
        ("Exclusion threshold", config.exclusion_threshold),
        ("Reflection limit masses", config.reflection_masses),
    ]
    return tabulate(rows, headers=["Setting", "Value"], tablefmt="github")


class Reporter:
    """Silent reporter. Subclasses decide what a process shows and writes."""

    is_primary: bool = False

    def progress(self, total: int, desc: str) -> tqdm:
        return tqdm(total=total, desc=desc, disable=True)

    def message(self, text: str) -> None:
        pass

    def cell_started(self, counter: int, grid: ParameterGrid, row: int, col: int) -> None:
        pass

    def p_value(self, p: float) -> None:
        pass

    def root_step(self, p: float) -> None:
        pass

    def limit(self, mass: float, coupling: float) -> None:
        pass

    def summary(self, config: ScanConfig) -> None:
        pass


class NullReporter(Reporter):
    """Reporter for non-primary processes: no output and no file writes."""


class ConsoleReporter(Reporter):
    """Prints progress to stdout, honouring ``DMLIMITS_VERBOSITY``."""

    is_primary = True

    def __init__(self, verbosity: int | None = None, threshold: float = 0.1) -> None:
        self.verbosity = _get_verbosity() if verbosity is None else verbosity
        self.threshold = threshold

    def progress(self, total: int, desc: str) -> tqdm:
        return tqdm(total=total, desc=desc, disable=self.verbosity == 0, leave=False)

    def message(self, text: str) -> None:
        if self.verbosity >= 1:
            print(text)

    def cell_started(self, counter: int, grid: ParameterGrid, row: int, col: int) -> None:
        if self.verbosity >= 2:
            print(f"\n{counter})")
            print(render_grid(grid, row, col, self.threshold))

    def p_value(self, p: float) -> None:
        if self.verbosity >= 2:
            print(f"p-value = {round_significant(p)}")

    def root_step(self, p: float) -> None:
        if self.verbosity >= 1:
            print(f"\tp = {round_significant(p)}")

    def limit(self, mass: float, coupling: float) -> None:
        if self.verbosity >= 1:
            print(f"{in_units(mass, GeV):g}\t{in_units(coupling, cm * cm):.4e}")

    def summary(self, config: ScanConfig) -> None:
        if self.verbosity >= 1:
            print(format_config_summary(config))


def reporter_for_rank(rank: int = 0, verbosity: int | None = None, threshold: float = 0.1) -> Reporter:
    if rank == 0:
        return ConsoleReporter(verbosity=verbosity, threshold=threshold)
    return NullReporter()


def print_limit_tables(curves: Iterable[tuple[float, np.ndarray]], reporter: Reporter) -> None:
    for certainty_level, curve in curves:
        reporter.message(summarize_limit_curve(curve, certainty_level))
