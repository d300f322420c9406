"""Plain-text import and export of p-value grids and limit curves."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import numpy as np
import pandas as pd

from .grid import ParameterGrid
from .limits import ReflectionLimit, limit_curve
from .units import GeV, cm


P_VALUE_UNITS = (GeV, cm * cm, 1.0)
LIMIT_UNITS = (GeV, cm * cm)


def results_directory(base: str | Path, run_id: str) -> Path:
    path = Path(base) / run_id
    path.mkdir(parents=True, exist_ok=True)
    return path


def export_table(
    path: str | Path,
    table: np.ndarray | Sequence[Sequence[float]],
    units: Sequence[float] | None = None,
) -> Path:
    """Write a rectangular table, dividing column ``k`` by ``units[k]``."""
    path = Path(path)
    data = np.asarray(table, dtype=float)
    if data.ndim == 1:
        data = data.reshape(1, -1)
    if units is not None:
        if data.size and data.shape[1] != len(units):
            raise ValueError(
                f"Table for {path} has {data.shape[1]} columns but {len(units)} unit factors were given."
            )
        data = data / np.asarray(units, dtype=float) if data.size else data
    path.parent.mkdir(parents=True, exist_ok=True)
    np.savetxt(path, data, fmt="%.10e", delimiter="\t")
    return path


def import_table(path: str | Path, units: Sequence[float] | None = None) -> np.ndarray:
    """Read a whitespace separated table, multiplying column ``k`` by ``units[k]``."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Table not found at: {path}")
    if path.stat().st_size == 0:
        return np.empty((0, len(units) if units else 0))

    try:
        df = pd.read_csv(path, sep=r"\s+", header=None, comment="#")
    except Exception as e:
        raise ValueError(
            f"Failed to load table from {path}.\n"
            f"Error: {e}\n"
            f"The file may be corrupted or in an unexpected format."
        ) from e

    data = df.apply(pd.to_numeric, errors="coerce").to_numpy(dtype=float)
    if np.isnan(data).any():
        raise ValueError(f"Table {path} contains non-numeric entries.")
    if units is not None:
        if data.shape[1] != len(units):
            raise ValueError(
                f"Table {path} has {data.shape[1]} columns, expected {len(units)}."
            )
        data = data * np.asarray(units, dtype=float)
    return data


def export_p_values(grid: ParameterGrid, directory: str | Path) -> tuple[Path, Path]:
    """Write ``p_values.txt`` (mass, coupling, p; mass-major) and the raw ``p_grid.txt``."""
    directory = Path(directory)
    table = [
        (grid.mass(i), grid.coupling(j), grid.p_value(j, i))
        for i in range(grid.n_masses)
        for j in range(grid.n_couplings)
    ]
    p_values_path = export_table(directory / "p_values.txt", np.array(table).reshape(-1, 3), P_VALUE_UNITS)
    grid_path = export_table(directory / "p_grid.txt", grid.p_values)
    return p_values_path, grid_path


def _couplings_per_mass(table: np.ndarray, path: Path) -> int:
    """Length of the coupling axis: the shortest block size that tiles the table.

    Rows are mass-major, so a valid block size has a single mass inside every
    block and the same coupling sequence in every block.
    """
    rows = table.shape[0]
    for n in range(1, rows + 1):
        if rows % n:
            continue
        blocks = table[:, :2].reshape(rows // n, n, 2)
        same_mass = np.all(blocks[:, :, 0] == blocks[:, :1, 0])
        same_couplings = np.all(blocks[:, :, 1] == blocks[:1, :, 1])
        if same_mass and same_couplings:
            return n
    raise ValueError(
        f"p-value table {path} has {rows} rows that do not split into "
        f"equal per-mass blocks with a common coupling axis."
    )


def import_p_values(grid: ParameterGrid, directory: str | Path) -> ParameterGrid:
    """Replace the axes and p-values of ``grid`` with the contents of ``p_values.txt``.

    Both axis lengths come from the file, not from the grid's current axes.
    Repeated masses are kept as separate columns.
    """
    path = Path(directory) / "p_values.txt"
    table = import_table(path, P_VALUE_UNITS)
    if table.shape[0] == 0:
        raise ValueError(f"p-value table {path} is empty.")

    number_of_couplings = _couplings_per_mass(table, path)
    number_of_masses = table.shape[0] // number_of_couplings

    masses = table[::number_of_couplings, 0]
    couplings = table[:number_of_couplings, 1]
    # mass-major: row k = i * n_couplings + j
    p_values = table[:, 2].reshape(number_of_masses, number_of_couplings).T
    grid.replace(masses, couplings, p_values)
    return grid


def export_limits(
    grid: ParameterGrid,
    directory: str | Path,
    certainty_levels: Sequence[float],
    xtol_fraction: float = 0.01,
) -> dict[float, Path]:
    """Write one ``Limit_<CL>.txt`` per confidence level."""
    directory = Path(directory)
    written: dict[float, Path] = {}
    for certainty_level in certainty_levels:
        limit = limit_curve(grid, certainty_level, xtol_fraction=xtol_fraction)
        filename = f"Limit_{round(100 * certainty_level)}.txt"
        written[certainty_level] = export_table(directory / filename, limit, LIMIT_UNITS)
    return written


def export_reflection_limit(reflection: ReflectionLimit, directory: str | Path) -> Path:
    path = Path(directory) / f"Reflection_Limit_{reflection.cl_percent}.txt"
    return export_table(path, reflection.curve, LIMIT_UNITS)
