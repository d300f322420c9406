"""Parameter scans and exclusion limits for solar-reflected dark matter.

Given a particle model and external collaborators that turn one
(mass, cross section) point into a p-value, dmlimits organizes those
evaluations into a pruned 2-D grid scan and reduces the result to an
exclusion limit curve. A direct root-finding variant solves for the limit at
individual masses without a grid.

Main Components:
    - ParameterGrid: Mass and coupling axes with the p-value table
    - perform_scan: Fill a grid, strongest coupling and heaviest mass first
    - limit_curve: Extract the confidence-level boundary from a filled grid
    - ReflectionLimit: Direct per-mass limits via Brent's method in log(coupling)
    - ReflectionPipeline: Chain of rate model, generator, spectrum and detector
    - ScanConfig: Configuration with all tunable constants

Quick Start:
    >>> from dmlimits import ParameterGrid, ScanConfig, limit_curve, perform_scan
    >>> from dmlimits.synthetic_data import make_synthetic_pipeline
    >>>
    >>> config = ScanConfig()
    >>> particle, pipeline = make_synthetic_pipeline(config)
    >>> grid = ParameterGrid(config.mass_grid, config.coupling_grid, config.sample_size)
    >>> perform_scan(grid, particle, pipeline, config)
    >>> curve = limit_curve(grid, certainty_level=0.9)
"""

from .config import ConfigurationError, ScanConfig, load_config
from .grid import ParameterGrid, clamp_p_value
from .limits import ReflectionLimit, limit_curve
from .pipeline import ReflectionPipeline, preserved_parameters
from .reporting import ConsoleReporter, NullReporter, Reporter, reporter_for_rank
from .scan import ScanSummary, perform_scan

__all__ = [
    "ConfigurationError",
    "ScanConfig",
    "load_config",
    "ParameterGrid",
    "clamp_p_value",
    "ReflectionLimit",
    "limit_curve",
    "ReflectionPipeline",
    "preserved_parameters",
    "ConsoleReporter",
    "NullReporter",
    "Reporter",
    "reporter_for_rank",
    "ScanSummary",
    "perform_scan",
]
