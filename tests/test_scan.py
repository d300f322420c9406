"""Unit tests for scan.py module."""

import numpy as np
import pytest

from dmlimits.config import ScanConfig
from dmlimits.grid import ParameterGrid
from dmlimits.limits import limit_curve
from dmlimits.pipeline import ReflectionPipeline
from dmlimits.reporting import Reporter
from dmlimits.scan import ScanSummary, perform_scan


TARGET = "nuclei"


class StubParticle:
    def __init__(self, mass=123.0, coupling=4.5e-30):
        self.mass = mass
        self.coupling = coupling

    def set_mass(self, mass):
        self.mass = mass

    def get_interaction_parameter(self, target):
        return self.coupling

    def set_interaction_parameter(self, value, target):
        self.coupling = value


class StubRateModel:
    def __init__(self):
        self.calls = []

    def refresh(self, particle, radius_points, velocity_points):
        self.calls.append((particle.mass, particle.coupling, radius_points, velocity_points))


class StubGenerator:
    def generate(self, sample_size, u_min, particle, rate_model, halo_model):
        return {"mass": particle.mass, "coupling": particle.coupling, "sample_size": sample_size}


class StubSpectrumBuilder:
    def build(self, dataset, rate_model, halo_model, mass):
        return dataset


class StubDetector:
    target_particles = TARGET

    def __init__(self, p_function, fail_on_call=None):
        self.p_function = p_function
        self.fail_on_call = fail_on_call
        self.calls = 0

    def minimum_dm_speed(self, particle):
        return 0.0

    def p_value(self, particle, spectrum):
        self.calls += 1
        if self.fail_on_call is not None and self.calls == self.fail_on_call:
            raise RuntimeError("simulation failed")
        return self.p_function(spectrum["mass"], spectrum["coupling"])


def create_test_pipeline(p_function, fail_on_call=None):
    """Helper function to create a pipeline backed by a p-value function."""
    return ReflectionPipeline(
        detector=StubDetector(p_function, fail_on_call=fail_on_call),
        rate_model=StubRateModel(),
        generator=StubGenerator(),
        spectrum_builder=StubSpectrumBuilder(),
        halo_model=None,
    )


class RecordingReporter(Reporter):
    def __init__(self):
        self.cells = []
        self.p_values = []

    def cell_started(self, counter, grid, row, col):
        self.cells.append((counter, row, col))

    def p_value(self, p):
        self.p_values.append(p)


class TestScenario:
    """Test the three-by-three reference scenario."""

    def setup_method(self):
        self.grid = ParameterGrid([1.0, 10.0, 100.0], [1e-40, 1e-38, 1e-36], sample_size=100)
        self.pipeline = create_test_pipeline(
            lambda mass, coupling: 0.05 if coupling >= 1e-38 and mass <= 10.0 else 0.9
        )
        self.particle = StubParticle()

    def test_grid_values(self):
        """Test that excluded cells store 0.05 and the others 0.9."""
        perform_scan(self.grid, self.particle, self.pipeline)
        expected = np.array(
            [
                [0.9, 0.9, 0.9],
                [0.05, 0.05, 0.9],
                [0.05, 0.05, 0.9],
            ]
        )
        np.testing.assert_array_equal(self.grid.p_values, expected)

    def test_evaluation_order(self):
        """Test largest coupling first, and within a row largest mass first."""
        summary = perform_scan(self.grid, self.particle, self.pipeline)
        assert summary.evaluated_cells[:3] == ((2, 2), (2, 1), (2, 0))
        assert summary.evaluated_cells[3:6] == ((1, 2), (1, 1), (1, 0))
        assert summary.evaluations == 9
        assert summary.rows_scanned == 3
        assert summary.terminated_early is False

    def test_limit_curve_two_entries(self):
        """Test that the 90% CL curve has entries for masses 1 and 10 only."""
        perform_scan(self.grid, self.particle, self.pipeline)
        curve = limit_curve(self.grid, 0.90)
        assert curve.shape == (2, 2)
        np.testing.assert_array_equal(curve[:, 0], [1.0, 10.0])

        threshold = 1.0 - 0.90
        expected = 1e-40 + (0.9 - threshold) / (0.9 - 0.05) * (1e-38 - 1e-40)
        np.testing.assert_allclose(curve[:, 1], expected, rtol=1e-3)

    def test_sample_size_passed_to_generator(self):
        seen = []
        original = self.pipeline.generator.generate

        def recording_generate(sample_size, *args):
            seen.append(sample_size)
            return original(sample_size, *args)

        self.pipeline.generator.generate = recording_generate
        perform_scan(self.grid, self.particle, self.pipeline)
        assert set(seen) == {100}


class TestPruning:
    """Test the early-termination heuristics."""

    def test_row_breaks_after_first_non_excluded_mass(self):
        """Test that a row stops at the first allowed mass following an exclusion."""
        grid = ParameterGrid([1.0, 2.0, 3.0, 4.0, 5.0], [1.0], sample_size=10)
        pipeline = create_test_pipeline(lambda mass, coupling: 0.01 if mass >= 4.0 else 0.5)
        summary = perform_scan(grid, StubParticle(), pipeline)

        assert summary.evaluated_cells == ((0, 4), (0, 3), (0, 2))
        np.testing.assert_array_equal(grid.p_values[0], [1.0, 1.0, 0.5, 0.01, 0.01])

    def test_row_without_exclusion_stops_scan(self):
        """Test that no smaller couplings are evaluated after an empty row."""
        grid = ParameterGrid([1.0, 2.0, 3.0], [1.0, 2.0, 3.0, 4.0], sample_size=10)
        pipeline = create_test_pipeline(lambda mass, coupling: 0.9)
        summary = perform_scan(grid, StubParticle(), pipeline)

        assert summary.evaluations == 3
        assert summary.rows_scanned == 1
        assert summary.terminated_early is True
        assert all(cell[0] == 3 for cell in summary.evaluated_cells)
        assert np.all(grid.p_values[:3] == 1.0)

    def test_no_termination_flag_when_last_row_is_empty(self):
        """Test that an empty final row counts as completing the scan."""
        grid = ParameterGrid([1.0, 2.0], [1.0, 2.0], sample_size=10)
        pipeline = create_test_pipeline(lambda mass, coupling: 0.01 if coupling > 1.5 else 0.9)
        summary = perform_scan(grid, StubParticle(), pipeline)
        assert summary.rows_scanned == 2
        assert summary.terminated_early is False

    def test_last_excluded_index_persists_across_rows(self):
        """Test that the previous row's exclusion boundary bounds the next row.

        Top row: only the heaviest mass is excluded, so the boundary sits at
        loop position 0. In the next row only mass 2 (loop position 3) would be
        excluded, but the scan gives up at position 2 because it is more than
        one step past the carried-over boundary. A per-row reset would reach
        mass 2, find the exclusion and continue to the bottom row.
        """
        grid = ParameterGrid([1.0, 2.0, 3.0, 4.0, 5.0], [1.0, 2.0, 3.0], sample_size=10)

        def p_function(mass, coupling):
            if coupling == 3.0:
                return 0.01 if mass == 5.0 else 0.5
            if coupling == 2.0:
                return 0.01 if mass == 2.0 else 0.5
            return 0.01

        summary = perform_scan(grid, StubParticle(), create_test_pipeline(p_function))

        assert summary.evaluated_cells == ((2, 4), (2, 3), (1, 4), (1, 3), (1, 2))
        assert summary.evaluations == 5
        assert summary.rows_scanned == 2
        assert summary.terminated_early is True
        assert grid.p_values[1, 1] == 1.0
        assert np.all(grid.p_values[0] == 1.0)

    def test_allowed_cells_before_boundary_do_not_stop_row(self):
        """Test that allowed heavy masses are tolerated until one step past the boundary."""
        grid = ParameterGrid([1.0, 2.0, 3.0, 4.0], [1.0, 2.0], sample_size=10)

        def p_function(mass, coupling):
            if coupling == 2.0:
                return 0.01 if mass <= 2.0 else 0.5
            return 0.01 if mass == 1.0 else 0.5

        summary = perform_scan(grid, StubParticle(), create_test_pipeline(p_function))

        # Top row: positions 0 and 1 allowed, boundary ends at position 3.
        assert summary.evaluated_cells[:4] == ((1, 3), (1, 2), (1, 1), (1, 0))
        # Second row is never cut short: no position exceeds boundary + 1.
        assert summary.evaluated_cells[4:] == ((0, 3), (0, 2), (0, 1), (0, 0))
        assert grid.p_values[0, 0] == 0.01

    def test_custom_exclusion_threshold(self):
        """Test that the pruning threshold comes from the configuration."""
        grid = ParameterGrid([1.0, 2.0, 3.0], [1.0, 2.0, 3.0], sample_size=10)
        pipeline = create_test_pipeline(lambda mass, coupling: 0.3)

        strict = perform_scan(grid, StubParticle(), pipeline)
        assert strict.evaluations == 3

        relaxed = perform_scan(grid, StubParticle(), pipeline, config=ScanConfig(exclusion_threshold=0.5))
        assert relaxed.evaluations == 9
        assert relaxed.terminated_early is False


class TestClampingInScan:
    """Test that the scan stores clamped p-values."""

    def test_tiny_p_values_stored_as_zero(self):
        grid = ParameterGrid([1.0, 2.0], [1.0], sample_size=10)
        pipeline = create_test_pipeline(lambda mass, coupling: 1e-150 if mass == 2.0 else 2e-100)
        perform_scan(grid, StubParticle(), pipeline)
        assert grid.p_values[0, 1] == 0.0
        assert grid.p_values[0, 0] == 2e-100

    def test_custom_floor(self):
        grid = ParameterGrid([1.0], [1.0], sample_size=10)
        pipeline = create_test_pipeline(lambda mass, coupling: 1e-5)
        perform_scan(grid, StubParticle(), pipeline, config=ScanConfig(p_value_floor=1e-3))
        assert grid.p_values[0, 0] == 0.0


class TestParameterRestoration:
    """Test that the particle is left as it was found."""

    def test_restored_after_scan(self):
        particle = StubParticle(mass=42.0, coupling=7e-33)
        grid = ParameterGrid([1.0, 10.0, 100.0], [1e-40, 1e-38, 1e-36], sample_size=10)
        perform_scan(grid, particle, create_test_pipeline(lambda mass, coupling: 0.01))
        assert particle.mass == 42.0
        assert particle.coupling == 7e-33

    def test_restored_after_collaborator_failure(self):
        """Test restoration when the detector raises mid-scan."""
        particle = StubParticle(mass=42.0, coupling=7e-33)
        grid = ParameterGrid([1.0, 10.0, 100.0], [1e-40, 1e-38, 1e-36], sample_size=10)
        pipeline = create_test_pipeline(lambda mass, coupling: 0.01, fail_on_call=3)

        with pytest.raises(RuntimeError, match="simulation failed"):
            perform_scan(grid, particle, pipeline)

        assert particle.mass == 42.0
        assert particle.coupling == 7e-33
        assert grid.p_values[2, 2] == 0.01
        assert grid.p_values[2, 1] == 0.01
        assert grid.p_values[2, 0] == 1.0


class TestCollaboratorCalls:
    """Test how the scan drives the external pipeline."""

    def test_rate_model_refreshed_for_every_cell(self):
        grid = ParameterGrid([1.0, 2.0], [1.0, 2.0], sample_size=10)
        pipeline = create_test_pipeline(lambda mass, coupling: 0.01)
        summary = perform_scan(grid, StubParticle(), pipeline)

        calls = pipeline.rate_model.calls
        assert len(calls) == summary.evaluations == 4
        assert calls[0] == (2.0, 2.0, 1000, 50)
        assert calls[-1] == (1.0, 1.0, 1000, 50)

    def test_rate_resolution_from_config(self):
        """Test that the refresh resolution follows the scan configuration."""
        grid = ParameterGrid([1.0, 2.0], [1.0, 2.0], sample_size=10)
        pipeline = create_test_pipeline(lambda mass, coupling: 0.01)
        config = ScanConfig(rate_radius_points=200, rate_velocity_points=20)
        perform_scan(grid, StubParticle(), pipeline, config=config)

        assert pipeline.rate_model.calls
        assert {call[2:] for call in pipeline.rate_model.calls} == {(200, 20)}

    def test_reporter_sees_every_cell(self):
        grid = ParameterGrid([1.0, 2.0, 3.0], [1.0, 2.0], sample_size=10)
        reporter = RecordingReporter()
        summary = perform_scan(
            grid, StubParticle(), create_test_pipeline(lambda mass, coupling: 0.01), reporter=reporter
        )
        assert [cell[0] for cell in reporter.cells] == list(range(1, summary.evaluations + 1))
        assert reporter.cells[0] == (1, 0, 0)
        assert reporter.p_values == [0.01] * summary.evaluations

    def test_returns_summary(self):
        grid = ParameterGrid([1.0], [1.0], sample_size=10)
        summary = perform_scan(grid, StubParticle(), create_test_pipeline(lambda mass, coupling: 0.5))
        assert isinstance(summary, ScanSummary)
        assert summary.evaluated_cells == ((0, 0),)
