"""Collaborator contracts and the per-point simulation pipeline.

The scan and limit algorithms never touch physics directly. They see a
particle whose mass and coupling they may temporarily change, and a
:class:`ReflectionPipeline` that turns the particle's current state into one
p-value by chaining the external rate model, dataset generator, spectrum
builder and detector.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Protocol


class ParticleModel(Protocol):
    mass: float

    def set_mass(self, mass: float) -> None: ...

    def get_interaction_parameter(self, target: str) -> float: ...

    def set_interaction_parameter(self, value: float, target: str) -> None: ...


class RateModel(Protocol):
    def refresh(self, particle: ParticleModel, radius_points: int, velocity_points: int) -> None: ...


class DetectorModel(Protocol):
    target_particles: str

    def minimum_dm_speed(self, particle: ParticleModel) -> float: ...

    def p_value(self, particle: ParticleModel, spectrum: Any) -> float: ...


class DatasetGenerator(Protocol):
    def generate(
        self,
        sample_size: int,
        u_min: float,
        particle: ParticleModel,
        rate_model: RateModel,
        halo_model: Any,
    ) -> Any: ...


class SpectrumBuilder(Protocol):
    def build(self, dataset: Any, rate_model: RateModel, halo_model: Any, mass: float) -> Any: ...


@contextmanager
def preserved_parameters(particle: ParticleModel, target: str) -> Iterator[ParticleModel]:
    """Snapshot the particle's mass and coupling and restore them on exit.

    Restoration happens on every exit path, including exceptions raised by
    collaborators inside the block.
    """
    mass_original = particle.mass
    coupling_original = particle.get_interaction_parameter(target)
    try:
        yield particle
    finally:
        particle.set_mass(mass_original)
        particle.set_interaction_parameter(coupling_original, target)


@dataclass
class ReflectionPipeline:
    """Chain of external collaborators evaluated once per (mass, coupling) point.

    Attributes:
        detector: Supplies the kinematic threshold and the final p-value.
        rate_model: Scattering-rate table, refreshed before every evaluation.
        generator: Stochastic dataset generator.
        spectrum_builder: Turns a dataset into the detector's input spectrum.
        halo_model: Opaque velocity distribution handed to the generator and builder.
    """

    detector: DetectorModel
    rate_model: RateModel
    generator: DatasetGenerator
    spectrum_builder: SpectrumBuilder
    halo_model: Any

    @property
    def target(self) -> str:
        return self.detector.target_particles

    def p_value(
        self,
        particle: ParticleModel,
        sample_size: int,
        radius_points: int,
        velocity_points: int,
    ) -> float:
        """Refresh the rate model at the given resolution and evaluate one dataset."""
        self.rate_model.refresh(particle, radius_points, velocity_points)
        u_min = self.detector.minimum_dm_speed(particle)
        dataset = self.generator.generate(sample_size, u_min, particle, self.rate_model, self.halo_model)
        spectrum = self.spectrum_builder.build(dataset, self.rate_model, self.halo_model, particle.mass)
        return float(self.detector.p_value(particle, spectrum))
