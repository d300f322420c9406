"""Synthetic collaborators for running scans without the full physics stack.

This module provides idealized stand-ins for the external models a scan
needs:
- ToyDarkMatter: particle with a mass and a single cross section
- ToyHalo: isotropic Maxwellian halo
- ToySolarModel: solar scattering-rate table and reflection probability
- ToyEventGenerator: seeded Monte Carlo of solar-reflected particle speeds
- ToySpectrumBuilder: flux of reflected particles above threshold at Earth
- ToyDetector: nuclear-recoil kinematics and a Poisson p-value

They are useful for:
- Exercising the scan and limit code end to end
- Demonstrating the shape of an exclusion limit
- Tests that need a monotone but stochastic p-value

Example:
    >>> from dmlimits.config import ScanConfig
    >>> from dmlimits.synthetic_data import make_synthetic_pipeline
    >>>
    >>> particle, pipeline = make_synthetic_pipeline(ScanConfig())
    >>> p = pipeline.p_value(particle, sample_size=200, radius_points=1000, velocity_points=50)

Note: none of this is a physical model of the Sun or of any real detector.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np
from scipy.integrate import trapezoid
from scipy.stats import poisson

from .config import ScanConfig
from .pipeline import ReflectionPipeline
from .units import GeV, cm, day, kg, keV, km, proton_mass, sec


TARGET_NUCLEI = "nuclei"


@dataclass
class ToyDarkMatter:
    mass: float = 1.0 * GeV
    cross_section: float = 1.0e-36 * cm * cm

    def set_mass(self, mass: float) -> None:
        self.mass = mass

    def get_interaction_parameter(self, target: str = TARGET_NUCLEI) -> float:
        return self.cross_section

    def set_interaction_parameter(self, value: float, target: str = TARGET_NUCLEI) -> None:
        self.cross_section = value


@dataclass(frozen=True)
class ToyHalo:
    density: float = 0.4 * GeV / (cm**3)
    dispersion: float = 220.0 * km / sec


@dataclass
class ToySolarModel:
    """Scattering-rate table over solar radius and speed.

    :meth:`refresh` must be called whenever the particle changes; it rebuilds
    the table and the probability that an infalling particle is reflected.
    """

    reference_cross_section: float = 1.0e-35 * cm * cm
    escape_speed: float = 618.0 * km / sec
    target_mass: float = proton_mass
    target: str = TARGET_NUCLEI
    radii: np.ndarray = field(default_factory=lambda: np.zeros(0), repr=False)
    speeds: np.ndarray = field(default_factory=lambda: np.zeros(0), repr=False)
    rate_table: np.ndarray = field(default_factory=lambda: np.zeros((0, 0)), repr=False)
    reflection_probability: float = 0.0
    refresh_count: int = 0

    def refresh(self, particle, radius_points: int, velocity_points: int) -> None:
        tau_scale = particle.get_interaction_parameter(self.target) / self.reference_cross_section
        self.radii = np.linspace(0.0, 1.0, radius_points)
        self.speeds = np.linspace(0.0, 2.0 * self.escape_speed, velocity_points)
        density = np.exp(-10.0 * self.radii)
        self.rate_table = tau_scale * np.outer(density, self.speeds / self.escape_speed)

        optical_depth = 10.0 * tau_scale * trapezoid(density, self.radii)
        mass_ratio = 4.0 * particle.mass * self.target_mass / (particle.mass + self.target_mass) ** 2
        self.reflection_probability = float(-np.expm1(-optical_depth) * mass_ratio)
        self.refresh_count += 1


@dataclass(slots=True)
class SimulationData:
    speeds: np.ndarray
    sample_size: int
    u_min: float
    reflection_probability: float

    @property
    def fraction_above_threshold(self) -> float:
        if self.sample_size == 0:
            return 0.0
        return float(np.count_nonzero(self.speeds > self.u_min) / self.sample_size)


class ToyEventGenerator:
    """Draws halo speeds, boosts them in the solar potential and keeps the escapees."""

    def __init__(self, seed: int | None = None, kick_range: tuple[float, float] = (0.8, 1.6)) -> None:
        self.rng = np.random.default_rng(seed)
        self.kick_range = kick_range

    def generate(self, sample_size, u_min, particle, rate_model, halo_model) -> SimulationData:
        velocity = self.rng.normal(0.0, halo_model.dispersion / math.sqrt(2.0), size=(sample_size, 3))
        speed_infinity = np.linalg.norm(velocity, axis=1)
        speed_surface = np.sqrt(speed_infinity**2 + rate_model.escape_speed**2)
        speed_surface = speed_surface * self.rng.uniform(*self.kick_range, size=sample_size)
        escaping = speed_surface > rate_model.escape_speed
        speeds = np.sqrt(speed_surface[escaping] ** 2 - rate_model.escape_speed**2)
        return SimulationData(
            speeds=speeds,
            sample_size=sample_size,
            u_min=u_min,
            reflection_probability=rate_model.reflection_probability,
        )


@dataclass(frozen=True)
class ReflectionSpectrum:
    flux: float
    mass: float


@dataclass(frozen=True)
class ToySpectrumBuilder:
    # (R_sun / 1 AU)^2
    geometric_dilution: float = 2.16e-5

    def build(self, dataset: SimulationData, rate_model, halo_model, mass: float) -> ReflectionSpectrum:
        mean_speed = float(np.mean(dataset.speeds)) if dataset.speeds.size else 0.0
        flux = (
            halo_model.density
            / mass
            * mean_speed
            * dataset.reflection_probability
            * dataset.fraction_above_threshold
            * self.geometric_dilution
        )
        return ReflectionSpectrum(flux=flux, mass=mass)


@dataclass
class ToyDetector:
    """Counting experiment on a single nuclear target."""

    target_particles: str = TARGET_NUCLEI
    target_mass: float = 15.0 * GeV
    energy_threshold: float = 0.1 * keV
    exposure: float = 1.0 * kg * day
    observed_events: int = 5
    expected_background: float = 4.0

    def minimum_dm_speed(self, particle) -> float:
        reduced_mass = particle.mass * self.target_mass / (particle.mass + self.target_mass)
        return math.sqrt(self.target_mass * self.energy_threshold / (2.0 * reduced_mass**2))

    def expected_signal(self, particle, spectrum: ReflectionSpectrum) -> float:
        targets = self.exposure / self.target_mass
        return spectrum.flux * particle.get_interaction_parameter(self.target_particles) * targets

    def p_value(self, particle, spectrum: ReflectionSpectrum) -> float:
        expectation = self.expected_signal(particle, spectrum) + self.expected_background
        return float(poisson.cdf(self.observed_events, expectation))


def make_synthetic_pipeline(config: ScanConfig | None = None) -> tuple[ToyDarkMatter, ReflectionPipeline]:
    config = config or ScanConfig()
    particle = ToyDarkMatter(mass=config.mass_grid[0], cross_section=config.coupling_grid[0])
    pipeline = ReflectionPipeline(
        detector=ToyDetector(),
        rate_model=ToySolarModel(),
        generator=ToyEventGenerator(seed=config.seed),
        spectrum_builder=ToySpectrumBuilder(),
        halo_model=ToyHalo(),
    )
    return particle, pipeline
