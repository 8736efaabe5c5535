"""Pytest configuration and shared fixtures for the furnace engine tests."""
import os

import pytest

from plasmafurnace.controller.fdm.analysis.model import ThermalModel
from plasmafurnace.controller.fdm.pre.heat_sources import PlasmaPhysics, PlasmaTorch
from plasmafurnace.controller.fdm.pre.material import Material, MaterialProperty
from plasmafurnace.controller.fdm.pre.mesh import CylindricalMesh, MeshPreset
from plasmafurnace.model.bc import BoundaryConditions
from plasmafurnace.model.config import GeometryConfig, MeshConfig, SimulationConfig, SolverConfig, TorchConfig
from plasmafurnace.model.materials import MaterialLibrary


def pytest_configure(config):
    """Plot helpers must not need a display."""
    os.environ["MPLBACKEND"] = "Agg"


class LambdaEvaluator:
    """Formula capability backed by Python callables keyed by formula text."""

    def __init__(self, **formulas):
        self.formulas = formulas
        self.calls = 0

    def evaluate(self, formula, temperature):
        self.calls += 1
        return self.formulas[formula](temperature)


@pytest.fixture
def small_mesh():
    return CylindricalMesh(radius=1.0, height=2.0, nr=20, nz=20)


@pytest.fixture
def carbon_steel():
    return MaterialLibrary().get_material("Carbon Steel")


@pytest.fixture
def simple_material():
    """Constant properties, no phase change."""
    return Material(
        name="Test solid",
        density=1000.0,
        thermal_conductivity=MaterialProperty.constant(10.0),
        specific_heat=MaterialProperty.constant(1000.0),
        emissivity=0.8,
    )


@pytest.fixture
def melting_material():
    """Low-conductivity charge that melts at 400 K."""
    return Material(
        name="Test melt",
        density=1000.0,
        thermal_conductivity=MaterialProperty.constant(1.0),
        specific_heat=MaterialProperty.constant(1000.0),
        emissivity=0.8,
        melting_point=400.0,
        latent_heat_fusion=1.0e5,
    )


@pytest.fixture
def axis_torch():
    return PlasmaTorch(r0=0.0, z0=1.0, power=100e3, efficiency=0.8, sigma=0.1)


@pytest.fixture
def make_model():
    """Factory building a ThermalModel from its parts."""

    def _make(mesh, material, torches=(), boundary_conditions=None, evaluator=None):
        physics = PlasmaPhysics(
            torches=list(torches),
            boundary_conditions=boundary_conditions or BoundaryConditions(),
            emissivity=material.emissivity,
        )
        return ThermalModel(mesh, material, physics, evaluator)

    return _make


@pytest.fixture
def fast_config():
    """Small explicit run of carbon steel that finishes in a few steps."""
    return SimulationConfig(
        geometry=GeometryConfig(radius=1.0, height=2.0),
        mesh=MeshConfig(preset=MeshPreset.CUSTOM, nr=12, nz=12),
        solver=SolverConfig(total_time=600.0),
        torches=[TorchConfig(r=0.0, z=1.0, power=100e3, efficiency=0.8, sigma=0.1)],
    )
