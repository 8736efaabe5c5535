"""End-to-end checks of a steel charge heated by one axial torch."""
import numpy as np
import pytest

from plasmafurnace.controller.fdm.analysis.field import ThermalField
from plasmafurnace.controller.fdm.solvers.solver import (
    CrankNicolsonSolver,
    ExplicitSolver,
    SolverMethod,
    SolverSettings,
)
from plasmafurnace.model.bc import BoundaryConditions, BoundaryMode

INITIAL = 300.0


@pytest.fixture
def scenario(small_mesh, carbon_steel, axis_torch, make_model):
    bc = BoundaryConditions(
        outer_wall=BoundaryMode.CONVECTION_RADIATION,
        top=BoundaryMode.ADIABATIC,
        bottom=BoundaryMode.ADIABATIC,
        ambient_temperature=300.0,
        convection_coefficient=10.0,
        emissivity=0.8,
    )
    model = make_model(small_mesh, carbon_steel, torches=[axis_torch], boundary_conditions=bc)
    field = ThermalField.uniform(small_mesh, INITIAL, model.curve)
    solver = ExplicitSolver()
    return model, field, solver, solver.calculate_stable_timestep(model)


def test_hottest_node_is_nearest_the_torch(scenario, small_mesh):
    model, field, solver, dt = scenario
    for step in range(10):
        solver.solve_time_step(field, model, dt, step, step * dt)

    i, j = np.unravel_index(np.argmax(field.temperature), field.shape)
    nearest = np.min(np.abs(small_mesh.z_coords - 1.0))
    assert i == 0
    # z = 1.0 falls midway between two rows of nodes, either may win
    assert abs(small_mesh.z_coords[j] - 1.0) == pytest.approx(nearest)
    assert field.temperature.max() > INITIAL


def test_hundred_steps_stay_bounded(scenario, axis_torch, carbon_steel):
    model, field, solver, dt = scenario
    for step in range(100):
        solver.solve_time_step(field, model, dt, step, step * dt)

    assert field.is_finite()
    # Heating the focal point without any conduction is an upper bound
    ceiling = INITIAL + 100 * dt * axis_torch.peak_intensity / (
        carbon_steel.density * carbon_steel.specific_heat.value
    )
    assert field.temperature.max() < ceiling
    assert field.temperature.min() >= INITIAL - 1e-9


def test_crank_nicolson_heats_steadily_past_the_explicit_limit(scenario):
    model, field, _, dt = scenario
    solver = CrankNicolsonSolver(SolverSettings(method=SolverMethod.CRANK_NICOLSON))
    big_dt = 10.0 * dt

    peaks = [field.temperature.max()]
    for step in range(10):
        result = solver.solve_time_step(field, model, big_dt, step, step * big_dt)
        assert result.converged
        peaks.append(field.temperature.max())

    assert field.is_finite()
    assert np.all(np.diff(peaks) > 0.0)
