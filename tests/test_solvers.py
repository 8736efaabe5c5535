"""Tests for the explicit and Crank-Nicolson time integrators and the SOR kernels."""
import numpy as np
import pytest

from plasmafurnace.controller.fdm.analysis.field import ThermalField
from plasmafurnace.controller.fdm.pre.heat_sources import PlasmaTorch
from plasmafurnace.controller.fdm.pre.mesh import CylindricalMesh
from plasmafurnace.controller.fdm.solvers.solver import (
    CrankNicolsonSolver,
    ExplicitSolver,
    LinearSolverKind,
    SolverMethod,
    SolverSettings,
    create_solver,
)
from plasmafurnace.controller.fdm.solvers.sor import SorOrdering, StencilSystem, solve_direct, solve_sor
from plasmafurnace.errors import InvalidParameter, NumericalInstability
from plasmafurnace.model.bc import BoundaryConditions, BoundaryMode

AMBIENT = 298.15


def _field(model, temperature=AMBIENT):
    t = model.mesh.create_temperature_array(temperature)
    model.apply_dirichlet(t)
    return ThermalField.from_temperature(t, model.curve)


def _run(solver, model, field, dt, steps):
    results = []
    for n in range(steps):
        results.append(solver.solve_time_step(field, model, dt, n, n * dt))
    return results


@pytest.fixture
def square_mesh():
    """dr = dz = 0.1 m."""
    return CylindricalMesh(radius=1.0, height=2.0, nr=11, nz=21)


@pytest.fixture
def wide_torch():
    return PlasmaTorch(r0=0.0, z0=1.0, power=5e3, efficiency=1.0, sigma=0.2)


# ---- settings ----

def test_factory_and_settings():
    assert isinstance(create_solver(), ExplicitSolver)
    solver = create_solver(SolverSettings(method=SolverMethod.CRANK_NICOLSON))
    assert isinstance(solver, CrankNicolsonSolver)
    assert solver.method == SolverMethod.CRANK_NICOLSON

    settings = SolverSettings(sor_omega=1.8, sor_ordering=SorOrdering.LEXICOGRAPHIC)
    assert SolverSettings.from_dict(settings.to_dict()) == settings


@pytest.mark.parametrize(
    "kwargs",
    [dict(sor_omega=2.0), dict(sor_omega=0.9), dict(cfl_factor=0.0), dict(sor_tolerance=-1.0)],
)
def test_invalid_settings(kwargs):
    with pytest.raises(InvalidParameter):
        SolverSettings(**kwargs).validate()


# ---- explicit ----

def test_explicit_is_stable_at_cfl_step(small_mesh, carbon_steel, axis_torch, make_model):
    model = make_model(small_mesh, carbon_steel, torches=[axis_torch])
    field = _field(model)
    solver = ExplicitSolver()
    dt = solver.calculate_stable_timestep(model)

    results = _run(solver, model, field, dt, 100)

    assert field.is_finite()
    assert all(r.converged for r in results)
    assert field.temperature.min() >= AMBIENT - 1e-9, "no node may drop below ambient"
    hottest = np.unravel_index(np.argmax(field.temperature), field.shape)
    assert hottest[0] == 0, "the axis torch must heat the axis hardest"
    assert field.temperature.max() > AMBIENT + 100.0


def test_explicit_blows_up_beyond_cfl(simple_material, make_model):
    mesh = CylindricalMesh(radius=1.0, height=1.0, nr=11, nz=11)
    model = make_model(mesh, simple_material)
    i, j = np.indices(mesh.shape)
    field = ThermalField.from_temperature(500.0 + 100.0 * (-1.0) ** (i + j), model.curve)
    solver = ExplicitSolver()
    dt = 50.0 * solver.calculate_stable_timestep(model)

    with pytest.raises(NumericalInstability) as exc_info:
        _run(solver, model, field, dt, 1000)
    assert exc_info.value.step > 0
    assert field.is_finite(), "a failed step must leave the field untouched"


def test_adiabatic_box_conserves_energy(small_mesh, simple_material, make_model):
    bc = BoundaryConditions(outer_wall=BoundaryMode.ADIABATIC)
    model = make_model(small_mesh, simple_material, boundary_conditions=bc)
    r, z = np.meshgrid(small_mesh.r_coords, small_mesh.z_coords, indexing="ij")
    field = ThermalField.from_temperature(500.0 + 150.0 * np.cos(np.pi * r) * z, model.curve)
    before = model.stored_energy(field.enthalpy)

    for solver, multiple in (
        (ExplicitSolver(), 1.0),
        (CrankNicolsonSolver(SolverSettings(sor_tolerance=1e-10)), 4.0),
    ):
        dt = multiple * solver.calculate_stable_timestep(model)
        _run(solver, model, field, dt, 20)
        after = model.stored_energy(field.enthalpy)
        assert after == pytest.approx(before, rel=1e-8)

    spread = field.temperature.max() - field.temperature.min()
    assert spread < 590.0, "conduction must smooth the field"


def test_explicit_energy_balance(small_mesh, carbon_steel, axis_torch, make_model):
    model = make_model(small_mesh, carbon_steel, torches=[axis_torch])
    field = _field(model, 400.0)
    solver = ExplicitSolver()
    dt = solver.calculate_stable_timestep(model)
    before = model.stored_energy(field.enthalpy)

    results = _run(solver, model, field, dt, 50)

    change = model.stored_energy(field.enthalpy) - before
    e_in = sum(r.energy_source for r in results)
    e_out = sum(r.energy_loss for r in results)
    assert e_out > 0.0
    assert e_in == pytest.approx(50 * dt * model.source_power.sum())
    assert abs(change - (e_in - e_out)) / (e_in + e_out) < 1e-6


# ---- Crank-Nicolson ----

def test_crank_nicolson_matches_explicit(square_mesh, simple_material, wide_torch, make_model):
    model = make_model(square_mesh, simple_material, torches=[wide_torch])
    explicit = ExplicitSolver()
    implicit = CrankNicolsonSolver(SolverSettings(method=SolverMethod.CRANK_NICOLSON))
    dt = explicit.calculate_stable_timestep(model)

    reference = _field(model)
    _run(explicit, model, reference, dt, 100)

    field = _field(model)
    results = _run(implicit, model, field, 10.0 * dt, 10)

    assert all(r.converged and not r.warnings for r in results)
    assert field.is_finite()
    rise = reference.temperature.max() - AMBIENT
    assert rise > 10.0
    assert np.max(np.abs(field.temperature - reference.temperature)) < 0.05 * rise


def test_crank_nicolson_energy_balance(small_mesh, carbon_steel, axis_torch, make_model):
    model = make_model(small_mesh, carbon_steel, torches=[axis_torch])
    field = _field(model, 400.0)
    solver = CrankNicolsonSolver(SolverSettings(method=SolverMethod.CRANK_NICOLSON))
    dt = 10.0 * solver.calculate_stable_timestep(model)
    before = model.stored_energy(field.enthalpy)

    results = _run(solver, model, field, dt, 10)

    change = model.stored_energy(field.enthalpy) - before
    e_in = sum(r.energy_source for r in results)
    e_out = sum(r.energy_loss for r in results)
    assert abs(change - (e_in - e_out)) / (e_in + e_out) < 1e-3


def test_crank_nicolson_with_fixed_wall(square_mesh, simple_material, make_model):
    bc = BoundaryConditions(outer_wall=BoundaryMode.FIXED_TEMPERATURE, outer_wall_temperature=800.0)
    model = make_model(square_mesh, simple_material, boundary_conditions=bc)
    field = _field(model)
    solver = CrankNicolsonSolver(SolverSettings(method=SolverMethod.CRANK_NICOLSON, sor_tolerance=1e-9))
    dt = 10.0 * solver.calculate_stable_timestep(model)
    before = model.stored_energy(field.enthalpy)

    results = _run(solver, model, field, dt, 10)

    assert np.all(field.temperature[-1, :] == 800.0)
    assert field.temperature[-2, :].mean() > AMBIENT + 50.0
    e_dirichlet = sum(r.energy_dirichlet for r in results)
    change = model.stored_energy(field.enthalpy) - before
    assert e_dirichlet > 0.0
    assert change == pytest.approx(e_dirichlet, rel=1e-3)


def test_sor_non_convergence_is_reported(square_mesh, simple_material, wide_torch, make_model):
    model = make_model(square_mesh, simple_material, torches=[wide_torch])
    field = _field(model)
    settings = SolverSettings(method=SolverMethod.CRANK_NICOLSON, max_iterations=1, sor_tolerance=1e-12)
    solver = CrankNicolsonSolver(settings)
    dt = 10.0 * solver.calculate_stable_timestep(model)

    result = solver.solve_time_step(field, model, dt, 3, 42.0)

    assert not result.converged
    assert result.iterations == 1
    warning = result.warnings[0]
    assert warning.stage == "sor"
    assert (warning.step, warning.time) == (3, 42.0)
    assert warning.residual > warning.tolerance
    assert field.is_finite()


def test_direct_linear_solver(square_mesh, simple_material, wide_torch, make_model):
    model = make_model(square_mesh, simple_material, torches=[wide_torch])
    sor_field = _field(model)
    direct_field = _field(model)
    sor = CrankNicolsonSolver(SolverSettings(method=SolverMethod.CRANK_NICOLSON, sor_tolerance=1e-10))
    direct = CrankNicolsonSolver(
        SolverSettings(method=SolverMethod.CRANK_NICOLSON, linear_solver=LinearSolverKind.DIRECT)
    )
    dt = 10.0 * sor.calculate_stable_timestep(model)

    _run(sor, model, sor_field, dt, 3)
    _run(direct, model, direct_field, dt, 3)

    np.testing.assert_allclose(sor_field.temperature, direct_field.temperature, atol=1e-6)


# ---- SOR kernels ----

@pytest.fixture
def system(square_mesh, simple_material, wide_torch, make_model):
    model = make_model(square_mesh, simple_material, torches=[wide_torch])
    rng = np.random.default_rng(3)
    t = 300.0 + 200.0 * rng.random(square_mesh.shape)
    g_r, g_z = model.conductances(t)
    storage = model.heat_capacity_volume * 1000.0 / 5000.0
    rhs = storage * t + model.source_power
    return StencilSystem.assemble(g_r, g_z, storage, rhs, 0.5, model.dirichlet_mask, model.dirichlet_values), t


@pytest.mark.parametrize("ordering", list(SorOrdering))
def test_sor_matches_direct(system, ordering):
    stencil, guess = system
    reference = solve_direct(stencil)
    result = solve_sor(stencil, guess, omega=1.5, tolerance=1e-9, max_iterations=10000, ordering=ordering)
    assert result.converged
    assert result.residual < 1e-9
    np.testing.assert_allclose(result.solution, reference.solution, atol=1e-6)
    assert reference.residual < 1e-6


def test_sor_leaves_guess_untouched(system):
    stencil, guess = system
    original = guess.copy()
    solve_sor(stencil, guess, omega=1.2, tolerance=1e-6, max_iterations=500)
    assert np.array_equal(guess, original)


def test_over_relaxation_speeds_up(system):
    stencil, guess = system
    gauss_seidel = solve_sor(stencil, guess, omega=1.0, tolerance=1e-9, max_iterations=10000)
    relaxed = solve_sor(stencil, guess, omega=1.5, tolerance=1e-9, max_iterations=10000)
    assert relaxed.iterations < gauss_seidel.iterations


def test_dirichlet_rows_are_identity(square_mesh, simple_material, make_model):
    bc = BoundaryConditions(top=BoundaryMode.FIXED_TEMPERATURE, top_temperature=700.0)
    model = make_model(square_mesh, simple_material, boundary_conditions=bc)
    t = np.full(square_mesh.shape, 300.0)
    g_r, g_z = model.conductances(t)
    storage = model.heat_capacity_volume
    stencil = StencilSystem.assemble(
        g_r, g_z, storage, storage * t, 0.5, model.dirichlet_mask, model.dirichlet_values
    )
    assert np.all(stencil.a_p[:, -1] == 1.0)
    assert np.all(stencil.a_s[:, -1] == 0.0)
    solution = solve_direct(stencil).solution
    np.testing.assert_allclose(solution[:, -1], 700.0)


# ---- phase change ----

@pytest.fixture
def melt_setup(melting_material, make_model):
    mesh = CylindricalMesh(radius=0.5, height=1.0, nr=10, nz=10)
    torch = PlasmaTorch(r0=0.0, z0=0.5, power=1e5, efficiency=1.0, sigma=0.1)
    return make_model(mesh, melting_material, torches=[torch])


@pytest.mark.parametrize("method", list(SolverMethod))
def test_melting_front(melt_setup, method):
    model = melt_setup
    solver = create_solver(SolverSettings(method=method))
    field = _field(model)
    before = model.stored_energy(field.enthalpy)

    results = _run(solver, model, field, 10.0, 30)

    assert field.is_finite()
    assert all(r.converged for r in results)
    # latent heat is part of the stored energy, so melting keeps the balance
    change = model.stored_energy(field.enthalpy) - before
    e_in = sum(r.energy_source for r in results)
    e_out = sum(r.energy_loss for r in results)
    assert abs(change - (e_in - e_out)) / (e_in + e_out) < 1e-2
    fraction = field.liquid_fraction
    assert fraction.max() > 0.0, "the charge next to the torch must start melting"
    partial = (fraction > 0.0) & (fraction < 1.0)
    assert partial.any()
    assert np.all(field.temperature[partial] == 400.0), "a melting node sits exactly at the melting point"
    assert np.all(field.temperature[fraction == 0.0] <= 400.0)
    assert np.all(field.temperature[fraction == 1.0] >= 400.0)
    assert np.all((fraction >= 0.0) & (fraction <= 1.0))
