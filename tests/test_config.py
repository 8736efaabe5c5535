"""Tests for configuration records and the command-line entry point."""
import json
import logging
import threading

import pytest

from plasmafurnace.__main__ import load_config, main
from plasmafurnace.controller.fdm.pre.material import Material, MaterialProperty
from plasmafurnace.controller.fdm.pre.mesh import MeshPreset
from plasmafurnace.controller.fdm.solvers.solver import SolverMethod
from plasmafurnace.controller.fdm.solvers.sor import SorOrdering
from plasmafurnace.errors import InvalidParameter
from plasmafurnace.logging_config import setup_logging
from plasmafurnace.model.bc import BoundaryMode
from plasmafurnace.model.config import (
    GeometryConfig,
    MeshConfig,
    SimulationConfig,
    SolverConfig,
    TorchConfig,
)
from plasmafurnace.model.materials import MaterialConfig


def test_defaults():
    config = SimulationConfig()
    config.validate()
    assert (config.geometry.radius, config.geometry.height) == (1.0, 2.0)
    assert config.mesh.resolution() == (50, 50)
    assert config.solver.method == SolverMethod.FORWARD_EULER
    assert config.solver.sor_omega == 1.5
    assert config.physics.boundary_conditions.outer_wall == BoundaryMode.CONVECTION_RADIATION
    assert len(config.torches) == 1
    assert config.create_material().name == "Carbon Steel"


def test_round_trip_through_json(fast_config):
    fast_config.solver.method = SolverMethod.CRANK_NICOLSON
    fast_config.solver.sor_ordering = SorOrdering.LEXICOGRAPHIC
    fast_config.solver.storage_interval = 30.0
    fast_config.physics.boundary_conditions.top = BoundaryMode.FIXED_TEMPERATURE
    fast_config.physics.boundary_conditions.top_temperature = 900.0
    fast_config.torches.append(TorchConfig(r=0.5, z=0.5, power=20e3))
    fast_config.material = MaterialConfig(
        custom=Material(
            name="Slag",
            density=3000.0,
            thermal_conductivity=MaterialProperty.table([300.0, 1500.0], [2.0, 1.2]),
            specific_heat=MaterialProperty.from_formula("800 + 0.2*T"),
            melting_point=1600.0,
            latent_heat_fusion=3e5,
        )
    )

    restored = SimulationConfig.from_dict(json.loads(json.dumps(fast_config.to_dict())))

    assert restored == fast_config


def test_custom_mesh_resolution():
    assert MeshConfig(preset=MeshPreset.CUSTOM, nr=30, nz=40).resolution() == (30, 40)
    assert MeshConfig(preset=MeshPreset.HIGH, nr=30, nz=40).resolution() == (200, 200)
    mesh = MeshConfig(preset=MeshPreset.CUSTOM, nr=5, nz=7).create_mesh(GeometryConfig(0.5, 1.0))
    assert mesh.shape == (5, 7)
    assert mesh.radius == 0.5


@pytest.mark.parametrize(
    "mutate, parameter",
    [
        (lambda c: setattr(c.geometry, "height", 0.0), "height"),
        (lambda c: setattr(c.mesh, "nr", 1), "nr"),
        (lambda c: setattr(c.solver, "total_time", -5.0), "total_time"),
        (lambda c: setattr(c.solver, "sor_omega", 2.5), "sor_omega"),
        (lambda c: setattr(c.torches[0], "r", 1.5), "torch.r"),
        (lambda c: setattr(c.torches[0], "efficiency", 1.2), "torch.efficiency"),
        (lambda c: setattr(c.material, "name", "Unobtainium"), "material"),
        (lambda c: setattr(c.physics, "initial_temperature", -10.0), "initial_temperature"),
    ],
)
def test_validation(fast_config, mutate, parameter):
    mutate(fast_config)
    with pytest.raises(InvalidParameter) as exc_info:
        fast_config.validate()
    assert exc_info.value.parameter == parameter
    assert exc_info.value.to_dict()["kind"] == "invalid_parameter"


def test_solver_settings_are_forwarded():
    settings = SolverConfig(
        method=SolverMethod.CRANK_NICOLSON, sor_omega=1.7, max_iterations=123
    ).to_settings()
    assert settings.method == SolverMethod.CRANK_NICOLSON
    assert settings.sor_omega == 1.7
    assert settings.max_iterations == 123


def test_torch_conversion():
    torch = TorchConfig(r=0.2, z=0.3, power=1e4, efficiency=0.5, sigma=0.05).to_torch()
    assert (torch.r0, torch.z0, torch.effective_power, torch.sigma) == (0.2, 0.3, 5e3, 0.05)


# ---- command line ----

@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logger = logging.getLogger("plasmafurnace")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def config_file(tmp_path, fast_config):
    path = tmp_path / "run.json"
    path.write_text(json.dumps(fast_config.to_dict()), encoding="utf-8")
    return path


def test_load_config(config_file, fast_config):
    assert load_config(str(config_file)) == fast_config
    assert load_config(None) == SimulationConfig()


def test_cli_runs_a_configuration(config_file, tmp_path):
    log_file = tmp_path / "run.log"
    code = main(["--config", str(config_file), "--log-level", "WARNING", "--log-file", str(log_file)])
    assert code == 0
    assert log_file.exists()


def test_cli_reports_unreadable_configuration(tmp_path):
    code = main(["--config", str(tmp_path / "missing.json"), "--log-level", "ERROR"])
    assert code == 2


def test_cli_reports_invalid_configuration(tmp_path, fast_config):
    fast_config.geometry.radius = -1.0
    path = tmp_path / "bad.json"
    path.write_text(json.dumps(fast_config.to_dict()), encoding="utf-8")
    code = main(["--config", str(path), "--log-level", "ERROR"])
    assert code == 1


def test_cli_reports_unknown_mesh_preset(tmp_path, fast_config):
    data = fast_config.to_dict()
    data["mesh"]["preset"] = "bogus"
    path = tmp_path / "bad.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    assert main(["--config", str(path), "--log-level", "ERROR"]) == 2


def test_cli_reports_incomplete_material(tmp_path, fast_config):
    fast_config.material = MaterialConfig(
        custom=Material(
            name="Slag",
            density=3000.0,
            thermal_conductivity=MaterialProperty.constant(1.5),
            specific_heat=MaterialProperty.constant(900.0),
        )
    )
    data = fast_config.to_dict()
    del data["material"]["custom"]["density"]
    path = tmp_path / "bad.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    assert main(["--config", str(path), "--log-level", "ERROR"]) == 2


def test_log_records_carry_the_thread_name(tmp_path):
    log_file = tmp_path / "threads.log"
    setup_logging(level=logging.INFO, log_file=str(log_file))

    worker = threading.Thread(
        target=lambda: logging.getLogger("plasmafurnace.worker").info("step done"),
        name="SimulationWorker",
    )
    worker.start()
    worker.join()

    lines = log_file.read_text(encoding="utf-8").splitlines()
    assert any("SimulationWorker" in line and "step done" in line for line in lines)
    assert any("MainThread" in line and "Logging initialized at INFO" in line for line in lines)


def test_setup_logging_accepts_level_names_and_replaces_handlers(tmp_path):
    setup_logging(level="debug", log_file=str(tmp_path / "first.log"))
    setup_logging(level="WARNING")
    logger = logging.getLogger("plasmafurnace")
    assert logger.level == logging.WARNING
    assert len(logger.handlers) == 1
