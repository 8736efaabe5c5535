"""
Simulation Configuration
========================
Dataclass records describing one furnace run: geometry, mesh resolution,
initial and boundary conditions, solver selection, torches and material.

Every record validates itself (raising InvalidParameter) and round-trips
through plain dictionaries, so a surrounding layer can store it in any file
format it likes.

Classes:
    GeometryConfig, MeshConfig, PhysicsConfig, SolverConfig, TorchConfig,
    SimulationConfig.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from plasmafurnace.config import DEFAULT_AMBIENT_TEMPERATURE
from plasmafurnace.controller.fdm.analysis.model import FaceAveraging
from plasmafurnace.controller.fdm.pre.heat_sources import PlasmaPhysics, PlasmaTorch
from plasmafurnace.controller.fdm.pre.material import Material
from plasmafurnace.controller.fdm.pre.mesh import CylindricalMesh, MeshPreset
from plasmafurnace.controller.fdm.solvers.solver import (
    LinearSolverKind,
    SolverMethod,
    SolverSettings,
)
from plasmafurnace.controller.fdm.solvers.sor import SorOrdering
from plasmafurnace.errors import InvalidParameter
from plasmafurnace.model.bc import BoundaryConditions
from plasmafurnace.model.materials import MaterialConfig, MaterialLibrary
from plasmafurnace.utils import validate_non_negative, validate_positive, validate_range

logger = logging.getLogger(__name__)


@dataclass
class GeometryConfig:
    radius: float = 1.0  # m
    height: float = 2.0  # m

    def validate(self) -> None:
        validate_positive(self.radius, "radius")
        validate_positive(self.height, "height")

    def to_dict(self) -> Dict[str, Any]:
        return {"radius": self.radius, "height": self.height}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> GeometryConfig:
        return GeometryConfig(
            radius=float(data.get("radius", 1.0)),
            height=float(data.get("height", 2.0)),
        )


@dataclass
class MeshConfig:
    """Preset resolution, or explicit node counts when the preset is CUSTOM."""
    preset: MeshPreset = MeshPreset.FAST
    nr: Optional[int] = None
    nz: Optional[int] = None

    def resolution(self) -> tuple[int, int]:
        nr, nz = self.preset.resolution()
        if self.preset == MeshPreset.CUSTOM:
            nr = self.nr if self.nr is not None else nr
            nz = self.nz if self.nz is not None else nz
        return nr, nz

    def create_mesh(self, geometry: GeometryConfig) -> CylindricalMesh:
        nr, nz = self.resolution()
        return CylindricalMesh(radius=geometry.radius, height=geometry.height, nr=nr, nz=nz)

    def validate(self) -> None:
        nr, nz = self.resolution()
        if nr < 2:
            raise InvalidParameter(parameter="nr", value=nr, range=">= 2")
        if nz < 2:
            raise InvalidParameter(parameter="nz", value=nz, range=">= 2")

    def to_dict(self) -> Dict[str, Any]:
        return {"preset": self.preset.value, "nr": self.nr, "nz": self.nz}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> MeshConfig:
        return MeshConfig(
            preset=MeshPreset(data.get("preset", MeshPreset.FAST)),
            nr=data.get("nr"),
            nz=data.get("nz"),
        )


@dataclass
class PhysicsConfig:
    initial_temperature: float = DEFAULT_AMBIENT_TEMPERATURE  # K
    boundary_conditions: BoundaryConditions = field(default_factory=BoundaryConditions)

    def validate(self) -> None:
        validate_positive(self.initial_temperature, "initial_temperature")
        self.boundary_conditions.validate()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "initial_temperature": self.initial_temperature,
            "boundary_conditions": self.boundary_conditions.to_dict(),
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> PhysicsConfig:
        return PhysicsConfig(
            initial_temperature=float(
                data.get("initial_temperature", DEFAULT_AMBIENT_TEMPERATURE)
            ),
            boundary_conditions=BoundaryConditions.from_dict(data.get("boundary_conditions", {})),
        )


@dataclass
class TorchConfig:
    r: float = 0.5  # m
    z: float = 1.0  # m
    power: float = 100e3  # W
    efficiency: float = 0.8
    sigma: float = 0.1  # m

    def to_torch(self) -> PlasmaTorch:
        return PlasmaTorch(
            r0=self.r, z0=self.z, power=self.power, efficiency=self.efficiency, sigma=self.sigma
        )

    def validate(self, geometry: GeometryConfig) -> None:
        validate_range(self.r, 0.0, geometry.radius, "torch.r")
        validate_range(self.z, 0.0, geometry.height, "torch.z")
        validate_non_negative(self.power, "torch.power")
        validate_range(self.efficiency, 0.0, 1.0, "torch.efficiency")
        validate_positive(self.sigma, "torch.sigma")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "r": self.r,
            "z": self.z,
            "power": self.power,
            "efficiency": self.efficiency,
            "sigma": self.sigma,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> TorchConfig:
        d = TorchConfig()
        return TorchConfig(
            r=float(data.get("r", d.r)),
            z=float(data.get("z", d.z)),
            power=float(data.get("power", d.power)),
            efficiency=float(data.get("efficiency", d.efficiency)),
            sigma=float(data.get("sigma", d.sigma)),
        )


@dataclass
class SolverConfig:
    """
    Time control and numerics of a run.

    ``time_step`` fixes dt; otherwise the explicit method uses the CFL bound
    (capped by ``max_time_step``) and the implicit method uses
    ``implicit_cfl_multiplier`` times that bound. ``storage_interval`` of
    None stores about a hundred snapshots per run.
    """
    method: SolverMethod = SolverMethod.FORWARD_EULER
    total_time: float = 60.0  # s
    time_step: Optional[float] = None  # s
    max_time_step: Optional[float] = None  # s
    implicit_cfl_multiplier: float = 10.0
    storage_interval: Optional[float] = None  # s
    max_instability_retries: int = 3
    fail_on_convergence_warning: bool = False
    accept_unstable_time_step: bool = False

    cfl_factor: float = 0.25
    face_averaging: FaceAveraging = FaceAveraging.HARMONIC
    sor_omega: float = 1.5
    sor_tolerance: float = 1e-6
    max_iterations: int = 10000
    sor_ordering: SorOrdering = SorOrdering.RED_BLACK
    linear_solver: LinearSolverKind = LinearSolverKind.SOR
    enthalpy_tolerance: float = 1e-3
    max_enthalpy_iterations: int = 50

    def to_settings(self) -> SolverSettings:
        return SolverSettings(
            method=self.method,
            cfl_factor=self.cfl_factor,
            face_averaging=self.face_averaging,
            sor_omega=self.sor_omega,
            sor_tolerance=self.sor_tolerance,
            max_iterations=self.max_iterations,
            sor_ordering=self.sor_ordering,
            linear_solver=self.linear_solver,
            enthalpy_tolerance=self.enthalpy_tolerance,
            max_enthalpy_iterations=self.max_enthalpy_iterations,
        )

    def validate(self) -> None:
        validate_positive(self.total_time, "total_time")
        if self.time_step is not None:
            validate_positive(self.time_step, "time_step")
        if self.max_time_step is not None:
            validate_positive(self.max_time_step, "max_time_step")
        validate_positive(self.implicit_cfl_multiplier, "implicit_cfl_multiplier")
        if self.storage_interval is not None:
            validate_positive(self.storage_interval, "storage_interval")
        validate_non_negative(self.max_instability_retries, "max_instability_retries")
        self.to_settings().validate()

    def to_dict(self) -> Dict[str, Any]:
        d = self.to_settings().to_dict()
        d.update({
            "total_time": self.total_time,
            "time_step": self.time_step,
            "max_time_step": self.max_time_step,
            "implicit_cfl_multiplier": self.implicit_cfl_multiplier,
            "storage_interval": self.storage_interval,
            "max_instability_retries": self.max_instability_retries,
            "fail_on_convergence_warning": self.fail_on_convergence_warning,
            "accept_unstable_time_step": self.accept_unstable_time_step,
        })
        return d

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> SolverConfig:
        s = SolverSettings.from_dict(data)
        d = SolverConfig()
        return SolverConfig(
            method=s.method,
            total_time=float(data.get("total_time", d.total_time)),
            time_step=data.get("time_step"),
            max_time_step=data.get("max_time_step"),
            implicit_cfl_multiplier=float(
                data.get("implicit_cfl_multiplier", d.implicit_cfl_multiplier)
            ),
            storage_interval=data.get("storage_interval"),
            max_instability_retries=int(
                data.get("max_instability_retries", d.max_instability_retries)
            ),
            fail_on_convergence_warning=bool(
                data.get("fail_on_convergence_warning", d.fail_on_convergence_warning)
            ),
            accept_unstable_time_step=bool(
                data.get("accept_unstable_time_step", d.accept_unstable_time_step)
            ),
            cfl_factor=s.cfl_factor,
            face_averaging=s.face_averaging,
            sor_omega=s.sor_omega,
            sor_tolerance=s.sor_tolerance,
            max_iterations=s.max_iterations,
            sor_ordering=s.sor_ordering,
            linear_solver=s.linear_solver,
            enthalpy_tolerance=s.enthalpy_tolerance,
            max_enthalpy_iterations=s.max_enthalpy_iterations,
        )


@dataclass
class SimulationConfig:
    geometry: GeometryConfig = field(default_factory=GeometryConfig)
    mesh: MeshConfig = field(default_factory=MeshConfig)
    physics: PhysicsConfig = field(default_factory=PhysicsConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)
    torches: List[TorchConfig] = field(default_factory=lambda: [TorchConfig()])
    material: MaterialConfig = field(default_factory=MaterialConfig)

    def validate(self, library: Optional[MaterialLibrary] = None) -> None:
        """Raises InvalidParameter on the first invalid entry."""
        self.geometry.validate()
        self.mesh.validate()
        self.physics.validate()
        self.solver.validate()
        for torch in self.torches:
            torch.validate(self.geometry)
        self.material.validate(library)

    def create_mesh(self) -> CylindricalMesh:
        return self.mesh.create_mesh(self.geometry)

    def create_material(self, library: Optional[MaterialLibrary] = None) -> Material:
        return self.material.resolve(library)

    def create_physics(self, material: Material) -> PlasmaPhysics:
        return PlasmaPhysics(
            torches=[t.to_torch() for t in self.torches],
            boundary_conditions=self.physics.boundary_conditions,
            emissivity=material.emissivity,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "geometry": self.geometry.to_dict(),
            "mesh": self.mesh.to_dict(),
            "physics": self.physics.to_dict(),
            "solver": self.solver.to_dict(),
            "torches": [t.to_dict() for t in self.torches],
            "material": self.material.to_dict(),
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> SimulationConfig:
        torches = data.get("torches")
        return SimulationConfig(
            geometry=GeometryConfig.from_dict(data.get("geometry", {})),
            mesh=MeshConfig.from_dict(data.get("mesh", {})),
            physics=PhysicsConfig.from_dict(data.get("physics", {})),
            solver=SolverConfig.from_dict(data.get("solver", {})),
            torches=[TorchConfig.from_dict(t) for t in torches] if torches is not None else [TorchConfig()],
            material=MaterialConfig.from_dict(data.get("material", {})),
        )
