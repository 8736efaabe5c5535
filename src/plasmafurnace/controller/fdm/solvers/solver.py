from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Dict, List

import numpy as np

from plasmafurnace.controller.fdm.analysis.model import FaceAveraging
from plasmafurnace.controller.fdm.solvers.sor import (
    SorOrdering,
    SorResult,
    StencilSystem,
    solve_direct,
    solve_sor,
)
from plasmafurnace.errors import ConvergenceWarning, NumericalInstability
from plasmafurnace.utils import validate_positive, validate_range

if TYPE_CHECKING:
    import numpy.typing as npt

    from plasmafurnace.controller.fdm.analysis.field import ThermalField
    from plasmafurnace.controller.fdm.analysis.model import ThermalModel

logger = logging.getLogger(__name__)


class SolverMethod(StrEnum):
    FORWARD_EULER = "forward_euler"
    CRANK_NICOLSON = "crank_nicolson"


class LinearSolverKind(StrEnum):
    SOR = "sor"
    DIRECT = "direct"


@dataclass
class SolverSettings:
    """Numerical knobs of the time integrators."""
    method: SolverMethod = SolverMethod.FORWARD_EULER
    cfl_factor: float = 0.25
    face_averaging: FaceAveraging = FaceAveraging.HARMONIC

    # Crank-Nicolson only
    sor_omega: float = 1.5
    sor_tolerance: float = 1e-6  # K
    max_iterations: int = 10000
    sor_ordering: SorOrdering = SorOrdering.RED_BLACK
    linear_solver: LinearSolverKind = LinearSolverKind.SOR
    enthalpy_tolerance: float = 1e-3  # K
    max_enthalpy_iterations: int = 50

    def validate(self) -> None:
        validate_range(self.cfl_factor, 0.0, 1.0, "cfl_factor")
        validate_positive(self.cfl_factor, "cfl_factor")
        validate_range(self.sor_omega, 1.0, 2.0, "sor_omega", include_max=False)
        validate_positive(self.sor_tolerance, "sor_tolerance")
        validate_positive(self.max_iterations, "max_iterations")
        validate_positive(self.enthalpy_tolerance, "enthalpy_tolerance")
        validate_positive(self.max_enthalpy_iterations, "max_enthalpy_iterations")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method.value,
            "cfl_factor": self.cfl_factor,
            "face_averaging": self.face_averaging.value,
            "sor_omega": self.sor_omega,
            "sor_tolerance": self.sor_tolerance,
            "max_iterations": self.max_iterations,
            "sor_ordering": self.sor_ordering.value,
            "linear_solver": self.linear_solver.value,
            "enthalpy_tolerance": self.enthalpy_tolerance,
            "max_enthalpy_iterations": self.max_enthalpy_iterations,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> SolverSettings:
        d = SolverSettings()
        return SolverSettings(
            method=SolverMethod(data.get("method", d.method)),
            cfl_factor=float(data.get("cfl_factor", d.cfl_factor)),
            face_averaging=FaceAveraging(data.get("face_averaging", d.face_averaging)),
            sor_omega=float(data.get("sor_omega", d.sor_omega)),
            sor_tolerance=float(data.get("sor_tolerance", d.sor_tolerance)),
            max_iterations=int(data.get("max_iterations", d.max_iterations)),
            sor_ordering=SorOrdering(data.get("sor_ordering", d.sor_ordering)),
            linear_solver=LinearSolverKind(data.get("linear_solver", d.linear_solver)),
            enthalpy_tolerance=float(data.get("enthalpy_tolerance", d.enthalpy_tolerance)),
            max_enthalpy_iterations=int(
                data.get("max_enthalpy_iterations", d.max_enthalpy_iterations)
            ),
        )


@dataclass
class StepResult:
    """
    Outcome of one time step.

    Energies are in J over the step and refer to free (non fixed-temperature)
    nodes: heat deposited by the torches, heat lost through the walls and
    heat conducted in from fixed-temperature nodes.
    """
    dt: float
    iterations: int = 0
    residual: float = 0.0
    converged: bool = True
    warnings: List[ConvergenceWarning] = field(default_factory=list)
    energy_source: float = 0.0
    energy_loss: float = 0.0
    energy_dirichlet: float = 0.0
    enthalpy_iterations: int = 0


class HeatSolver(ABC):
    """Advances a ThermalField by one time step."""

    def __init__(self, settings: SolverSettings | None = None) -> None:
        self.settings = settings or SolverSettings()
        self.settings.validate()

    @property
    @abstractmethod
    def method(self) -> SolverMethod:
        pass

    def calculate_stable_timestep(self, model: ThermalModel) -> float:
        """Largest explicit time step honouring the CFL condition (not enforced here)."""
        return model.stable_time_step(self.settings.cfl_factor)

    @abstractmethod
    def solve_time_step(
        self,
        field: ThermalField,
        model: ThermalModel,
        dt: float,
        step: int,
        time: float,
    ) -> StepResult:
        """
        Advance ``field`` in place from ``time`` to ``time + dt``.

        Raises:
            NumericalInstability: If the new field is not finite. The field
                is left untouched in that case.
        """
        pass

    @staticmethod
    def _require_finite(values: npt.NDArray[np.float64], step: int, time: float) -> None:
        if not np.all(np.isfinite(values)):
            logger.debug(f"Non-finite values at step {step}, t = {time:.6g} s")
            raise NumericalInstability(step=step, time=time)


class ExplicitSolver(HeatSolver):
    """
    Forward Euler integration.

    Without phase change the temperature is advanced with c_p(T^n); with
    phase change the enthalpy is advanced and the temperature recovered
    from it.
    """

    @property
    def method(self) -> SolverMethod:
        return SolverMethod.FORWARD_EULER

    def solve_time_step(
        self,
        field: ThermalField,
        model: ThermalModel,
        dt: float,
        step: int,
        time: float,
    ) -> StepResult:
        t_old = field.temperature.copy()
        free = model.free_mask

        with np.errstate(over="ignore", invalid="ignore"):
            g_r, g_z = model.conductances(t_old, self.settings.face_averaging)
            loss = model.boundary_loss(t_old)
            net = model.conduction(t_old, g_r, g_z) + model.source_power - loss
            self._require_finite(net, step, time)

            if model.has_phase_change:
                h_new = field.enthalpy + dt * net / model.heat_capacity_volume
                h_new[~free] = model.curve.enthalpy(model.dirichlet_values[~free])
                self._require_finite(h_new, step, time)
                field.enthalpy[...] = h_new
                field.sync_from_enthalpy(model.curve)
            else:
                cp = model.specific_heat(t_old)
                t_new = t_old + dt * net / (model.heat_capacity_volume * cp)
                model.apply_dirichlet(t_new)
                self._require_finite(t_new, step, time)
                field.temperature[...] = t_new
                field.sync_from_temperature(model.curve)

        return StepResult(
            dt=dt,
            iterations=1,
            energy_source=dt * float(np.sum(model.source_power[free])),
            energy_loss=dt * float(np.sum(loss[free])),
            energy_dirichlet=dt * model.dirichlet_inflow(t_old, g_r, g_z),
        )


class CrankNicolsonSolver(HeatSolver):
    """
    Crank-Nicolson integration (θ = 1/2) with an iterative linear solve.

    Conductances are lagged at T^n; torch sources and wall losses are taken
    explicitly at T^n. With phase change an outer iteration linearises the
    enthalpy around the current iterate with the chord capacity and recovers
    the temperature exactly from H after every solve.
    """

    theta: float = 0.5

    @property
    def method(self) -> SolverMethod:
        return SolverMethod.CRANK_NICOLSON

    def _solve_linear(self, system: StencilSystem, guess: npt.NDArray[np.float64]) -> SorResult:
        if self.settings.linear_solver == LinearSolverKind.DIRECT:
            return solve_direct(system)
        return solve_sor(
            system,
            guess,
            omega=self.settings.sor_omega,
            tolerance=self.settings.sor_tolerance,
            max_iterations=self.settings.max_iterations,
            ordering=self.settings.sor_ordering,
        )

    def _sor_warning(self, result: SorResult, step: int, time: float) -> ConvergenceWarning:
        return ConvergenceWarning(
            stage="sor",
            step=step,
            time=time,
            iterations=result.iterations,
            residual=result.residual,
            tolerance=self.settings.sor_tolerance,
        )

    def solve_time_step(
        self,
        field: ThermalField,
        model: ThermalModel,
        dt: float,
        step: int,
        time: float,
    ) -> StepResult:
        theta = self.theta
        t_old = field.temperature.copy()
        h_old = field.enthalpy.copy()
        free = model.free_mask
        mass = model.heat_capacity_volume
        warnings: List[ConvergenceWarning] = []
        iterations = 0
        enthalpy_iterations = 0

        with np.errstate(over="ignore", invalid="ignore"):
            g_r, g_z = model.conductances(t_old, self.settings.face_averaging)
            loss = model.boundary_loss(t_old)
            explicit = (1.0 - theta) * model.conduction(t_old, g_r, g_z) + model.source_power - loss
            self._require_finite(explicit, step, time)

            if not model.has_phase_change:
                storage = mass * model.specific_heat(t_old) / dt
                system = StencilSystem.assemble(
                    g_r, g_z, storage, storage * t_old + explicit, theta,
                    model.dirichlet_mask, model.dirichlet_values,
                )
                linear = self._solve_linear(system, t_old)
                iterations = linear.iterations
                if not linear.converged:
                    warnings.append(self._sor_warning(linear, step, time))
                t_new = linear.solution
                t_implicit = t_new
                self._require_finite(t_new, step, time)
                field.temperature[...] = t_new
                field.sync_from_temperature(model.curve)
            else:
                curve = model.curve
                t_k = t_old.copy()
                h_k = h_old.copy()
                h_fixed = curve.enthalpy(model.dirichlet_values[~free])
                change = np.inf
                for enthalpy_iterations in range(1, self.settings.max_enthalpy_iterations + 1):
                    capacity = curve.apparent_capacity(t_k)
                    storage = mass * capacity / dt
                    rhs = storage * t_k - mass / dt * (h_k - h_old) + explicit
                    system = StencilSystem.assemble(
                        g_r, g_z, storage, rhs, theta,
                        model.dirichlet_mask, model.dirichlet_values,
                    )
                    linear = self._solve_linear(system, t_k)
                    iterations += linear.iterations
                    if not linear.converged:
                        warnings.append(self._sor_warning(linear, step, time))

                    t_implicit = linear.solution
                    self._require_finite(t_implicit, step, time)
                    h_k = h_k + capacity * (t_implicit - t_k)
                    h_k[~free] = h_fixed
                    t_k = curve.temperature(h_k)
                    change = float(np.max(np.abs(t_implicit - t_k)[free], initial=0.0))
                    if change < self.settings.enthalpy_tolerance:
                        break
                else:
                    warnings.append(
                        ConvergenceWarning(
                            stage="enthalpy",
                            step=step,
                            time=time,
                            iterations=enthalpy_iterations,
                            residual=change,
                            tolerance=self.settings.enthalpy_tolerance,
                        )
                    )

                self._require_finite(h_k, step, time)
                field.enthalpy[...] = h_k
                field.sync_from_enthalpy(curve)

        for w in warnings:
            logger.warning(str(w))

        dirichlet = theta * model.dirichlet_inflow(t_implicit, g_r, g_z)
        dirichlet += (1.0 - theta) * model.dirichlet_inflow(t_old, g_r, g_z)
        return StepResult(
            dt=dt,
            iterations=iterations,
            residual=linear.residual,
            converged=not warnings,
            warnings=warnings,
            energy_source=dt * float(np.sum(model.source_power[free])),
            energy_loss=dt * float(np.sum(loss[free])),
            energy_dirichlet=dt * dirichlet,
            enthalpy_iterations=enthalpy_iterations,
        )


def create_solver(settings: SolverSettings | None = None) -> HeatSolver:
    settings = settings or SolverSettings()
    if settings.method == SolverMethod.CRANK_NICOLSON:
        return CrankNicolsonSolver(settings)
    return ExplicitSolver(settings)
