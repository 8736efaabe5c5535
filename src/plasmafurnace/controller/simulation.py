"""
Simulation Orchestrator
=======================
Owns one furnace run: builds the mesh, material, physics and solver from a
SimulationConfig, steps the field to the end time, and keeps the state,
energy balance and snapshots that callers observe.

Why is this file needed?
------------------------
1. Time-Stepping: It manages the temporal loop (t = 0 to t = end), including
   the shortened last step and automatic dt reduction after an instability.
2. Control: pause, resume and cancel requests are honoured between steps.
3. Data Generation: It records snapshots, progress and the energy balance,
   and guards everything other threads may read with a lock.

Note: This module is pure Python/NumPy. Threading is used only for the lock
and the control events; the worker thread itself lives in ``workers``.
"""
from __future__ import annotations

import dataclasses
import logging
import threading
import time as _time
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Dict, Optional

import numpy as np

from plasmafurnace.config import DEFAULT_SNAPSHOT_COUNT
from plasmafurnace.controller.fdm.analysis.field import ThermalField
from plasmafurnace.controller.fdm.analysis.model import ThermalModel
from plasmafurnace.controller.fdm.pre.formula import FormulaEvaluator
from plasmafurnace.controller.fdm.solvers.solver import (
    HeatSolver,
    SolverMethod,
    StepResult,
    create_solver,
)
from plasmafurnace.errors import (
    ConvergenceFailure,
    InvalidParameter,
    NumericalInstability,
    SimulationError,
    SimulationStateError,
)
from plasmafurnace.model.config import SimulationConfig
from plasmafurnace.model.materials import MaterialLibrary
from plasmafurnace.model.results import ResultsMetadata, SimulationResults, TimeStepSnapshot

logger = logging.getLogger(__name__)

# Relative slack when comparing simulated times
_TIME_EPS = 1e-9


class SimulationStatus(StrEnum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            SimulationStatus.COMPLETED,
            SimulationStatus.FAILED,
            SimulationStatus.CANCELLED,
        )


@dataclass
class SimulationState:
    status: SimulationStatus = SimulationStatus.NOT_STARTED
    current_time: float = 0.0
    current_step: int = 0
    total_time: float = 0.0
    energy_conservation_error: float = 0.0
    error: Optional[SimulationError] = None
    started_at: Optional[float] = None
    finished_at: Optional[float] = None

    @property
    def progress_fraction(self) -> float:
        if self.total_time <= 0.0:
            return 0.0
        return min(1.0, self.current_time / self.total_time)


@dataclass(frozen=True)
class ProgressInfo:
    status: SimulationStatus
    current_time: float
    current_step: int
    progress_fraction: float
    energy_conservation_error: float


class EnergyMonitor:
    """
    Running energy balance of the free nodes.

    Compares the change of stored energy Σ ρ·V·H with the cumulative torch
    input, wall loss and inflow from fixed-temperature nodes.
    """

    def __init__(self, model: ThermalModel, field: ThermalField) -> None:
        self.model = model
        self.initial_energy = model.stored_energy(field.enthalpy)
        self.current_energy = self.initial_energy
        self.energy_input = 0.0
        self.energy_loss = 0.0
        self.energy_dirichlet = 0.0

    def record(self, result: StepResult, field: ThermalField) -> None:
        self.energy_input += result.energy_source
        self.energy_loss += result.energy_loss
        self.energy_dirichlet += result.energy_dirichlet
        self.current_energy = self.model.stored_energy(field.enthalpy)

    @property
    def stored_change(self) -> float:
        return self.current_energy - self.initial_energy

    @property
    def expected_change(self) -> float:
        return self.energy_input - self.energy_loss + self.energy_dirichlet

    @property
    def conservation_error(self) -> float:
        """|ΔE_stored − (E_in − E_loss + E_dir)| relative to the energy moved."""
        scale = self.energy_input + self.energy_loss + abs(self.energy_dirichlet)
        return abs(self.stored_change - self.expected_change) / max(scale, 1e-12)

    def to_dict(self) -> Dict[str, float]:
        return {
            "initial_energy": self.initial_energy,
            "final_energy": self.current_energy,
            "energy_input": self.energy_input,
            "energy_loss": self.energy_loss,
            "energy_dirichlet": self.energy_dirichlet,
            "conservation_error": self.conservation_error,
        }


class Simulation:
    """
    One furnace run.

    The object is built from a configuration, then driven by ``run`` on a
    single thread. ``pause``, ``resume``, ``cancel``, ``progress``,
    ``state`` and ``current_field`` may be called from any other thread;
    they only ever hand out copies.
    """

    def __init__(
        self,
        config: SimulationConfig,
        evaluator: Optional[FormulaEvaluator] = None,
        library: Optional[MaterialLibrary] = None,
        solver: Optional[HeatSolver] = None,
    ) -> None:
        """
        Initialize the simulation.

        Args:
            config: Run configuration (validated here).
            evaluator: Formula capability for formula-backed properties.
            library: Material library used to resolve the material name.
            solver: Solver to use instead of the one the configuration selects.

        Raises:
            InvalidParameter: If the configuration or the time step is invalid.
            MeshGenerationError: If the mesh cannot be built.
            FormulaError: If a formula property cannot be evaluated.
        """
        logger.info("Initializing simulation...")
        config.validate(library)
        self.config = config

        mesh = config.create_mesh()
        material = config.create_material(library)
        physics = config.create_physics(material)
        self.model = ThermalModel(mesh, material, physics, evaluator)
        self.solver = solver or create_solver(config.solver.to_settings())

        self.field = ThermalField.uniform(mesh, config.physics.initial_temperature, self.model.curve)
        self.model.apply_dirichlet(self.field.temperature)
        self.field.sync_from_temperature(self.model.curve)

        self.time_step = self.calculate_time_step()
        self.storage_interval = (
            config.solver.storage_interval
            if config.solver.storage_interval is not None
            else config.solver.total_time / DEFAULT_SNAPSHOT_COUNT
        )

        self.energy = EnergyMonitor(self.model, self.field)
        self.results = SimulationResults(r_coords=mesh.r_coords.copy(), z_coords=mesh.z_coords.copy())

        self._lock = threading.Lock()
        self._state = SimulationState(total_time=config.solver.total_time)
        self._latest = self.field.copy()
        self._cancel_event = threading.Event()
        self._resume_event = threading.Event()
        self._resume_event.set()

        logger.info(
            f"Simulation ready: {mesh.nr}x{mesh.nz} nodes, material '{material.name}', "
            f"{self.solver.method.value}, dt = {self.time_step:.4g} s"
        )

    # ---- time step ----

    def calculate_time_step(self) -> float:
        """
        Time step of the run.

        Explicit: the CFL bound, capped by ``max_time_step``; a configured
        ``time_step`` above the bound is rejected unless explicitly accepted.
        Implicit: the configured ``time_step`` or a multiple of the CFL bound.
        """
        cfg = self.config.solver
        stable = self.solver.calculate_stable_timestep(self.model)

        if self.solver.method == SolverMethod.FORWARD_EULER:
            if cfg.time_step is not None:
                if cfg.time_step > stable * (1.0 + _TIME_EPS) and not cfg.accept_unstable_time_step:
                    raise InvalidParameter(
                        parameter="time_step",
                        value=cfg.time_step,
                        range=f"<= {stable:.6g} (explicit stability limit)",
                    )
                if cfg.time_step > stable:
                    logger.warning(
                        f"Time step {cfg.time_step:.4g} s exceeds the stability limit {stable:.4g} s"
                    )
                dt = cfg.time_step
            else:
                dt = stable
        else:
            dt = cfg.time_step if cfg.time_step is not None else cfg.implicit_cfl_multiplier * stable

        if cfg.max_time_step is not None:
            dt = min(dt, cfg.max_time_step)
        return min(dt, cfg.total_time)

    # ---- control (any thread) ----

    @property
    def status(self) -> SimulationStatus:
        with self._lock:
            return self._state.status

    @property
    def state(self) -> SimulationState:
        with self._lock:
            return dataclasses.replace(self._state)

    def progress(self) -> ProgressInfo:
        with self._lock:
            s = self._state
            return ProgressInfo(
                status=s.status,
                current_time=s.current_time,
                current_step=s.current_step,
                progress_fraction=s.progress_fraction,
                energy_conservation_error=s.energy_conservation_error,
            )

    def current_field(self) -> ThermalField:
        """Copy of the field after the last completed step."""
        with self._lock:
            return self._latest.copy()

    def pause(self) -> None:
        with self._lock:
            if self._state.status != SimulationStatus.RUNNING:
                raise SimulationStateError(self._state.status.value, "pause")
            self._state.status = SimulationStatus.PAUSED
            self._resume_event.clear()
        logger.info("Simulation paused")

    def resume(self) -> None:
        with self._lock:
            if self._state.status != SimulationStatus.PAUSED:
                raise SimulationStateError(self._state.status.value, "resume")
            self._state.status = SimulationStatus.RUNNING
            self._resume_event.set()
        logger.info("Simulation resumed")

    def cancel(self) -> None:
        with self._lock:
            status = self._state.status
            if status.is_terminal:
                raise SimulationStateError(status.value, "cancel")
            self._cancel_event.set()
            self._resume_event.set()
            if status == SimulationStatus.NOT_STARTED:
                self._state.status = SimulationStatus.CANCELLED
                self._state.finished_at = _time.time()
        logger.info("Simulation cancellation requested")

    # ---- run (worker thread) ----

    def run(self) -> SimulationResults:
        """
        Step the field to the end time.

        Returns:
            The results record, also available as ``self.results``.

        Raises:
            SimulationStateError: If the run was already started or cancelled.
            SimulationError: The error that failed the run (state FAILED).
        """
        with self._lock:
            if self._state.status != SimulationStatus.NOT_STARTED:
                raise SimulationStateError(self._state.status.value, "run")
            self._state.status = SimulationStatus.RUNNING
            self._state.started_at = _time.time()

        logger.info(
            f"Starting simulation: total time {self.config.solver.total_time:.4g} s, "
            f"storage interval {self.storage_interval:.4g} s"
        )
        try:
            self._loop()
        except SimulationError as exc:
            logger.error(f"Simulation failed: {exc}")
            self._finish(SimulationStatus.FAILED, exc)
            raise
        except Exception:
            logger.exception("Unexpected error during simulation")
            self._finish(SimulationStatus.FAILED, None)
            raise

        return self.results

    def _loop(self) -> None:
        total_time = self.config.solver.total_time
        dt = self.time_step
        t = 0.0
        step = 0

        self._store_snapshot(t, step)
        next_store = self.storage_interval

        while t < total_time * (1.0 - _TIME_EPS):
            if not self._resume_event.is_set():
                logger.debug(f"Waiting while paused at t = {t:.6g} s")
                self._resume_event.wait()
            if self._cancel_event.is_set():
                logger.info(f"Simulation cancelled at step {step}, t = {t:.6g} s")
                self._store_final(t, step)
                self._finish(SimulationStatus.CANCELLED, None)
                return

            step_dt = min(dt, total_time - t)
            result = self._advance(step, t, step_dt)
            if result.dt < step_dt:
                dt = result.dt

            if result.warnings:
                self.results.warnings.extend(w.to_dict() for w in result.warnings)
            step_start, step_index = t, step

            # land exactly on the end time
            t = total_time if total_time - (t + result.dt) <= total_time * _TIME_EPS else t + result.dt
            step += 1
            self.energy.record(result, self.field)

            with self._lock:
                self._latest = self.field.copy()
                self._state.current_time = t
                self._state.current_step = step
                self._state.energy_conservation_error = self.energy.conservation_error

            if t >= next_store * (1.0 - _TIME_EPS):
                self._store_snapshot(t, step)
                while next_store <= t * (1.0 + _TIME_EPS):
                    next_store += self.storage_interval

            if result.warnings and self.config.solver.fail_on_convergence_warning:
                w = result.warnings[0]
                raise ConvergenceFailure(
                    step=step_index, time=step_start, iterations=w.iterations, residual=w.residual
                )

            logger.debug(
                f"Step {step}: t = {t:.6g} s, dt = {result.dt:.4g} s, "
                f"T_max = {np.max(self.field.temperature):.2f} K, iterations {result.iterations}"
            )

        self._store_final(t, step)
        self._finish(SimulationStatus.COMPLETED, None)

    def _advance(self, step: int, t: float, dt: float) -> StepResult:
        """One step with dt halving after a numerical instability."""
        backup = self.field.copy()
        retries = self.config.solver.max_instability_retries
        attempt = 0
        while True:
            try:
                return self.solver.solve_time_step(self.field, self.model, dt, step, t)
            except NumericalInstability:
                self.field.restore(backup)
                if attempt >= retries:
                    logger.error(f"Numerical instability persists after {retries} dt reductions")
                    raise
                attempt += 1
                dt *= 0.5
                logger.warning(
                    f"Numerical instability at step {step}, t = {t:.6g} s; "
                    f"retrying with dt = {dt:.4g} s ({attempt}/{retries})"
                )

    def _store_snapshot(self, t: float, step: int) -> None:
        self.results.snapshots.append(
            TimeStepSnapshot(
                time=t,
                step_index=step,
                temperature=self.field.temperature.copy(),
                liquid_fraction=(
                    self.field.liquid_fraction.copy() if self.model.has_phase_change else None
                ),
            )
        )

    def _store_final(self, t: float, step: int) -> None:
        snapshots = self.results.snapshots
        if not snapshots or snapshots[-1].step_index != step:
            self._store_snapshot(t, step)

    def _finish(self, status: SimulationStatus, error: Optional[SimulationError]) -> None:
        with self._lock:
            self._state.status = status
            self._state.error = error
            self._state.finished_at = _time.time()
            state = dataclasses.replace(self._state)

        mesh = self.model.mesh
        results = self.results
        results.final_temperature = self.field.temperature.copy()
        results.energy = self.energy.to_dict()
        results.status = status.value
        results.error = error.to_dict() if error is not None else None
        results.metadata = ResultsMetadata(
            nr=mesh.nr,
            nz=mesh.nz,
            radius=mesh.radius,
            height=mesh.height,
            time_step=self.time_step,
            storage_interval=self.storage_interval,
            total_time=state.current_time,
            total_steps=state.current_step,
            simulation_duration=(state.finished_at or 0.0) - (state.started_at or 0.0),
            solver_method=self.solver.method.value,
            material=self.model.material.name,
        )
        results.update_metadata_range()

        logger.info(
            f"Simulation {status.value}: {state.current_step} steps, "
            f"t = {state.current_time:.6g} s, {len(results.snapshots)} snapshots, "
            f"energy error {self.energy.conservation_error:.3e}"
        )

    def summary(self) -> Dict[str, Any]:
        state = self.state
        return {
            "status": state.status.value,
            "current_time": state.current_time,
            "current_step": state.current_step,
            "energy": self.energy.to_dict(),
            "snapshots": len(self.results.snapshots),
        }
