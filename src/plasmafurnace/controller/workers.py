"""
Background Workers (Threading)
==============================
This module runs a Simulation on a dedicated thread and exposes the handle a
host application uses to control and observe it.

Why is this file needed?
------------------------
1. Responsiveness: The time-stepping loop can run for minutes. Running it on
   a worker thread keeps the caller (UI, CLI, service) free.
2. Safe access: The handle only forwards control requests and returns
   copies, so callers never touch the live field.

Classes:
    SimulationWorker: Thread that runs the simulation loop.
    SimulationHandle: Thread-safe control surface (start/pause/resume/cancel,
        progress polling, current field, results).
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from plasmafurnace.controller.fdm.analysis.field import ThermalField
from plasmafurnace.controller.simulation import ProgressInfo, Simulation, SimulationStatus
from plasmafurnace.errors import SimulationStateError
from plasmafurnace.model.results import SimulationResults

logger = logging.getLogger(__name__)


class SimulationWorker(threading.Thread):
    """Runs ``Simulation.run`` and keeps the error that ended it, if any."""

    def __init__(
        self,
        simulation: Simulation,
        on_finished: Optional[Callable[[SimulationStatus], None]] = None,
    ) -> None:
        super().__init__(name="plasmafurnace-simulation", daemon=True)
        self.simulation = simulation
        self.on_finished = on_finished
        self.error: Optional[BaseException] = None

    def run(self) -> None:
        try:
            logger.info("Starting simulation in background thread...")
            self.simulation.run()
        except Exception as exc:
            # Recorded on the simulation state as well; kept here for the handle
            self.error = exc
        finally:
            if self.on_finished is not None:
                self.on_finished(self.simulation.status)


class SimulationHandle:
    """
    Control surface of one simulation running on a worker thread.

    Example:
        handle = SimulationHandle(Simulation(config))
        handle.start()
        while handle.is_running():
            print(handle.progress().progress_fraction)
        results = handle.result()
    """

    def __init__(
        self,
        simulation: Simulation,
        on_finished: Optional[Callable[[SimulationStatus], None]] = None,
    ) -> None:
        self.simulation = simulation
        self._on_finished = on_finished
        self._worker: Optional[SimulationWorker] = None
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            if self._worker is not None:
                raise SimulationStateError(self.simulation.status.value, "start")
            self._worker = SimulationWorker(self.simulation, self._on_finished)
            self._worker.start()

    def pause(self) -> None:
        self.simulation.pause()

    def resume(self) -> None:
        self.simulation.resume()

    def cancel(self) -> None:
        self.simulation.cancel()

    def progress(self) -> ProgressInfo:
        return self.simulation.progress()

    def current_field(self) -> ThermalField:
        return self.simulation.current_field()

    @property
    def status(self) -> SimulationStatus:
        return self.simulation.status

    @property
    def error(self) -> Optional[BaseException]:
        return self._worker.error if self._worker is not None else None

    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the worker; returns True once it has finished."""
        if self._worker is None:
            return True
        self._worker.join(timeout)
        return not self._worker.is_alive()

    def result(self) -> SimulationResults:
        """
        Wait for the run to end and return its results.

        Failed and cancelled runs still return their (partial) results; the
        status and error are recorded on them.
        """
        if self._worker is None:
            raise SimulationStateError(self.simulation.status.value, "collect results of")
        self._worker.join()
        return self.simulation.results
