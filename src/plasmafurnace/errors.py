"""
Error Taxonomy
==============
Structured exceptions raised by the simulation engine.

Every error carries the context needed to branch on it (parameter names,
step indices, formulas) as attributes, so callers never have to parse the
message text.

Classes:
    SimulationError: Base class of all engine errors.
    InvalidParameter: Construction-time parameter outside its valid range.
    NumericalInstability: Non-finite values produced by a time step.
    MeshGenerationError: The mesh cannot be built.
    FormulaError: A formula-backed property failed to evaluate.
    ConvergenceFailure: A convergence warning elevated to fatal by policy.
    SimulationStateError: Invalid control transition on a simulation.
    ConvergenceWarning: Value object attached to step results (not raised).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class SimulationError(Exception):
    """Base class for all errors raised by the simulation engine."""

    kind: str = "simulation_error"

    def to_dict(self) -> dict[str, Any]:
        """Kind and context of the error, suitable for a results record."""
        return {"kind": self.kind, "message": str(self)}


class InvalidParameter(SimulationError, ValueError):
    kind = "invalid_parameter"

    def __init__(self, parameter: str, value: Any, range: str) -> None:
        self.parameter = parameter
        self.value = value
        self.range = range
        super().__init__(f"Invalid parameter: {parameter} = {value}, expected range: {range}")

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d.update({"parameter": self.parameter, "value": str(self.value), "range": self.range})
        return d


class NumericalInstability(SimulationError, ArithmeticError):
    kind = "numerical_instability"

    def __init__(self, step: int, time: float) -> None:
        self.step = step
        self.time = time
        super().__init__(f"Numerical instability detected at time step {step}, time = {time:.6g} s")

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d.update({"step": self.step, "time": self.time})
        return d


class MeshGenerationError(SimulationError, ValueError):
    kind = "mesh_generation_error"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Mesh generation failed: {reason}")

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["reason"] = self.reason
        return d


class FormulaError(SimulationError):
    kind = "formula_error"

    def __init__(self, formula: str, error: str) -> None:
        self.formula = formula
        self.error = error
        super().__init__(f"Formula evaluation error: {formula} - {error}")

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d.update({"formula": self.formula, "error": self.error})
        return d


class ConvergenceFailure(SimulationError):
    """Raised by the orchestrator when a convergence warning is treated as fatal."""
    kind = "convergence_failure"

    def __init__(self, step: int, time: float, iterations: int, residual: float) -> None:
        self.step = step
        self.time = time
        self.iterations = iterations
        self.residual = residual
        super().__init__(
            f"Solver did not converge at step {step} (time = {time:.6g} s) "
            f"after {iterations} iterations, residual = {residual:.3e}"
        )

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d.update({
            "step": self.step,
            "time": self.time,
            "iterations": self.iterations,
            "residual": self.residual,
        })
        return d


class SimulationStateError(SimulationError, RuntimeError):
    kind = "simulation_state_error"

    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot {requested} a simulation in state '{current}'")


@dataclass(frozen=True)
class ConvergenceWarning:
    """
    Non-convergence of an iterative solve, reported on the step result.

    Attributes:
        stage: Which iteration gave up ("sor" or "enthalpy").
        step: Time step index.
        time: Simulation time at the start of the step in seconds.
        iterations: Iterations performed.
        residual: Residual norm reached (Kelvin).
        tolerance: Requested tolerance (Kelvin).
    """
    stage: str
    step: int
    time: float
    iterations: int
    residual: float
    tolerance: float

    def __str__(self) -> str:
        return (
            f"{self.stage} iteration did not converge at step {self.step} "
            f"(t = {self.time:.6g} s): residual {self.residual:.3e} > {self.tolerance:.3e} "
            f"after {self.iterations} iterations"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "step": self.step,
            "time": self.time,
            "iterations": self.iterations,
            "residual": self.residual,
            "tolerance": self.tolerance,
        }
