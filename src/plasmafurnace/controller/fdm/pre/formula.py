"""
Formula Capability
==================
Bridge to the external formula evaluator used by formula-backed material
properties.

The engine does not parse expressions itself. It only needs something with
an ``evaluate(formula, temperature)`` method; any failure of that call, and
any non-finite result, is reported as a FormulaError and never replaced by
a default value.
"""
from __future__ import annotations

import math
from typing import Protocol, runtime_checkable

from plasmafurnace.errors import FormulaError


@runtime_checkable
class FormulaEvaluator(Protocol):
    def evaluate(self, formula: str, temperature: float) -> float:
        """Value of ``formula`` at ``temperature`` (Kelvin)."""
        ...


def evaluate_formula(
    evaluator: FormulaEvaluator | None,
    formula: str,
    temperature: float,
) -> float:
    """
    Evaluate a property formula at one temperature.

    Args:
        evaluator: The formula capability, or None if none is configured.
        formula: Expression text, passed through unchanged.
        temperature: Temperature in Kelvin.

    Returns:
        The evaluated value as a float.

    Raises:
        FormulaError: If no evaluator is available, the evaluator raises, or
            the result is not a finite number.
    """
    if evaluator is None:
        raise FormulaError(formula, "no formula evaluator configured")

    try:
        value = float(evaluator.evaluate(formula, float(temperature)))
    except FormulaError:
        raise
    except Exception as exc:
        raise FormulaError(formula, f"{type(exc).__name__}: {exc}") from exc

    if not math.isfinite(value):
        raise FormulaError(formula, f"non-finite result {value} at T = {temperature} K")
    return value
