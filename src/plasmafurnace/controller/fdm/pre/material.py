from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

import numpy as np

from plasmafurnace.config import (
    DEFAULT_REFERENCE_TEMPERATURE,
    PROPERTY_SAMPLES,
    PROPERTY_TEMPERATURE_RANGE,
)
from plasmafurnace.controller.fdm.pre.formula import FormulaEvaluator, evaluate_formula
from plasmafurnace.errors import InvalidParameter
from plasmafurnace.utils import validate_positive, validate_range

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)

PropertyFunction = Callable[["npt.NDArray[np.float64]"], "npt.NDArray[np.float64]"]


class PropertyKind(StrEnum):
    CONSTANT = "constant"
    TABLE = "table"
    FORMULA = "formula"


@dataclass
class MaterialProperty:
    """
    A temperature-dependent material property.

    CONSTANT uses ``value``; TABLE interpolates linearly between the
    (temperature, value) pairs and clamps at the table ends; FORMULA hands
    ``formula`` to the external evaluator.
    """
    kind: PropertyKind = PropertyKind.CONSTANT
    value: float = 0.0
    temperatures: List[float] = field(default_factory=list)
    values: List[float] = field(default_factory=list)
    formula: str = ""

    @staticmethod
    def constant(value: float) -> MaterialProperty:
        return MaterialProperty(kind=PropertyKind.CONSTANT, value=float(value))

    @staticmethod
    def table(temperatures: List[float], values: List[float]) -> MaterialProperty:
        prop = MaterialProperty(kind=PropertyKind.TABLE)
        prop.set_curve(temperatures, values)
        return prop

    @staticmethod
    def from_formula(formula: str) -> MaterialProperty:
        return MaterialProperty(kind=PropertyKind.FORMULA, formula=formula)

    def set_curve(self, temps: List[float], vals: List[float]) -> None:
        """Replace the table, sorted by temperature."""
        if len(temps) != len(vals):
            raise ValueError("Temperature and value lists must have the same length.")
        combined = sorted(zip(temps, vals), key=lambda x: x[0])
        self.temperatures = [float(t) for t, _ in combined]
        self.values = [float(v) for _, v in combined]

    def validate(self, name: str) -> None:
        """
        Check that the property is usable and strictly positive.

        Formula properties can only be checked once they are evaluated, which
        happens in ``resolve``.

        Raises:
            InvalidParameter: On empty tables, unsorted temperatures, or
                non-positive values.
        """
        if self.kind == PropertyKind.CONSTANT:
            validate_positive(self.value, name)
        elif self.kind == PropertyKind.TABLE:
            if not self.temperatures:
                raise InvalidParameter(parameter=name, value="[]", range="at least one table entry")
            if np.any(np.diff(self.temperatures) <= 0.0):
                raise InvalidParameter(
                    parameter=f"{name}.temperatures",
                    value=self.temperatures,
                    range="strictly increasing",
                )
            for v in self.values:
                validate_positive(v, name)
        elif not self.formula.strip():
            raise InvalidParameter(parameter=f"{name}.formula", value="''", range="non-empty expression")

    def value_at(self, temperature: float, evaluator: Optional[FormulaEvaluator] = None) -> float:
        """Property value at a single temperature in Kelvin."""
        if self.kind == PropertyKind.CONSTANT:
            return self.value
        if self.kind == PropertyKind.TABLE:
            return float(
                np.interp(
                    temperature,
                    self.temperatures,
                    self.values,
                    left=self.values[0],
                    right=self.values[-1],
                )
            )
        return evaluate_formula(evaluator, self.formula, temperature)

    def resolve(
        self,
        t_min: float,
        t_max: float,
        evaluator: Optional[FormulaEvaluator] = None,
        name: str = "property",
        samples: int = PROPERTY_SAMPLES,
    ) -> PropertyFunction:
        """
        Vectorised evaluator of the property for temperatures in [t_min, t_max].

        The property kind is dispatched once here instead of per node. Formula
        properties are sampled into a lookup table over the range, so a step
        costs ``samples`` formula evaluations regardless of the mesh size.

        Raises:
            FormulaError: If sampling a formula fails.
            InvalidParameter: If a sampled value is not strictly positive.
        """
        if self.kind == PropertyKind.CONSTANT:
            value = self.value
            return lambda t: np.full(np.shape(t), value, dtype=np.float64)

        if self.kind == PropertyKind.TABLE:
            xp = np.asarray(self.temperatures, dtype=np.float64)
            fp = np.asarray(self.values, dtype=np.float64)
            return lambda t: np.interp(t, xp, fp, left=fp[0], right=fp[-1])

        if t_max - t_min < 1e-9:
            samples = 1
        xp = np.linspace(t_min, t_max, samples)
        fp = np.array([evaluate_formula(evaluator, self.formula, t) for t in xp])
        bad = np.flatnonzero(fp <= 0.0)
        if bad.size:
            k = bad[0]
            raise InvalidParameter(
                parameter=name,
                value=f"{fp[k]} at T = {xp[k]:.2f} K",
                range="> 0.0",
            )
        if samples == 1:
            constant = float(fp[0])
            return lambda t: np.full(np.shape(t), constant, dtype=np.float64)
        return lambda t: np.interp(t, xp, fp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "value": self.value,
            "temperatures": list(self.temperatures),
            "values": list(self.values),
            "formula": self.formula,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> MaterialProperty:
        return MaterialProperty(
            kind=PropertyKind(data.get("kind", PropertyKind.CONSTANT)),
            value=float(data.get("value", 0.0)),
            temperatures=[float(t) for t in data.get("temperatures", [])],
            values=[float(v) for v in data.get("values", [])],
            formula=data.get("formula", ""),
        )


@dataclass(kw_only=True)
class Material:
    """
    Thermophysical description of the furnace charge.

    Density is constant; conductivity and specific heat may depend on
    temperature. A material with both ``melting_point`` and a positive
    ``latent_heat_fusion`` melts through the enthalpy method.
    """
    name: str
    density: float
    thermal_conductivity: MaterialProperty
    specific_heat: MaterialProperty
    emissivity: float = 0.8
    melting_point: Optional[float] = None
    latent_heat_fusion: Optional[float] = None
    reference_temperature: float = DEFAULT_REFERENCE_TEMPERATURE
    description: str = ""

    @property
    def has_phase_change(self) -> bool:
        return (
            self.melting_point is not None
            and self.latent_heat_fusion is not None
            and self.latent_heat_fusion > 0.0
        )

    def validate(self) -> None:
        """Raises InvalidParameter on the first inconsistent attribute."""
        validate_positive(self.density, "density")
        validate_range(self.emissivity, 0.0, 1.0, "emissivity")
        validate_positive(self.reference_temperature, "reference_temperature")
        self.thermal_conductivity.validate("thermal_conductivity")
        self.specific_heat.validate("specific_heat")
        if self.melting_point is not None:
            validate_positive(self.melting_point, "melting_point")
        if self.latent_heat_fusion is not None:
            if self.melting_point is None:
                raise InvalidParameter(
                    parameter="latent_heat_fusion",
                    value=self.latent_heat_fusion,
                    range="requires melting_point",
                )
            if not np.isfinite(self.latent_heat_fusion) or self.latent_heat_fusion < 0.0:
                raise InvalidParameter(
                    parameter="latent_heat_fusion", value=self.latent_heat_fusion, range=">= 0.0"
                )

    def conductivity_function(
        self, t_min: float, t_max: float, evaluator: Optional[FormulaEvaluator] = None
    ) -> PropertyFunction:
        return self.thermal_conductivity.resolve(t_min, t_max, evaluator, name="thermal_conductivity")

    def specific_heat_function(
        self, t_min: float, t_max: float, evaluator: Optional[FormulaEvaluator] = None
    ) -> PropertyFunction:
        return self.specific_heat.resolve(t_min, t_max, evaluator, name="specific_heat")

    def max_thermal_diffusivity(
        self,
        temperature_range: tuple[float, float] = PROPERTY_TEMPERATURE_RANGE,
        evaluator: Optional[FormulaEvaluator] = None,
    ) -> float:
        """Largest k / (ρ c_p) over the given temperature range in m²/s."""
        t_min, t_max = temperature_range
        temps = np.linspace(t_min, t_max, PROPERTY_SAMPLES)
        k = self.conductivity_function(t_min, t_max, evaluator)(temps)
        cp = self.specific_heat_function(t_min, t_max, evaluator)(temps)
        if self.thermal_conductivity.kind == PropertyKind.TABLE:
            k = np.concatenate([k, self.thermal_conductivity.values])
        if self.specific_heat.kind == PropertyKind.TABLE:
            cp = np.concatenate([cp, self.specific_heat.values])
        return float(np.max(k) / (self.density * np.min(cp)))

    def enthalpy_curve(
        self,
        temperature_range: tuple[float, float] = PROPERTY_TEMPERATURE_RANGE,
        evaluator: Optional[FormulaEvaluator] = None,
    ) -> EnthalpyCurve:
        t_min, t_max = temperature_range
        t_min = min(t_min, self.reference_temperature)
        t_max = max(t_max, self.reference_temperature)
        if self.melting_point is not None:
            t_min = min(t_min, self.melting_point - 1.0)
            t_max = max(t_max, self.melting_point + 1.0)
        cp = self.specific_heat_function(t_min, t_max, evaluator)
        return EnthalpyCurve(
            specific_heat=cp,
            t_min=t_min,
            t_max=t_max,
            reference_temperature=self.reference_temperature,
            melting_point=self.melting_point,
            latent_heat=self.latent_heat_fusion if self.has_phase_change else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "density": self.density,
            "thermal_conductivity": self.thermal_conductivity.to_dict(),
            "specific_heat": self.specific_heat.to_dict(),
            "emissivity": self.emissivity,
            "melting_point": self.melting_point,
            "latent_heat_fusion": self.latent_heat_fusion,
            "reference_temperature": self.reference_temperature,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> Material:
        return Material(
            name=data.get("name", "Unnamed Material"),
            description=data.get("description", ""),
            density=float(data["density"]),
            thermal_conductivity=MaterialProperty.from_dict(data["thermal_conductivity"]),
            specific_heat=MaterialProperty.from_dict(data["specific_heat"]),
            emissivity=float(data.get("emissivity", 0.8)),
            melting_point=data.get("melting_point"),
            latent_heat_fusion=data.get("latent_heat_fusion"),
            reference_temperature=float(
                data.get("reference_temperature", DEFAULT_REFERENCE_TEMPERATURE)
            ),
        )


class EnthalpyCurve:
    """
    Piecewise-linear specific enthalpy H(T) in J/kg with its exact inverse.

    H is the integral of c_p from the reference temperature (H(T_ref) = 0).
    With a phase change, the curve jumps by the latent heat at the melting
    point: every H in [H_solidus, H_solidus + L] maps back to exactly the
    melting point, and the liquid fraction grows linearly across that window.
    Beyond the sampled range the curve continues with the end c_p.
    """

    def __init__(
        self,
        specific_heat: PropertyFunction,
        t_min: float,
        t_max: float,
        reference_temperature: float = DEFAULT_REFERENCE_TEMPERATURE,
        melting_point: Optional[float] = None,
        latent_heat: Optional[float] = None,
        samples: int = PROPERTY_SAMPLES,
    ) -> None:
        temps = np.linspace(t_min, t_max, samples)
        if melting_point is not None:
            temps = np.union1d(temps, [melting_point])
        cp = specific_heat(temps)

        sensible = np.concatenate(
            [[0.0], np.cumsum(0.5 * (cp[1:] + cp[:-1]) * np.diff(temps))]
        )
        sensible -= np.interp(reference_temperature, temps, sensible)

        self.reference_temperature = reference_temperature
        self.melting_point = melting_point
        self.latent_heat = latent_heat if latent_heat else 0.0
        self._cp_low = float(cp[0])
        self._cp_high = float(cp[-1])
        self._sensible_t = temps
        self._sensible_h = sensible

        if self.has_phase_change:
            below = temps <= melting_point
            self.solidus_enthalpy = float(np.interp(melting_point, temps, sensible))
            self.liquidus_enthalpy = self.solidus_enthalpy + self.latent_heat
            self._knots_t = np.concatenate([temps[below], [melting_point], temps[~below]])
            self._knots_h = np.concatenate(
                [sensible[below], [self.liquidus_enthalpy], sensible[~below] + self.latent_heat]
            )
        else:
            self.solidus_enthalpy = float("nan")
            self.liquidus_enthalpy = float("nan")
            self._knots_t = temps
            self._knots_h = sensible

    @property
    def has_phase_change(self) -> bool:
        return self.melting_point is not None and self.latent_heat > 0.0

    @property
    def knots(self) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
        """(T, H) breakpoints of the curve, including both plateau ends."""
        return self._knots_t, self._knots_h

    def enthalpy(self, temperature: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """H(T); at exactly the melting point the solid branch is returned."""
        t = np.asarray(temperature, dtype=np.float64)
        ts, hs = self._sensible_t, self._sensible_h
        h = np.interp(t, ts, hs)
        h = np.where(t < ts[0], hs[0] + self._cp_low * (t - ts[0]), h)
        h = np.where(t > ts[-1], hs[-1] + self._cp_high * (t - ts[-1]), h)
        if self.has_phase_change:
            h = h + np.where(t > self.melting_point, self.latent_heat, 0.0)
        return h

    def temperature(self, enthalpy: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Exact inverse T(H)."""
        h = np.asarray(enthalpy, dtype=np.float64)
        kt, kh = self._knots_t, self._knots_h
        t = np.interp(h, kh, kt)
        t = np.where(h < kh[0], kt[0] + (h - kh[0]) / self._cp_low, t)
        t = np.where(h > kh[-1], kt[-1] + (h - kh[-1]) / self._cp_high, t)
        if self.has_phase_change:
            plateau = (h >= self.solidus_enthalpy) & (h <= self.liquidus_enthalpy)
            t = np.where(plateau, self.melting_point, t)
        return t

    def liquid_fraction(self, enthalpy: npt.ArrayLike) -> npt.NDArray[np.float64]:
        h = np.asarray(enthalpy, dtype=np.float64)
        if self.has_phase_change:
            return np.clip((h - self.solidus_enthalpy) / self.latent_heat, 0.0, 1.0)
        if self.melting_point is not None:
            return (self.temperature(h) > self.melting_point).astype(np.float64)
        return np.zeros_like(h)

    def temperature_and_fraction(
        self, enthalpy: npt.ArrayLike
    ) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
        return self.temperature(enthalpy), self.liquid_fraction(enthalpy)

    def apparent_capacity(
        self, temperature: npt.ArrayLike, delta: float = 0.5
    ) -> npt.NDArray[np.float64]:
        """
        Chord slope (H(T + δ) − H(T − δ)) / 2δ in J/(kg·K).

        Only used to linearise the implicit enthalpy iteration; the state
        itself always goes through ``enthalpy``/``temperature``.
        """
        t = np.asarray(temperature, dtype=np.float64)
        return (self.enthalpy(t + delta) - self.enthalpy(t - delta)) / (2.0 * delta)
