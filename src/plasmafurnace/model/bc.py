"""
Boundary Conditions Data Model
==============================
Defines the configuration of the furnace walls: which sides lose heat by
convection and radiation, which are insulated, and which are held at a fixed
temperature. The axis of symmetry (r = 0) is structural and not configurable.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Dict, Optional
import logging

from plasmafurnace.config import DEFAULT_AMBIENT_TEMPERATURE
from plasmafurnace.utils import validate_non_negative, validate_positive, validate_range

logger = logging.getLogger(__name__)


class BoundaryMode(StrEnum):
    ADIABATIC = "adiabatic"
    FIXED_TEMPERATURE = "fixed_temperature"
    CONVECTION_RADIATION = "convection_radiation"


class BoundarySide(StrEnum):
    OUTER_WALL = "outer_wall"
    TOP = "top"
    BOTTOM = "bottom"


@dataclass
class BoundaryConditions:
    outer_wall: BoundaryMode = BoundaryMode.CONVECTION_RADIATION
    top: BoundaryMode = BoundaryMode.ADIABATIC
    bottom: BoundaryMode = BoundaryMode.ADIABATIC

    ambient_temperature: float = DEFAULT_AMBIENT_TEMPERATURE  # K
    convection_coefficient: float = 10.0  # W/(m²·K)
    # None falls back to the material emissivity
    emissivity: Optional[float] = None

    outer_wall_temperature: float = DEFAULT_AMBIENT_TEMPERATURE  # K
    top_temperature: float = DEFAULT_AMBIENT_TEMPERATURE  # K
    bottom_temperature: float = DEFAULT_AMBIENT_TEMPERATURE  # K

    def mode(self, side: BoundarySide) -> BoundaryMode:
        return {
            BoundarySide.OUTER_WALL: self.outer_wall,
            BoundarySide.TOP: self.top,
            BoundarySide.BOTTOM: self.bottom,
        }[side]

    def fixed_temperature(self, side: BoundarySide) -> float:
        return {
            BoundarySide.OUTER_WALL: self.outer_wall_temperature,
            BoundarySide.TOP: self.top_temperature,
            BoundarySide.BOTTOM: self.bottom_temperature,
        }[side]

    def effective_emissivity(self, material_emissivity: float) -> float:
        return material_emissivity if self.emissivity is None else self.emissivity

    def validate(self) -> None:
        validate_positive(self.ambient_temperature, "ambient_temperature")
        validate_non_negative(self.convection_coefficient, "convection_coefficient")
        if self.emissivity is not None:
            validate_range(self.emissivity, 0.0, 1.0, "boundary_emissivity")
        for side in BoundarySide:
            if self.mode(side) == BoundaryMode.FIXED_TEMPERATURE:
                validate_positive(self.fixed_temperature(side), f"{side.value}_temperature")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outer_wall": self.outer_wall.value,
            "top": self.top.value,
            "bottom": self.bottom.value,
            "ambient_temperature": self.ambient_temperature,
            "convection_coefficient": self.convection_coefficient,
            "emissivity": self.emissivity,
            "outer_wall_temperature": self.outer_wall_temperature,
            "top_temperature": self.top_temperature,
            "bottom_temperature": self.bottom_temperature,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> BoundaryConditions:
        defaults = BoundaryConditions()
        return BoundaryConditions(
            outer_wall=BoundaryMode(data.get("outer_wall", defaults.outer_wall)),
            top=BoundaryMode(data.get("top", defaults.top)),
            bottom=BoundaryMode(data.get("bottom", defaults.bottom)),
            ambient_temperature=float(data.get("ambient_temperature", defaults.ambient_temperature)),
            convection_coefficient=float(
                data.get("convection_coefficient", defaults.convection_coefficient)
            ),
            emissivity=data.get("emissivity"),
            outer_wall_temperature=float(
                data.get("outer_wall_temperature", defaults.outer_wall_temperature)
            ),
            top_temperature=float(data.get("top_temperature", defaults.top_temperature)),
            bottom_temperature=float(data.get("bottom_temperature", defaults.bottom_temperature)),
        )
