"""
Material Library Management
===========================
Preset charge materials and the configuration record that selects one of
them (or carries a custom definition) for a simulation.
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from plasmafurnace.controller.fdm.pre.material import Material, MaterialProperty
from plasmafurnace.errors import InvalidParameter

logger = logging.getLogger(__name__)

DEFAULT_MATERIAL_NAME = "Carbon Steel"


def _preset(
    name: str,
    density: float,
    conductivity: float,
    specific_heat: float,
    emissivity: float,
    melting_point: float,
    latent_heat_fusion: float,
    description: str,
) -> Material:
    return Material(
        name=name,
        description=description,
        density=density,
        thermal_conductivity=MaterialProperty.constant(conductivity),
        specific_heat=MaterialProperty.constant(specific_heat),
        emissivity=emissivity,
        melting_point=melting_point,
        latent_heat_fusion=latent_heat_fusion,
    )


class MaterialLibrary:
    """
    Manages the preset materials and any custom materials added at runtime.

    Materials handed out are copies, so callers may modify them freely.
    """
    def __init__(self) -> None:
        self.materials: Dict[str, Material] = {}
        self._init_defaults()

    def _init_defaults(self) -> None:
        for material in (
            _preset("Carbon Steel", 7850.0, 50.0, 500.0, 0.8, 1811.0, 247000.0,
                    "Plain carbon steel scrap"),
            _preset("Stainless Steel", 8000.0, 16.0, 500.0, 0.7, 1673.0, 247000.0,
                    "Austenitic stainless steel"),
            _preset("Aluminum", 2700.0, 237.0, 900.0, 0.9, 933.0, 397000.0,
                    "Pure aluminium"),
        ):
            self.materials[material.name] = material

    def add_material(self, material: Material) -> None:
        """Add or update a material in the library."""
        material.validate()
        self.materials[material.name] = material

    def get_material(self, name: str) -> Optional[Material]:
        """Retrieve a copy of a material by name."""
        material = self.materials.get(name)
        return copy.deepcopy(material) if material is not None else None

    def get_names(self) -> List[str]:
        """List all material names in the library."""
        return list(self.materials.keys())

    def is_valid_material(self, name: str) -> bool:
        return name in self.materials


@dataclass
class MaterialConfig:
    """Either a library material by name or a fully specified custom material."""
    name: str = DEFAULT_MATERIAL_NAME
    custom: Optional[Material] = None

    def resolve(self, library: Optional[MaterialLibrary] = None) -> Material:
        if self.custom is not None:
            return copy.deepcopy(self.custom)
        library = library or MaterialLibrary()
        material = library.get_material(self.name)
        if material is None:
            raise InvalidParameter(
                parameter="material", value=self.name, range=f"one of {library.get_names()}"
            )
        return material

    def validate(self, library: Optional[MaterialLibrary] = None) -> None:
        self.resolve(library).validate()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "custom": self.custom.to_dict() if self.custom is not None else None,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> MaterialConfig:
        custom = data.get("custom")
        return MaterialConfig(
            name=data.get("name", DEFAULT_MATERIAL_NAME),
            custom=Material.from_dict(custom) if custom else None,
        )
