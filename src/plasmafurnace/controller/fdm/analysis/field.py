from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    import numpy.typing as npt

    from plasmafurnace.controller.fdm.pre.material import EnthalpyCurve
    from plasmafurnace.controller.fdm.pre.mesh import CylindricalMesh


@dataclass
class ThermalField:
    """
    Node-aligned state of the charge, arrays of shape (nr, nz).

    Attributes:
        temperature: Temperature in K.
        enthalpy: Specific enthalpy in J/kg. Primary state when the material
            changes phase; otherwise kept in sync with the temperature.
        liquid_fraction: Melted fraction, 0 to 1.
    """
    temperature: npt.NDArray[np.float64]
    enthalpy: npt.NDArray[np.float64]
    liquid_fraction: npt.NDArray[np.float64]

    @staticmethod
    def from_temperature(
        temperature: npt.NDArray[np.float64], curve: EnthalpyCurve
    ) -> ThermalField:
        t = np.array(temperature, dtype=np.float64)
        h = curve.enthalpy(t)
        return ThermalField(temperature=t, enthalpy=h, liquid_fraction=curve.liquid_fraction(h))

    @staticmethod
    def uniform(mesh: CylindricalMesh, temperature: float, curve: EnthalpyCurve) -> ThermalField:
        return ThermalField.from_temperature(mesh.create_temperature_array(temperature), curve)

    @property
    def shape(self) -> tuple[int, int]:
        return self.temperature.shape

    def sync_from_enthalpy(self, curve: EnthalpyCurve) -> None:
        """Recompute temperature and liquid fraction from the enthalpy, in place."""
        self.temperature[...] = curve.temperature(self.enthalpy)
        self.liquid_fraction[...] = curve.liquid_fraction(self.enthalpy)

    def sync_from_temperature(self, curve: EnthalpyCurve) -> None:
        """Recompute enthalpy and liquid fraction from the temperature, in place."""
        self.enthalpy[...] = curve.enthalpy(self.temperature)
        self.liquid_fraction[...] = curve.liquid_fraction(self.enthalpy)

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite(self.temperature)) and np.all(np.isfinite(self.enthalpy)))

    def copy(self) -> ThermalField:
        return ThermalField(
            temperature=self.temperature.copy(),
            enthalpy=self.enthalpy.copy(),
            liquid_fraction=self.liquid_fraction.copy(),
        )

    def restore(self, other: ThermalField) -> None:
        """Overwrite this field in place with the values of ``other``."""
        self.temperature[...] = other.temperature
        self.enthalpy[...] = other.enthalpy
        self.liquid_fraction[...] = other.liquid_fraction


def temperature_gradient(
    temperature: npt.NDArray[np.float64], mesh: CylindricalMesh
) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """
    (∂T/∂r, ∂T/∂z) at every node.

    Central differences inside, one-sided at the outer wall and the top and
    bottom. On the axis the mirrored ghost node makes ∂T/∂r exactly zero.
    """
    d_r = np.gradient(temperature, mesh.dr, axis=0)
    d_r[0, :] = 0.0
    d_z = np.gradient(temperature, mesh.dz, axis=1)
    return d_r, d_z
