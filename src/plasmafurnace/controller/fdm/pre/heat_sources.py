from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Optional

import numpy as np

from plasmafurnace.config import STEFAN_BOLTZMANN
from plasmafurnace.model.bc import BoundaryConditions, BoundaryMode
from plasmafurnace.utils import validate_non_negative, validate_positive, validate_range

if TYPE_CHECKING:
    import numpy.typing as npt

    from plasmafurnace.controller.fdm.pre.mesh import CylindricalMesh

logger = logging.getLogger(__name__)


class PlasmaTorch:
    """
    Gaussian volumetric heat source.

    Attributes:
        r0, z0: Focal point in meters.
        power: Electrical power in W.
        efficiency: Fraction of the power delivered to the charge (0 to 1).
        sigma: Gaussian spread in meters.
    """

    def __init__(
        self,
        r0: float,
        z0: float,
        power: float,
        efficiency: float = 0.8,
        sigma: float = 0.1,
    ) -> None:
        validate_non_negative(r0, "torch.r0")
        validate_non_negative(z0, "torch.z0")
        validate_non_negative(power, "torch.power")
        validate_range(efficiency, 0.0, 1.0, "torch.efficiency")
        validate_positive(sigma, "torch.sigma")
        self.r0 = float(r0)
        self.z0 = float(z0)
        self.power = float(power)
        self.efficiency = float(efficiency)
        self.sigma = float(sigma)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(r0={self.r0}, z0={self.z0}, power={self.power}, "
            f"efficiency={self.efficiency}, sigma={self.sigma})"
        )

    @property
    def effective_power(self) -> float:
        """P·η in W."""
        return self.power * self.efficiency

    @property
    def peak_intensity(self) -> float:
        """Source density at the focal point in W/m³."""
        return self.effective_power / (2.0 * np.pi * self.sigma ** 2)

    def heat_source(self, r: npt.ArrayLike, z: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """(P·η)/(2πσ²)·exp(−d²/(2σ²)) with d² = (r − r0)² + (z − z0)²."""
        r = np.asarray(r, dtype=np.float64)
        z = np.asarray(z, dtype=np.float64)
        d2 = (r - self.r0) ** 2 + (z - self.z0) ** 2
        return self.peak_intensity * np.exp(-d2 / (2.0 * self.sigma ** 2))


class PlasmaPhysics:
    """
    Heat source and boundary flux terms of the furnace.

    Sources of all torches add linearly. Boundary fluxes are positive when
    heat leaves the domain.
    """

    def __init__(
        self,
        torches: Optional[Iterable[PlasmaTorch]] = None,
        boundary_conditions: Optional[BoundaryConditions] = None,
        emissivity: float = 0.8,
    ) -> None:
        """
        Args:
            torches: Active torches, may be empty.
            boundary_conditions: Wall configuration; defaults are used if None.
            emissivity: Material emissivity, used unless the boundary
                conditions override it.
        """
        self.torches: list[PlasmaTorch] = list(torches or [])
        self.boundary_conditions = boundary_conditions or BoundaryConditions()
        self.boundary_conditions.validate()
        validate_range(emissivity, 0.0, 1.0, "emissivity")
        self.emissivity = self.boundary_conditions.effective_emissivity(emissivity)

    @property
    def ambient_temperature(self) -> float:
        return self.boundary_conditions.ambient_temperature

    @property
    def convection_coefficient(self) -> float:
        return self.boundary_conditions.convection_coefficient

    def add_torch(self, torch: PlasmaTorch) -> None:
        self.torches.append(torch)

    def total_power(self) -> float:
        """Σ P·η over all torches in W."""
        return sum(t.effective_power for t in self.torches)

    @staticmethod
    def torch_source(torch: PlasmaTorch, r: npt.ArrayLike, z: npt.ArrayLike) -> npt.NDArray[np.float64]:
        return torch.heat_source(r, z)

    def heat_source(self, r: npt.ArrayLike, z: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """Volumetric source in W/m³ at (r, z); broadcasts like numpy."""
        q = np.zeros(np.broadcast(np.asarray(r), np.asarray(z)).shape, dtype=np.float64)
        for torch in self.torches:
            q += self.torch_source(torch, r, z)
        return q

    def heat_source_field(self, mesh: CylindricalMesh) -> npt.NDArray[np.float64]:
        """Source evaluated at every node, shape (nr, nz)."""
        r, z = np.meshgrid(mesh.r_coords, mesh.z_coords, indexing="ij")
        return self.heat_source(r, z)

    def radiation_flux(
        self, temperature: npt.ArrayLike, emissivity: Optional[float] = None
    ) -> npt.NDArray[np.float64]:
        """ε·σ·(T⁴ − T_amb⁴) in W/m²."""
        eps = self.emissivity if emissivity is None else emissivity
        t = np.asarray(temperature, dtype=np.float64)
        return eps * STEFAN_BOLTZMANN * (t ** 4 - self.ambient_temperature ** 4)

    def convection_flux(self, temperature: npt.ArrayLike) -> npt.NDArray[np.float64]:
        """h·(T − T_amb) in W/m²."""
        t = np.asarray(temperature, dtype=np.float64)
        return self.convection_coefficient * (t - self.ambient_temperature)

    def boundary_flux(
        self,
        temperature: npt.ArrayLike,
        mode: BoundaryMode = BoundaryMode.CONVECTION_RADIATION,
        emissivity: Optional[float] = None,
    ) -> npt.NDArray[np.float64]:
        """Outgoing flux of a side in W/m²; zero unless the side is convective-radiative."""
        if mode != BoundaryMode.CONVECTION_RADIATION:
            return np.zeros_like(np.asarray(temperature, dtype=np.float64))
        return self.convection_flux(temperature) + self.radiation_flux(temperature, emissivity)
