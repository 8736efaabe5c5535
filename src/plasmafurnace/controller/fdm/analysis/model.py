from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING, Optional

import numpy as np

from plasmafurnace.config import PROPERTY_TEMPERATURE_RANGE
from plasmafurnace.controller.fdm.pre.heat_sources import PlasmaPhysics
from plasmafurnace.model.bc import BoundaryMode, BoundarySide

if TYPE_CHECKING:
    import numpy.typing as npt

    from plasmafurnace.controller.fdm.pre.formula import FormulaEvaluator
    from plasmafurnace.controller.fdm.pre.material import EnthalpyCurve, Material
    from plasmafurnace.controller.fdm.pre.mesh import CylindricalMesh

logger = logging.getLogger(__name__)


class FaceAveraging(StrEnum):
    HARMONIC = "harmonic"
    ARITHMETIC = "arithmetic"


class ThermalModel:
    """
    Finite-volume view of the furnace shared by both solvers.

    Every node owns the control volume given by the mesh. Neighbouring nodes
    exchange heat through conductances G = k_face·A_face/spacing, boundary
    sides lose q·A, and torches deposit Q·V. Everything that does not depend
    on temperature is computed once here.
    """

    def __init__(
        self,
        mesh: CylindricalMesh,
        material: Material,
        physics: PlasmaPhysics,
        evaluator: Optional[FormulaEvaluator] = None,
        temperature_range: tuple[float, float] = PROPERTY_TEMPERATURE_RANGE,
    ) -> None:
        """
        Initialize the model.

        Args:
            mesh: Cylindrical mesh.
            material: Charge material (validated here).
            physics: Torches and boundary configuration.
            evaluator: Formula capability for formula-backed properties.
            temperature_range: Range over which the enthalpy curve and the
                stable time step estimate sample the properties.
        """
        material.validate()
        self.mesh = mesh
        self.material = material
        self.physics = physics
        self.evaluator = evaluator
        self.temperature_range = temperature_range

        self.volumes: npt.NDArray[np.float64] = mesh.cell_volumes()
        self.radial_areas: npt.NDArray[np.float64] = mesh.radial_face_areas()
        self.axial_areas: npt.NDArray[np.float64] = mesh.axial_face_areas()

        self.source_density: npt.NDArray[np.float64] = physics.heat_source_field(mesh)
        self.source_power: npt.NDArray[np.float64] = self.source_density * self.volumes

        self.loss_area = np.zeros(mesh.shape, dtype=np.float64)
        self.dirichlet_mask = np.zeros(mesh.shape, dtype=bool)
        self.dirichlet_values = np.zeros(mesh.shape, dtype=np.float64)
        self._assemble_boundaries()
        self.free_mask = ~self.dirichlet_mask

        self.curve: EnthalpyCurve = material.enthalpy_curve(temperature_range, evaluator)

        logger.debug(
            f"Thermal model ready: {mesh.nr}x{mesh.nz} nodes, "
            f"{int(self.dirichlet_mask.sum())} fixed nodes, "
            f"torch power {physics.total_power():.3e} W"
        )

    def _assemble_boundaries(self) -> None:
        """
        Per-node exposed area of convective-radiative sides and Dirichlet masks.

        Sides are applied bottom, top, outer wall, so the wall value wins on
        shared corner nodes.
        """
        bc = self.physics.boundary_conditions
        sides = {
            BoundarySide.BOTTOM: (np.s_[:, 0], self.axial_areas),
            BoundarySide.TOP: (np.s_[:, -1], self.axial_areas),
            BoundarySide.OUTER_WALL: (
                np.s_[-1, :],
                np.full(self.mesh.nz, self.mesh.outer_wall_area()),
            ),
        }
        for side, (index, area) in sides.items():
            mode = bc.mode(side)
            if mode == BoundaryMode.CONVECTION_RADIATION:
                self.loss_area[index] += area
            elif mode == BoundaryMode.FIXED_TEMPERATURE:
                self.dirichlet_mask[index] = True
                self.dirichlet_values[index] = bc.fixed_temperature(side)

    @property
    def has_phase_change(self) -> bool:
        return self.curve.has_phase_change

    @property
    def density(self) -> float:
        return self.material.density

    @property
    def heat_capacity_volume(self) -> npt.NDArray[np.float64]:
        """ρ·V per node in kg."""
        return self.material.density * self.volumes

    def conductivity(self, temperature: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        t_min, t_max = float(np.min(temperature)), float(np.max(temperature))
        k = self.material.conductivity_function(t_min, t_max, self.evaluator)
        return k(temperature)

    def specific_heat(self, temperature: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        t_min, t_max = float(np.min(temperature)), float(np.max(temperature))
        cp = self.material.specific_heat_function(t_min, t_max, self.evaluator)
        return cp(temperature)

    def conductances(
        self,
        temperature: npt.NDArray[np.float64],
        averaging: FaceAveraging = FaceAveraging.HARMONIC,
    ) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
        """
        Face conductances in W/K.

        Returns:
            (g_r, g_z): g_r[i, j] couples (i, j) with (i + 1, j), shape
            (nr - 1, nz); g_z[i, j] couples (i, j) with (i, j + 1), shape
            (nr, nz - 1).
        """
        k = self.conductivity(temperature)
        if averaging == FaceAveraging.HARMONIC:
            k_r = 2.0 * k[1:, :] * k[:-1, :] / (k[1:, :] + k[:-1, :])
            k_z = 2.0 * k[:, 1:] * k[:, :-1] / (k[:, 1:] + k[:, :-1])
        else:
            k_r = 0.5 * (k[1:, :] + k[:-1, :])
            k_z = 0.5 * (k[:, 1:] + k[:, :-1])
        g_r = k_r * self.radial_areas[:, np.newaxis] / self.mesh.dr
        g_z = k_z * self.axial_areas[:, np.newaxis] / self.mesh.dz
        return g_r, g_z

    @staticmethod
    def conduction(
        temperature: npt.NDArray[np.float64],
        g_r: npt.NDArray[np.float64],
        g_z: npt.NDArray[np.float64],
    ) -> npt.NDArray[np.float64]:
        """Net conductive heat flow into each node in W (Σ G·(T_nb − T))."""
        net = np.zeros_like(temperature)
        flow_r = g_r * (temperature[1:, :] - temperature[:-1, :])
        net[:-1, :] += flow_r
        net[1:, :] -= flow_r
        flow_z = g_z * (temperature[:, 1:] - temperature[:, :-1])
        net[:, :-1] += flow_z
        net[:, 1:] -= flow_z
        return net

    def dirichlet_inflow(
        self,
        temperature: npt.NDArray[np.float64],
        g_r: npt.NDArray[np.float64],
        g_z: npt.NDArray[np.float64],
    ) -> float:
        """Heat flowing from fixed-temperature nodes into free nodes in W."""
        if not self.dirichlet_mask.any():
            return 0.0
        fixed = self.dirichlet_mask
        flow_r = g_r * (temperature[1:, :] - temperature[:-1, :])
        flow_z = g_z * (temperature[:, 1:] - temperature[:, :-1])
        # flow_* is positive from the upper-index node into the lower-index node
        inflow = np.sum(flow_r[fixed[1:, :] & ~fixed[:-1, :]])
        inflow -= np.sum(flow_r[fixed[:-1, :] & ~fixed[1:, :]])
        inflow += np.sum(flow_z[fixed[:, 1:] & ~fixed[:, :-1]])
        inflow -= np.sum(flow_z[fixed[:, :-1] & ~fixed[:, 1:]])
        return float(inflow)

    def boundary_loss(self, temperature: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """Heat leaving each node through convective-radiative sides in W."""
        loss = np.zeros_like(temperature)
        exposed = self.loss_area > 0.0
        loss[exposed] = self.physics.boundary_flux(temperature[exposed]) * self.loss_area[exposed]
        return loss

    def apply_dirichlet(self, temperature: npt.NDArray[np.float64]) -> None:
        temperature[self.dirichlet_mask] = self.dirichlet_values[self.dirichlet_mask]

    def stable_time_step(self, cfl_factor: float) -> float:
        """
        Explicit stability bound cfl_factor·min(dr², dz²)/(2·α_max).

        α_max is taken over the whole property temperature range, so the
        bound holds for any field the run can produce.
        """
        alpha = self.material.max_thermal_diffusivity(self.temperature_range, self.evaluator)
        h2 = min(self.mesh.dr, self.mesh.dz) ** 2
        return cfl_factor * h2 / (2.0 * alpha)

    def stored_energy(self, enthalpy: npt.NDArray[np.float64]) -> float:
        """Σ ρ·V·H over free nodes in J."""
        return float(np.sum((self.heat_capacity_volume * enthalpy)[self.free_mask]))
