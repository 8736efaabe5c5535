from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, StrEnum
from typing import TYPE_CHECKING

import numpy as np

from plasmafurnace.errors import MeshGenerationError

if TYPE_CHECKING:
    import numpy.typing as npt


class BoundaryType(StrEnum):
    INTERIOR = "interior"
    AXIS = "axis"  # r = 0
    OUTER_WALL = "outer_wall"  # r = R
    BOTTOM = "bottom"  # z = 0
    TOP = "top"  # z = H


class Direction(Enum):
    RADIAL_INNER = (-1, 0)
    RADIAL_OUTER = (1, 0)
    AXIAL_LOWER = (0, -1)
    AXIAL_UPPER = (0, 1)

    @property
    def is_radial(self) -> bool:
        return self in (Direction.RADIAL_INNER, Direction.RADIAL_OUTER)


class MeshPreset(StrEnum):
    FAST = "fast"
    BALANCED = "balanced"
    HIGH = "high"
    CUSTOM = "custom"

    def resolution(self) -> tuple[int, int]:
        """Default (nr, nz) node counts of the preset."""
        return {
            MeshPreset.FAST: (50, 50),
            MeshPreset.BALANCED: (100, 100),
            MeshPreset.HIGH: (200, 200),
            MeshPreset.CUSTOM: (100, 100),
        }[self]

    def create_mesh(self, radius: float, height: float) -> CylindricalMesh:
        nr, nz = self.resolution()
        return CylindricalMesh(radius=radius, height=height, nr=nr, nz=nz)


@dataclass(frozen=True)
class MeshInfo:
    nr: int
    nz: int
    total_nodes: int
    radius: float
    height: float
    dr: float
    dz: float
    total_volume: float


class CylindricalMesh:
    """
    Node-centred structured grid of an axisymmetric cylinder in (r, z).

    Node (i, j) sits at r = i·dr, z = j·dz. Each node owns an annular control
    volume of radial width dr and height dz; the axis node owns a disc of
    radius dr/2. The mesh is immutable after construction.
    """

    def __init__(
        self,
        radius: float,
        height: float,
        nr: int,
        nz: int,
    ) -> None:
        """
        Initialize the mesh.

        Args:
            radius: Furnace radius in meters.
            height: Furnace height in meters.
            nr: Number of radial nodes (>= 2).
            nz: Number of axial nodes (>= 2).

        Raises:
            MeshGenerationError: If the geometry or resolution is invalid.
        """
        if not np.isfinite(radius) or radius <= 0.0:
            raise MeshGenerationError(f"radius must be positive, got {radius}")
        if not np.isfinite(height) or height <= 0.0:
            raise MeshGenerationError(f"height must be positive, got {height}")
        if int(nr) != nr or int(nz) != nz:
            raise MeshGenerationError(f"node counts must be integers, got {nr}x{nz}")
        if nr < 2 or nz < 2:
            raise MeshGenerationError(f"Mesh resolution too low: {nr}x{nz}, minimum is 2x2")

        self._radius = float(radius)
        self._height = float(height)
        self._nr = int(nr)
        self._nz = int(nz)
        self._dr = self._radius / (self._nr - 1)
        self._dz = self._height / (self._nz - 1)

        r_coords = np.arange(self._nr, dtype=np.float64) * self._dr
        z_coords = np.arange(self._nz, dtype=np.float64) * self._dz
        r_coords.flags.writeable = False
        z_coords.flags.writeable = False
        self._r_coords = r_coords
        self._z_coords = z_coords

        volumes = np.empty((self._nr, self._nz), dtype=np.float64)
        volumes[0, :] = np.pi * (self._dr / 2.0) ** 2 * self._dz
        volumes[1:, :] = (2.0 * np.pi * r_coords[1:] * self._dr * self._dz)[:, np.newaxis]
        volumes.flags.writeable = False
        self._volumes = volumes

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(radius={self._radius}, height={self._height}, "
            f"nr={self._nr}, nz={self._nz})"
        )

    @property
    def radius(self) -> float:
        return self._radius

    @property
    def height(self) -> float:
        return self._height

    @property
    def nr(self) -> int:
        return self._nr

    @property
    def nz(self) -> int:
        return self._nz

    @property
    def dr(self) -> float:
        return self._dr

    @property
    def dz(self) -> float:
        return self._dz

    @property
    def r_coords(self) -> npt.NDArray[np.float64]:
        return self._r_coords

    @property
    def z_coords(self) -> npt.NDArray[np.float64]:
        return self._z_coords

    @property
    def shape(self) -> tuple[int, int]:
        return self._nr, self._nz

    @property
    def total_nodes(self) -> int:
        return self._nr * self._nz

    def _check_index(self, i: int, j: int) -> None:
        if not (0 <= i < self._nr and 0 <= j < self._nz):
            raise IndexError(f"Node ({i}, {j}) outside mesh of {self._nr}x{self._nz} nodes")

    def coordinates(self, i: int, j: int) -> tuple[float, float]:
        """Physical (r, z) of node (i, j)."""
        self._check_index(i, j)
        return float(self._r_coords[i]), float(self._z_coords[j])

    def cell_volume(self, i: int, j: int) -> float:
        """
        Control volume of node (i, j) in m³.

        2π·r_i·dr·dz for ring cells, π·(dr/2)²·dz for the axis disc.
        """
        self._check_index(i, j)
        return float(self._volumes[i, j])

    def cell_volumes(self) -> npt.NDArray[np.float64]:
        """Read-only (nr, nz) array of control volumes."""
        return self._volumes

    def radial_face_area(self, i: int, j: int) -> float:
        """Area of the cylindrical face between nodes (i, j) and (i + 1, j)."""
        self._check_index(i, j)
        return 2.0 * np.pi * (self._r_coords[i] + 0.5 * self._dr) * self._dz

    def radial_face_areas(self) -> npt.NDArray[np.float64]:
        """Areas of all nr - 1 radial faces (independent of j)."""
        return 2.0 * np.pi * (self._r_coords[:-1] + 0.5 * self._dr) * self._dz

    def axial_face_area(self, i: int) -> float:
        """Area of the annular face between axial neighbours of column i."""
        if not 0 <= i < self._nr:
            raise IndexError(f"Radial index {i} outside mesh of {self._nr} nodes")
        return float(self.axial_face_areas()[i])

    def axial_face_areas(self) -> npt.NDArray[np.float64]:
        """Annulus (disc on the axis) areas of each radial column."""
        return self._volumes[:, 0] / self._dz

    def outer_wall_area(self) -> float:
        """Area of the outer cylindrical wall owned by one boundary node."""
        return 2.0 * np.pi * self._radius * self._dz

    def neighbors(self, i: int, j: int) -> list[tuple[tuple[int, int], Direction]]:
        """
        4-connected neighbours of node (i, j) with their direction.

        Order: radial inner, radial outer, axial lower, axial upper. Edge nodes
        have fewer neighbours.
        """
        self._check_index(i, j)
        result: list[tuple[tuple[int, int], Direction]] = []
        for direction in Direction:
            di, dj = direction.value
            ni, nj = i + di, j + dj
            if 0 <= ni < self._nr and 0 <= nj < self._nz:
                result.append(((ni, nj), direction))
        return result

    def neighbor_distance(self, direction: Direction) -> float:
        return self._dr if direction.is_radial else self._dz

    def boundary_type(self, i: int, j: int) -> BoundaryType:
        """Classify node (i, j); the axis wins over the outer wall, walls over top/bottom."""
        self._check_index(i, j)
        if i == 0:
            return BoundaryType.AXIS
        if i == self._nr - 1:
            return BoundaryType.OUTER_WALL
        if j == 0:
            return BoundaryType.BOTTOM
        if j == self._nz - 1:
            return BoundaryType.TOP
        return BoundaryType.INTERIOR

    def create_temperature_array(self, initial_temperature: float) -> npt.NDArray[np.float64]:
        return np.full((self._nr, self._nz), initial_temperature, dtype=np.float64)

    def nearest_node(self, r: float, z: float) -> tuple[int, int]:
        """Index of the node closest to the physical point (r, z)."""
        i = int(np.clip(np.rint(r / self._dr), 0, self._nr - 1))
        j = int(np.clip(np.rint(z / self._dz), 0, self._nz - 1))
        return i, j

    def mesh_info(self) -> MeshInfo:
        return MeshInfo(
            nr=self._nr,
            nz=self._nz,
            total_nodes=self.total_nodes,
            radius=self._radius,
            height=self._height,
            dr=self._dr,
            dz=self._dz,
            total_volume=float(self._volumes.sum()),
        )

    def validate(self) -> None:
        """Re-check coordinate arrays; raises MeshGenerationError on inconsistency."""
        if len(self._r_coords) != self._nr:
            raise MeshGenerationError(
                f"Radial coordinate array length {len(self._r_coords)} doesn't match nr {self._nr}"
            )
        if len(self._z_coords) != self._nz:
            raise MeshGenerationError(
                f"Axial coordinate array length {len(self._z_coords)} doesn't match nz {self._nz}"
            )
        if self._r_coords[0] != 0.0:
            raise MeshGenerationError("Radial coordinates must start on the axis")
        if np.any(np.diff(self._r_coords) <= 0.0):
            raise MeshGenerationError("Radial coordinates are not monotonically increasing")
        if np.any(np.diff(self._z_coords) <= 0.0):
            raise MeshGenerationError("Axial coordinates are not monotonically increasing")
