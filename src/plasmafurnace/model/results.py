"""
Simulation Results
==================
Results record of a finished (or stopped) run: the stored temperature
snapshots, the final field, summary metadata and the energy balance.

Like the configuration records, results round-trip through plain
dictionaries; choosing a file format is left to the caller.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import numpy as np

from plasmafurnace.utils import kelvin_to_celsius

if TYPE_CHECKING:
    import numpy.typing as npt
    from matplotlib.figure import Figure

logger = logging.getLogger(__name__)


@dataclass
class TimeStepSnapshot:
    time: float  # s
    step_index: int
    temperature: npt.NDArray[np.float64]  # (nr, nz), K
    liquid_fraction: Optional[npt.NDArray[np.float64]] = None

    @property
    def min_temperature(self) -> float:
        return float(np.min(self.temperature))

    @property
    def max_temperature(self) -> float:
        return float(np.max(self.temperature))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time": self.time,
            "step_index": self.step_index,
            "temperature": self.temperature.tolist(),
            "liquid_fraction": (
                self.liquid_fraction.tolist() if self.liquid_fraction is not None else None
            ),
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> TimeStepSnapshot:
        fraction = data.get("liquid_fraction")
        return TimeStepSnapshot(
            time=float(data["time"]),
            step_index=int(data["step_index"]),
            temperature=np.asarray(data["temperature"], dtype=np.float64),
            liquid_fraction=np.asarray(fraction, dtype=np.float64) if fraction is not None else None,
        )


@dataclass
class ResultsMetadata:
    min_temperature: float = 0.0  # K, over all snapshots
    max_temperature: float = 0.0  # K, over all snapshots
    nr: int = 0
    nz: int = 0
    radius: float = 0.0  # m
    height: float = 0.0  # m
    time_step: float = 0.0  # s, nominal dt
    storage_interval: float = 0.0  # s
    total_time: float = 0.0  # s, simulated
    total_steps: int = 0
    simulation_duration: float = 0.0  # s, wall clock
    solver_method: str = ""
    material: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> ResultsMetadata:
        known = ResultsMetadata.__dataclass_fields__
        return ResultsMetadata(**{k: v for k, v in data.items() if k in known})


@dataclass
class SimulationResults:
    snapshots: List[TimeStepSnapshot] = field(default_factory=list)
    final_temperature: Optional[npt.NDArray[np.float64]] = None
    r_coords: Optional[npt.NDArray[np.float64]] = None
    z_coords: Optional[npt.NDArray[np.float64]] = None
    metadata: ResultsMetadata = field(default_factory=ResultsMetadata)
    energy: Dict[str, float] = field(default_factory=dict)
    warnings: List[Dict[str, Any]] = field(default_factory=list)
    status: str = ""
    error: Optional[Dict[str, Any]] = None

    @property
    def times(self) -> npt.NDArray[np.float64]:
        return np.array([s.time for s in self.snapshots])

    def snapshot_at(self, index: int) -> TimeStepSnapshot:
        """Snapshot by position; negative indices count from the end."""
        if not -len(self.snapshots) <= index < len(self.snapshots):
            raise IndexError(f"Snapshot {index} out of range ({len(self.snapshots)} stored)")
        return self.snapshots[index]

    def update_metadata_range(self) -> None:
        """Refresh the min/max temperature over all stored snapshots."""
        if not self.snapshots:
            return
        self.metadata.min_temperature = min(s.min_temperature for s in self.snapshots)
        self.metadata.max_temperature = max(s.max_temperature for s in self.snapshots)

    def plot_snapshot(self, index: int = -1, ax: Any = None) -> Figure:
        """
        Filled contour of one snapshot in the (r, z) half plane, in °C.

        Args:
            index: Snapshot position.
            ax: Optional matplotlib axes to draw into.

        Returns:
            The matplotlib figure.
        """
        import matplotlib.pyplot as plt

        snapshot = self.snapshot_at(index)
        nr, nz = snapshot.temperature.shape
        r = self.r_coords if self.r_coords is not None else np.arange(nr)
        z = self.z_coords if self.z_coords is not None else np.arange(nz)

        if ax is None:
            plt.rcParams["figure.constrained_layout.use"] = True
            fig, ax = plt.subplots(figsize=(5, 7))
        else:
            fig = ax.figure

        cf = ax.contourf(r, z, kelvin_to_celsius(snapshot.temperature.T), levels=50, cmap="inferno")
        fig.colorbar(cf, ax=ax, label="Temperature (°C)")
        ax.set_aspect("equal")
        ax.set_title(f"t = {snapshot.time:.2f} s")
        ax.set_xlabel("r (m)")
        ax.set_ylabel("z (m)")
        return fig

    def to_dict(self) -> Dict[str, Any]:
        return {
            "snapshots": [s.to_dict() for s in self.snapshots],
            "final_temperature": (
                self.final_temperature.tolist() if self.final_temperature is not None else None
            ),
            "r_coords": self.r_coords.tolist() if self.r_coords is not None else None,
            "z_coords": self.z_coords.tolist() if self.z_coords is not None else None,
            "metadata": self.metadata.to_dict(),
            "energy": dict(self.energy),
            "warnings": list(self.warnings),
            "status": self.status,
            "error": self.error,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> SimulationResults:
        def _array(key: str) -> Optional[npt.NDArray[np.float64]]:
            value = data.get(key)
            return np.asarray(value, dtype=np.float64) if value is not None else None

        return SimulationResults(
            snapshots=[TimeStepSnapshot.from_dict(s) for s in data.get("snapshots", [])],
            final_temperature=_array("final_temperature"),
            r_coords=_array("r_coords"),
            z_coords=_array("z_coords"),
            metadata=ResultsMetadata.from_dict(data.get("metadata", {})),
            energy={k: float(v) for k, v in data.get("energy", {}).items()},
            warnings=list(data.get("warnings", [])),
            status=data.get("status", ""),
            error=data.get("error"),
        )
