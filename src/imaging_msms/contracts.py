"""Contracts for imaging MS/MS spot planning."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

if TYPE_CHECKING:
    from imaging_msms.spots import Spot

MobilityRange = Tuple[float, float]


class Ms2ImagingMode(Enum):
    """Spot layout used by the acquisition writer."""

    SINGLE = "single"
    QUAD = "quad"

    @property
    def slot_count(self) -> int:
        return 1 if self is Ms2ImagingMode.SINGLE else 4


@dataclass(frozen=True)
class ImagingMsMsConfig:
    """Configuration for MS/MS spot assignment on an imaging plate."""

    collision_energies: Tuple[float, ...] = (20.0, 35.0, 50.0)
    num_msms: int = 3
    min_msms_intensity: float = 1.0e3
    min_distance: float = 30.0
    min_chimerity_score: float = 0.8
    isolation_width: float = 1.7
    min_mobility_width: float = 0.005
    max_mobility_width: float = 0.15
    save_path_dir: str = "acquisition"
    ms2_imaging_mode: Ms2ImagingMode = Ms2ImagingMode.SINGLE
    laser_offset_x_um: float = 25.0
    laser_offset_y_um: float = 25.0
    # instrument isolates wider than the set width
    isolation_narrowing: float = 1.7
    target_mz_tolerance: float = 0.01

    @property
    def total_msms_per_feature(self) -> int:
        return self.num_msms * len(self.collision_energies)

    @property
    def isolation_half_width(self) -> float:
        return self.isolation_width / self.isolation_narrowing / 2.0

    def isolation_window(self, mz: float) -> Tuple[float, float]:
        half = self.isolation_half_width
        return (mz - half, mz + half)

    def validate(self) -> None:
        if not self.collision_energies:
            raise ValueError("At least one collision energy is required")
        if len(set(self.collision_energies)) != len(self.collision_energies):
            raise ValueError(
                f"Duplicate collision energies: {list(self.collision_energies)}"
            )
        if self.num_msms < 1:
            raise ValueError(f"num_msms must be >= 1, got {self.num_msms}")
        if self.min_distance < 0:
            raise ValueError(f"min_distance must be >= 0, got {self.min_distance}")
        if not 0.0 <= self.min_chimerity_score <= 1.0:
            raise ValueError(
                f"min_chimerity_score must be in [0, 1], got {self.min_chimerity_score}"
            )
        if self.isolation_width <= 0 or self.isolation_narrowing <= 0:
            raise ValueError("isolation_width and isolation_narrowing must be > 0")
        if self.min_mobility_width > self.max_mobility_width:
            raise ValueError(
                f"min_mobility_width {self.min_mobility_width} exceeds "
                f"max_mobility_width {self.max_mobility_width}"
            )
        if not isinstance(self.ms2_imaging_mode, Ms2ImagingMode):
            raise ValueError(f"Unknown ms2_imaging_mode '{self.ms2_imaging_mode}'")

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["collision_energies"] = list(self.collision_energies)
        payload["ms2_imaging_mode"] = self.ms2_imaging_mode.value
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ImagingMsMsConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(payload) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {unknown}")
        values = dict(payload)
        if "collision_energies" in values:
            values["collision_energies"] = tuple(
                float(e) for e in values["collision_energies"]
            )
        if "ms2_imaging_mode" in values and not isinstance(
            values["ms2_imaging_mode"], Ms2ImagingMode
        ):
            try:
                values["ms2_imaging_mode"] = Ms2ImagingMode(
                    str(values["ms2_imaging_mode"]).lower()
                )
            except ValueError:
                raise ValueError(
                    f"Unknown ms2_imaging_mode '{values['ms2_imaging_mode']}'. "
                    "Expected 'single' or 'quad'."
                ) from None
        config = cls(**values)
        config.validate()
        return config


@dataclass(frozen=True, order=True)
class PlatePosition:
    """Spatial identity of a plate spot. Ordered by (x_index, y_index)."""

    x_index: int
    y_index: int
    spot_name: str = field(default="", compare=False)

    @property
    def coordinates(self) -> Tuple[int, int]:
        return (self.x_index, self.y_index)


@dataclass
class ImageProfile:
    """Feature intensity per imaging frame.

    ``positions[i]`` is ``None`` when frame ``i`` has no spatial metadata.
    """

    positions: List[Optional[PlatePosition]]
    intensities: np.ndarray

    def __post_init__(self) -> None:
        self.intensities = np.asarray(self.intensities, dtype=float)
        if len(self.positions) != len(self.intensities):
            raise ValueError(
                f"Profile has {len(self.positions)} positions but "
                f"{len(self.intensities)} intensities"
            )

    def __len__(self) -> int:
        return len(self.positions)


@dataclass
class Feature:
    """A detected image feature that should be fragmented."""

    feature_id: str
    mz: float
    mobility: float
    mobility_range: MobilityRange
    height: float
    area: float
    profile: ImageProfile


@dataclass
class MobilitySpectrum:
    """Centroided data points of one frame, flattened over mobility scans."""

    mobility: np.ndarray
    mz: np.ndarray
    intensity: np.ndarray

    def __post_init__(self) -> None:
        self.mobility = np.asarray(self.mobility, dtype=float)
        self.mz = np.asarray(self.mz, dtype=float)
        self.intensity = np.asarray(self.intensity, dtype=float)
        if not (len(self.mobility) == len(self.mz) == len(self.intensity)):
            raise ValueError("mobility, mz and intensity arrays must have equal length")

    @classmethod
    def empty(cls) -> "MobilitySpectrum":
        return cls(np.empty(0), np.empty(0), np.empty(0))


@dataclass(frozen=True)
class Precursor:
    """Isolation target placed into spot slots."""

    feature_id: str
    mz: float
    mobility: float
    mobility_range: MobilityRange


@dataclass
class AssignmentDecision:
    """One successful feature -> spot assignment."""

    feature_id: str
    spot_name: str
    x_index: int
    y_index: int
    collision_energy: float
    slot_index: int
    action: str  # "reuse" | "create"
    intensity: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ImagingMsMsRunResult:
    """In-memory result of one planning run."""

    status: str  # "finished" | "canceled" | "error"
    spots: List[Spot] = field(default_factory=list)
    collision_energies: Sequence[float] = field(default_factory=tuple)
    features_per_msms_count: List[int] = field(default_factory=list)
    decisions: List[AssignmentDecision] = field(default_factory=list)
    acquisition_path: Optional[Path] = None
    skipped_features: int = 0
    registry_full: bool = False
    error_message: Optional[str] = None
    debug: Dict[str, object] = field(default_factory=dict)


class AssignmentCanceled(Exception):
    """Raised when the cancel predicate fires between features."""


class SpotRegistryFullError(RuntimeError):
    """Raised when a spot is created after every plate position is used."""


class AcquisitionWriteError(RuntimeError):
    """Raised when the acquisition file cannot be written."""
