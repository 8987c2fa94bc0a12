"""In-memory imaging dataset and its JSON loader."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import numpy as np

from imaging_msms.contracts import (
    Feature,
    ImageProfile,
    MobilitySpectrum,
    PlatePosition,
)

logger = logging.getLogger(__name__)


class InMemoryPositionAccess:
    """Random access to per-position spectra held in a dict."""

    def __init__(
        self,
        spectra: Mapping[PlatePosition, MobilitySpectrum],
        total_positions: Optional[int] = None,
    ) -> None:
        self._spectra: Dict[PlatePosition, MobilitySpectrum] = dict(spectra)
        self._total = int(total_positions) if total_positions is not None else len(self._spectra)

    @property
    def number_of_positions(self) -> int:
        return self._total

    def spectrum_at(self, position: PlatePosition) -> Optional[MobilitySpectrum]:
        return self._spectra.get(position)


@dataclass
class ImagingDataset:
    features: List[Feature]
    access: InMemoryPositionAccess
    positions: Dict[str, PlatePosition]


def _spectrum_from_payload(payload: Optional[Mapping[str, Any]]) -> MobilitySpectrum:
    if not payload:
        return MobilitySpectrum.empty()
    return MobilitySpectrum(
        mobility=np.asarray(payload.get("mobility", []), dtype=float),
        mz=np.asarray(payload.get("mz", []), dtype=float),
        intensity=np.asarray(payload.get("intensity", []), dtype=float),
    )


def dataset_from_dict(payload: Mapping[str, Any]) -> ImagingDataset:
    positions: Dict[str, PlatePosition] = {}
    spectra: Dict[PlatePosition, MobilitySpectrum] = {}
    for entry in payload.get("positions", []):
        name = str(entry["spot_name"])
        if name in positions:
            raise ValueError(f"Duplicate spot name in dataset: {name}")
        position = PlatePosition(int(entry["x"]), int(entry["y"]), name)
        positions[name] = position
        spectra[position] = _spectrum_from_payload(entry.get("spectrum"))

    features: List[Feature] = []
    for entry in payload.get("features", []):
        feature_id = str(entry["id"])
        profile_positions: List[Optional[PlatePosition]] = []
        intensities: List[float] = []
        for point in entry.get("profile", []):
            name = point.get("spot_name")
            if name is not None and name not in positions:
                raise ValueError(
                    f"Feature {feature_id} references unknown spot '{name}'"
                )
            profile_positions.append(positions[name] if name is not None else None)
            intensities.append(float(point["intensity"]))

        mobility = float(entry["mobility"])
        mobility_range = entry.get("mobility_range") or (mobility, mobility)
        features.append(
            Feature(
                feature_id=feature_id,
                mz=float(entry["mz"]),
                mobility=mobility,
                mobility_range=(float(mobility_range[0]), float(mobility_range[1])),
                height=float(entry.get("height", max(intensities, default=0.0))),
                area=float(entry.get("area", sum(intensities))),
                profile=ImageProfile(profile_positions, np.asarray(intensities)),
            )
        )

    access = InMemoryPositionAccess(spectra, payload.get("total_positions"))
    logger.info(
        "Loaded dataset: %d features, %d positions (%d usable)",
        len(features), len(positions), access.number_of_positions,
    )
    return ImagingDataset(features=features, access=access, positions=positions)


def load_dataset(path: str | Path) -> ImagingDataset:
    dataset_path = Path(path)
    if not dataset_path.is_file():
        raise FileNotFoundError(f"Dataset file not found: {dataset_path}")
    with dataset_path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    return dataset_from_dict(payload)
