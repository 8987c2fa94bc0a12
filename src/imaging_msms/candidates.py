"""Candidate plate positions drawn from a feature's image profile."""

from __future__ import annotations

from typing import Iterator, List, NamedTuple, Optional

import numpy as np

from imaging_msms.contracts import ImageProfile, PlatePosition
from imaging_msms.spots import SpotRegistry


class RankedCandidate(NamedTuple):
    index: int
    position: Optional[PlatePosition]
    intensity: float


class IntensityRankedCandidates:
    """Single-pass iterator over profile frames, highest intensity first.

    Equal intensities keep their original frame order.
    """

    def __init__(self, profile: ImageProfile) -> None:
        self._profile = profile
        intensities = profile.intensities
        frame_idx = np.arange(len(intensities))
        # lexsort sorts by the last key first
        self._order = np.lexsort((frame_idx, -intensities))
        self._cursor = 0

    def has_next(self) -> bool:
        return self._cursor < len(self._order)

    def next(self) -> RankedCandidate:
        if not self.has_next():
            raise StopIteration
        idx = int(self._order[self._cursor])
        self._cursor += 1
        return RankedCandidate(
            index=idx,
            position=self._profile.positions[idx],
            intensity=float(self._profile.intensities[idx]),
        )

    def __iter__(self) -> Iterator[RankedCandidate]:
        return self

    def __next__(self) -> RankedCandidate:
        return self.next()

    def __len__(self) -> int:
        return len(self._order) - self._cursor


def possible_existing_spots(
    profile: ImageProfile,
    registry: SpotRegistry,
    min_msms_intensity: float,
) -> List[PlatePosition]:
    """Registered positions where the feature reaches the MS/MS intensity minimum."""
    seen = set()
    positions: List[PlatePosition] = []
    for position, intensity in zip(profile.positions, profile.intensities):
        if position is None or intensity < min_msms_intensity:
            continue
        if position in seen or position not in registry:
            continue
        seen.add(position)
        positions.append(position)
    return positions
