"""Acquisition order of plate spots."""

from __future__ import annotations

from typing import Iterable, List

from imaging_msms.spots import Spot


def order_spots_for_acquisition(spots: Iterable[Spot]) -> List[Spot]:
    """Sort spots line by line, by (x_index, y_index), to limit stage travel."""
    return sorted(spots, key=lambda s: s.position.coordinates)
