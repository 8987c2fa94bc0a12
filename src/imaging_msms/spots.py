"""Plate spots and the registries that own them."""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional, Tuple

from imaging_msms.contracts import (
    Ms2ImagingMode,
    PlatePosition,
    Precursor,
    SpotRegistryFullError,
)

# (qx, qy) laser offsets of the quad layout, in slot order
QUADRANTS: Tuple[Tuple[int, int], ...] = ((0, 0), (1, 0), (0, 1), (1, 1))


class Spot:
    """A plate position fixed at one collision energy with a few precursor slots."""

    def __init__(
        self,
        position: PlatePosition,
        collision_energy: float,
        layout: Ms2ImagingMode = Ms2ImagingMode.SINGLE,
    ) -> None:
        self._position = position
        self._collision_energy = float(collision_energy)
        self.layout = layout
        self._slots: List[Optional[Precursor]] = [None] * layout.slot_count

    @property
    def position(self) -> PlatePosition:
        return self._position

    @property
    def collision_energy(self) -> float:
        return self._collision_energy

    @property
    def precursors(self) -> List[Precursor]:
        return [p for p in self._slots if p is not None]

    @property
    def free_slots(self) -> int:
        return sum(1 for p in self._slots if p is None)

    def spot_info(self) -> PlatePosition:
        return self._position

    def has_feature(self, feature_id: str) -> bool:
        return any(p is not None and p.feature_id == feature_id for p in self._slots)

    def try_assign(self, precursor: Precursor, energy: float) -> bool:
        """Place ``precursor`` in the first free slot.

        Returns False without side effects if the energy differs from the
        spot's energy, the feature already sits on this spot, or all slots
        are taken.
        """
        if float(energy) != self._collision_energy:
            return False
        if self.has_feature(precursor.feature_id):
            return False
        for i, occupant in enumerate(self._slots):
            if occupant is None:
                self._slots[i] = precursor
                return True
        return False

    def slot_of(self, feature_id: str) -> Optional[int]:
        for i, occupant in enumerate(self._slots):
            if occupant is not None and occupant.feature_id == feature_id:
                return i
        return None

    def slot_index(self, feature_id: str) -> int:
        """Slot held by ``feature_id``; KeyError if it is not on this spot."""
        slot = self.slot_of(feature_id)
        if slot is None:
            raise KeyError(
                f"Feature {feature_id} has no slot on spot {self._position.coordinates}"
            )
        return slot

    def occupied_slots(self) -> Iterator[Tuple[int, Tuple[int, int], Precursor]]:
        for i, occupant in enumerate(self._slots):
            if occupant is not None:
                yield i, QUADRANTS[i], occupant

    def __repr__(self) -> str:
        return (
            f"Spot({self._position.spot_name or self._position.coordinates}, "
            f"ce={self._collision_energy}, "
            f"slots={len(self._slots) - self.free_slots}/{len(self._slots)})"
        )


class SpotRegistry:
    """Append-only map of plate position -> spot, bounded by the plate size."""

    def __init__(
        self,
        capacity: int,
        layout: Ms2ImagingMode = Ms2ImagingMode.SINGLE,
    ) -> None:
        self.capacity = int(capacity)
        self.layout = layout
        self._spots: Dict[PlatePosition, Spot] = {}

    def __len__(self) -> int:
        return len(self._spots)

    def __contains__(self, position: object) -> bool:
        return position in self._spots

    def __iter__(self) -> Iterator[Spot]:
        return iter(self._spots.values())

    def get(self, position: PlatePosition) -> Optional[Spot]:
        return self._spots.get(position)

    def is_full(self) -> bool:
        return len(self._spots) >= self.capacity

    def create(self, position: PlatePosition, collision_energy: float) -> Spot:
        """Create the spot at ``position``; an existing spot is returned unchanged."""
        existing = self._spots.get(position)
        if existing is not None:
            return existing
        if self.is_full():
            raise SpotRegistryFullError(
                f"Cannot create spot {position.coordinates}: "
                f"all {self.capacity} plate positions are in use"
            )
        spot = Spot(position, collision_energy, self.layout)
        self._spots[position] = spot
        return spot

    def spots(self) -> List[Spot]:
        return list(self._spots.values())


class FeatureSpotIndex:
    """Spots already used by each feature, in assignment order."""

    def __init__(self) -> None:
        self._index: Dict[str, List[Spot]] = {}

    def spots_for(self, feature_id: str) -> List[Spot]:
        return list(self._index.get(feature_id, []))

    def add(self, feature_id: str, spot: Spot) -> None:
        self._index.setdefault(feature_id, []).append(spot)

    def __len__(self) -> int:
        return len(self._index)
