"""Per-feature fragmentation quota tracking."""

from __future__ import annotations

from typing import Dict, Sequence, Tuple

from imaging_msms.contracts import Feature, ImagingMsMsConfig, MobilityRange, Precursor


def adjust_mobility_range(
    mobility: float,
    initial: MobilityRange,
    min_width: float,
    max_width: float,
) -> MobilityRange:
    """Clamp a feature's mobility range width into [min_width, max_width].

    Out-of-bounds ranges are re-centred on the feature mobility.
    """
    width = initial[1] - initial[0]
    if min_width <= width <= max_width:
        return (float(initial[0]), float(initial[1]))
    if width < min_width:
        return (mobility - min_width / 2.0, mobility + min_width / 2.0)
    return (mobility - max_width / 2.0, mobility + max_width / 2.0)


class PrecursorDemand:
    """Tracks how many MS/MS events a feature still needs per collision energy."""

    def __init__(
        self,
        precursor: Precursor,
        collision_energies: Sequence[float],
        num_msms: int,
    ) -> None:
        self.precursor = precursor
        self.num_msms = int(num_msms)
        self._energies: Tuple[float, ...] = tuple(float(e) for e in collision_energies)
        self._assigned: Dict[float, int] = {e: 0 for e in self._energies}

    @property
    def feature_id(self) -> str:
        return self.precursor.feature_id

    @property
    def collision_energies(self) -> Tuple[float, ...]:
        return self._energies

    @property
    def total_assigned(self) -> int:
        return sum(self._assigned.values())

    def assigned(self, energy: float) -> int:
        return self._assigned.get(float(energy), 0)

    def remaining(self, energy: float) -> int:
        if float(energy) not in self._assigned:
            return 0
        return self.num_msms - self._assigned[float(energy)]

    def lowest_assigned_across_energies(self) -> int:
        return min(self._assigned.values())

    def is_satisfied(self) -> bool:
        if self.lowest_assigned_across_energies() >= self.num_msms:
            return True
        return self.total_assigned >= self.num_msms * len(self._energies)

    def record(self, energy: float) -> bool:
        if self.remaining(energy) <= 0:
            return False
        self._assigned[float(energy)] += 1
        return True

    def __repr__(self) -> str:
        return (
            f"PrecursorDemand(feature_id={self.feature_id!r}, "
            f"assigned={self._assigned}, num_msms={self.num_msms})"
        )


def build_precursor_demand(feature: Feature, config: ImagingMsMsConfig) -> PrecursorDemand:
    mobility_range = adjust_mobility_range(
        feature.mobility,
        feature.mobility_range,
        config.min_mobility_width,
        config.max_mobility_width,
    )
    precursor = Precursor(
        feature_id=feature.feature_id,
        mz=float(feature.mz),
        mobility=float(feature.mobility),
        mobility_range=mobility_range,
    )
    return PrecursorDemand(precursor, config.collision_energies, config.num_msms)
