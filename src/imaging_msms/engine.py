"""Greedy assignment of features to MS/MS plate spots.

Features are processed once, weakest area first, so that low-abundance
features pick spots while the plate is least constrained. Each feature first
tries to join spots that already exist (reuse scan) and then, if it still
needs events, creates new spots at its most intense positions (create scan).
Decisions are never revisited: the result is a greedy approximation, not a
global optimum.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from imaging_msms.candidates import IntensityRankedCandidates, possible_existing_spots
from imaging_msms.collision_energy import CollisionEnergyPlanner
from imaging_msms.contracts import (
    AssignmentCanceled,
    AssignmentDecision,
    Feature,
    ImagingMsMsConfig,
    PlatePosition,
)
from imaging_msms.precursor import PrecursorDemand, build_precursor_demand
from imaging_msms.purity import PositionAccess, PurityEvaluator
from imaging_msms.spots import FeatureSpotIndex, Spot, SpotRegistry

logger = logging.getLogger(__name__)


@dataclass
class AssignmentOutcome:
    registry: SpotRegistry
    feature_index: FeatureSpotIndex
    demands: List[PrecursorDemand]
    features_per_msms_count: List[int]
    decisions: List[AssignmentDecision] = field(default_factory=list)
    skipped_features: int = 0
    registry_full: bool = False


class AssignmentEngine:
    """Assigns every feature's MS/MS demand to reused or newly created spots."""

    def __init__(
        self,
        config: ImagingMsMsConfig,
        access: PositionAccess,
        *,
        purity: Optional[PurityEvaluator] = None,
        planner: Optional[CollisionEnergyPlanner] = None,
        is_canceled: Optional[Callable[[], bool]] = None,
        progress: Optional[Callable[[float], None]] = None,
    ) -> None:
        config.validate()
        self.config = config
        self.access = access
        self.purity = purity if purity is not None else PurityEvaluator(config)
        self.planner = (
            planner if planner is not None else CollisionEnergyPlanner.from_config(config)
        )
        self._is_canceled = is_canceled or (lambda: False)
        self._progress = progress
        self.registry = SpotRegistry(access.number_of_positions, config.ms2_imaging_mode)
        self.feature_index = FeatureSpotIndex()
        self.decisions: List[AssignmentDecision] = []
        self._registry_full_warned = False

    def run(self, features: Sequence[Feature]) -> AssignmentOutcome:
        cfg = self.config
        histogram = [0] * (cfg.total_msms_per_feature + 1)
        demands: List[PrecursorDemand] = []
        skipped = 0

        # stable: equal areas keep input order
        ordered = sorted(features, key=lambda f: f.area)
        total = len(ordered)

        for i, feature in enumerate(ordered):
            if self._is_canceled():
                raise AssignmentCanceled(
                    f"Canceled after {i} of {total} features"
                )

            if feature.height < cfg.min_msms_intensity:
                skipped += 1
                histogram[0] += 1
                self._report(i + 1, total)
                continue

            demand = build_precursor_demand(feature, cfg)
            self._reuse_scan(feature, demand)
            if not demand.is_satisfied():
                self._create_scan(feature, demand)

            demands.append(demand)
            histogram[demand.total_assigned] += 1
            self._report(i + 1, total)

        return AssignmentOutcome(
            registry=self.registry,
            feature_index=self.feature_index,
            demands=demands,
            features_per_msms_count=histogram,
            decisions=list(self.decisions),
            skipped_features=skipped,
            registry_full=self._registry_full_warned,
        )

    def _reuse_scan(self, feature: Feature, demand: PrecursorDemand) -> None:
        cfg = self.config
        profile = feature.profile
        for position in possible_existing_spots(
            profile, self.registry, cfg.min_msms_intensity
        ):
            spot = self.registry.get(position)
            used = self.feature_index.spots_for(feature.feature_id)

            energies = self.planner.admissible_energies_for_existing_spot(
                demand, used, position
            )
            if spot.collision_energy not in energies:
                continue
            if not self.purity.passes(demand.precursor, position, self.access):
                continue

            if spot.try_assign(demand.precursor, spot.collision_energy):
                self._record(demand, spot, "reuse", _intensity_at(feature, position))

            if demand.lowest_assigned_across_energies() >= demand.num_msms:
                break

    def _create_scan(self, feature: Feature, demand: PrecursorDemand) -> None:
        cfg = self.config
        candidates = IntensityRankedCandidates(feature.profile)

        while candidates.has_next() and not demand.is_satisfied():
            if self.registry.is_full():
                self._warn_registry_full()
                return

            candidate = candidates.next()
            # sorted by intensity, nothing below the minimum can follow
            if candidate.intensity < cfg.min_msms_intensity:
                break
            position = candidate.position
            if position is None:
                continue
            if position in self.registry:
                # already tried in the reuse scan or owned by another energy
                continue

            used = self.feature_index.spots_for(feature.feature_id)
            energy = self.planner.best_new_energy(demand, used, position)
            if energy is None:
                continue
            if not self.purity.passes(demand.precursor, position, self.access):
                continue

            spot = self.registry.create(position, energy)
            if spot.try_assign(demand.precursor, energy):
                self._record(demand, spot, "create", candidate.intensity)

    def _record(
        self,
        demand: PrecursorDemand,
        spot: Spot,
        action: str,
        intensity: float,
    ) -> None:
        demand.record(spot.collision_energy)
        self.feature_index.add(demand.feature_id, spot)
        position = spot.position
        self.decisions.append(
            AssignmentDecision(
                feature_id=demand.feature_id,
                spot_name=position.spot_name,
                x_index=position.x_index,
                y_index=position.y_index,
                collision_energy=spot.collision_energy,
                slot_index=spot.slot_index(demand.feature_id),
                action=action,
                intensity=float(intensity),
            )
        )
        logger.debug(
            "Adding precursor %.4f (%s) to %s spot %s at %g eV",
            demand.precursor.mz, demand.feature_id,
            "existing" if action == "reuse" else "new",
            position.spot_name or position.coordinates, spot.collision_energy,
        )

    def _warn_registry_full(self) -> None:
        if not self._registry_full_warned:
            logger.warning(
                "Too many MS/MS spots (%d), cannot create any more. "
                "Remaining features can only join existing spots.",
                len(self.registry),
            )
            self._registry_full_warned = True

    def _report(self, done: int, total: int) -> None:
        if self._progress is not None and total:
            self._progress(done / total)


def _intensity_at(feature: Feature, position: PlatePosition) -> float:
    for pos, intensity in zip(feature.profile.positions, feature.profile.intensities):
        if pos == position:
            return float(intensity)
    return 0.0
