"""Collision energy selection under per-feature distance constraints."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial.distance import cdist

from imaging_msms.contracts import ImagingMsMsConfig, PlatePosition
from imaging_msms.precursor import PrecursorDemand
from imaging_msms.spots import Spot

# m/z anchors of the stepping tables handed to the instrument
DEFAULT_MASS_ANCHORS: Tuple[float, ...] = (100.0, 1000.0, 3000.0)


def _too_close(
    used_spots: Sequence[Spot],
    energy: float,
    position: PlatePosition,
    min_distance: float,
) -> bool:
    same_energy = [s.position.coordinates for s in used_spots if s.collision_energy == energy]
    if not same_energy:
        return False
    distances = cdist(
        np.asarray([position.coordinates], dtype=float),
        np.asarray(same_energy, dtype=float),
    )
    return bool((distances < min_distance).any())


class CollisionEnergyPlanner:
    """Picks collision energies in ladder order; the first admissible energy wins."""

    def __init__(
        self,
        collision_energies: Sequence[float],
        min_distance: float,
        num_msms: int,
    ) -> None:
        self.collision_energies = tuple(float(e) for e in collision_energies)
        self.min_distance = float(min_distance)
        self.num_msms = int(num_msms)

    @classmethod
    def from_config(cls, config: ImagingMsMsConfig) -> "CollisionEnergyPlanner":
        return cls(config.collision_energies, config.min_distance, config.num_msms)

    def best_new_energy(
        self,
        demand: PrecursorDemand,
        used_spots: Sequence[Spot],
        candidate_position: PlatePosition,
    ) -> Optional[float]:
        """Energy for a new spot at ``candidate_position``, or None if none fits."""
        for energy in self.collision_energies:
            if demand.remaining(energy) <= 0:
                continue
            if _too_close(used_spots, energy, candidate_position, self.min_distance):
                continue
            return energy
        return None

    def admissible_energies_for_existing_spot(
        self,
        demand: PrecursorDemand,
        used_spots: Sequence[Spot],
        spot_position: PlatePosition,
    ) -> List[float]:
        """Energies the feature could still accept at an already registered spot.

        The distance rule is checked against the feature's other spots only.
        """
        admissible = []
        for energy in self.collision_energies:
            if demand.assigned(energy) >= self.num_msms:
                continue
            others = [s for s in used_spots if s.position != spot_position]
            if _too_close(others, energy, spot_position, self.min_distance):
                continue
            admissible.append(energy)
        return admissible


@dataclass(frozen=True)
class CollisionEnergyTables:
    """Per-energy stepping tables referenced by the acquisition file."""

    collision_energies: Tuple[float, ...]
    isolation_width: float
    mass_anchors: Tuple[float, ...] = DEFAULT_MASS_ANCHORS

    @classmethod
    def from_config(cls, config: ImagingMsMsConfig) -> "CollisionEnergyTables":
        return cls(tuple(config.collision_energies), config.isolation_width)

    def table_name(self, energy: float) -> str:
        return f"ce_table_{float(energy):g}eV.csv"

    def rows(self, energy: float) -> List[Tuple[float, float, float]]:
        if float(energy) not in self.collision_energies:
            raise KeyError(f"Collision energy {energy} is not in the ladder")
        return [(mass, self.isolation_width, float(energy)) for mass in self.mass_anchors]

    def tables(self) -> Dict[float, List[Tuple[float, float, float]]]:
        return {energy: self.rows(energy) for energy in self.collision_energies}
