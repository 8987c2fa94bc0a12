"""Acquisition file writers for single-spot and quad-spot MS/MS layouts.

The file is a CSV command list with one row per occupied spot slot. Every
row names the collision-energy stepping table it should be acquired with.
The file and its stepping tables are assembled next to their targets and
moved into place only after all of them have been written, so a cancelled
or failed run never leaves partial acquisition output behind.
"""

from __future__ import annotations

import csv
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from imaging_msms.collision_energy import CollisionEnergyTables
from imaging_msms.contracts import (
    AcquisitionWriteError,
    ImagingMsMsConfig,
    Ms2ImagingMode,
)
from imaging_msms.spots import Spot

logger = logging.getLogger(__name__)

ACQUISITION_HEADER = [
    "spot_name",
    "x_index",
    "y_index",
    "slot",
    "x_offset_um",
    "y_offset_um",
    "collision_energy",
    "ce_table",
    "feature_id",
    "mz",
    "mobility_low",
    "mobility_high",
]


class AcquisitionWriter(ABC):
    """Sink for the ordered spot list of a finished planning run."""

    mode: Ms2ImagingMode

    @abstractmethod
    def rows_for_spot(self, spot: Spot, ce_tables: CollisionEnergyTables) -> List[list]:
        """Command rows for one spot."""

    def write_acquisition_file(
        self,
        acq_file: Path,
        spots: Sequence[Spot],
        ce_tables: CollisionEnergyTables,
        is_canceled: Callable[[], bool],
        output_dir: Path,
    ) -> Optional[Path]:
        """Write all spots; returns None if canceled before completion.

        The acquisition file and the CE tables are staged as ``.tmp`` files
        and only moved into place once every one of them is complete.
        """
        acq_file = Path(acq_file)
        output_dir = Path(output_dir)
        staged: List[Tuple[Path, Path]] = []
        placed: List[Path] = []
        canceled = False
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
            tmp = _staging_path(acq_file)
            staged.append((tmp, acq_file))
            with tmp.open("w", encoding="utf-8", newline="") as handle:
                writer = csv.writer(handle)
                writer.writerow(ACQUISITION_HEADER)
                for spot in spots:
                    if is_canceled():
                        canceled = True
                        break
                    writer.writerows(self.rows_for_spot(spot, ce_tables))
            if canceled:
                _discard(staged, placed)
                logger.info("Acquisition export canceled, no file written")
                return None
            self._stage_ce_tables(ce_tables, output_dir, staged)
            # acquisition file last, it references the tables
            for tmp_path, target in staged[1:] + staged[:1]:
                tmp_path.replace(target)
                placed.append(target)
        except OSError as exc:
            _discard(staged, placed)
            raise AcquisitionWriteError(
                f"Failed to write acquisition file {acq_file}: {exc}"
            ) from exc

        logger.info("Wrote %d spots to %s", len(spots), acq_file)
        return acq_file

    def _stage_ce_tables(
        self,
        ce_tables: CollisionEnergyTables,
        output_dir: Path,
        staged: List[Tuple[Path, Path]],
    ) -> None:
        for energy, rows in ce_tables.tables().items():
            target = output_dir / ce_tables.table_name(energy)
            tmp = _staging_path(target)
            staged.append((tmp, target))
            with tmp.open("w", encoding="utf-8", newline="") as handle:
                writer = csv.writer(handle)
                writer.writerow(["mass", "iso_width", "collision_energy"])
                writer.writerows(rows)


def _staging_path(target: Path) -> Path:
    return target.with_suffix(target.suffix + ".tmp")


def _discard(staged: Sequence[Tuple[Path, Path]], placed: Sequence[Path]) -> None:
    """Remove staged files and any target already moved into place."""
    for path in [tmp for tmp, _ in staged] + list(placed):
        try:
            if path.is_file():
                path.unlink()
        except OSError as exc:
            logger.warning("Could not remove partial output %s: %s", path, exc)


def _precursor_row(
    spot: Spot,
    slot: int,
    offset: Iterable[float],
    precursor,
    ce_tables: CollisionEnergyTables,
) -> list:
    pos = spot.position
    dx, dy = offset
    return [
        pos.spot_name,
        pos.x_index,
        pos.y_index,
        slot,
        f"{dx:g}",
        f"{dy:g}",
        f"{spot.collision_energy:g}",
        ce_tables.table_name(spot.collision_energy),
        precursor.feature_id,
        f"{precursor.mz:.4f}",
        f"{precursor.mobility_range[0]:.4f}",
        f"{precursor.mobility_range[1]:.4f}",
    ]


class SingleSpotMs2Writer(AcquisitionWriter):
    """One MS/MS shot at the spot centre."""

    mode = Ms2ImagingMode.SINGLE

    def rows_for_spot(self, spot: Spot, ce_tables: CollisionEnergyTables) -> List[list]:
        return [
            _precursor_row(spot, slot, (0.0, 0.0), precursor, ce_tables)
            for slot, _, precursor in spot.occupied_slots()
        ]


class QuadSpotMs2Writer(AcquisitionWriter):
    """Up to four shots per spot, offset by the laser step in x and y."""

    mode = Ms2ImagingMode.QUAD

    def __init__(self, laser_offset_x_um: float, laser_offset_y_um: float) -> None:
        self.laser_offset_x_um = float(laser_offset_x_um)
        self.laser_offset_y_um = float(laser_offset_y_um)

    def rows_for_spot(self, spot: Spot, ce_tables: CollisionEnergyTables) -> List[list]:
        rows = []
        for slot, (qx, qy), precursor in spot.occupied_slots():
            offset = (qx * self.laser_offset_x_um, qy * self.laser_offset_y_um)
            rows.append(_precursor_row(spot, slot, offset, precursor, ce_tables))
        return rows


def writer_for_config(config: ImagingMsMsConfig) -> AcquisitionWriter:
    if config.ms2_imaging_mode is Ms2ImagingMode.QUAD:
        return QuadSpotMs2Writer(config.laser_offset_x_um, config.laser_offset_y_um)
    return SingleSpotMs2Writer()
