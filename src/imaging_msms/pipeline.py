"""Imaging MS/MS run: assign spots, order them, write the acquisition file."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from imaging_msms.audit import AuditTrail
from imaging_msms.collision_energy import CollisionEnergyTables
from imaging_msms.contracts import (
    AcquisitionWriteError,
    AssignmentCanceled,
    Feature,
    ImagingMsMsConfig,
    ImagingMsMsRunResult,
)
from imaging_msms.engine import AssignmentEngine, AssignmentOutcome
from imaging_msms.ordering import order_spots_for_acquisition
from imaging_msms.purity import PositionAccess, PurityEvaluator
from imaging_msms.writers import AcquisitionWriter, writer_for_config

logger = logging.getLogger(__name__)

ACQUISITION_FILE_NAME = "acquisition.txt"
# share of the progress bar spent on assignment, the rest is the export
_ASSIGNMENT_PROGRESS_SHARE = 0.9


def run_imaging_msms(
    features: Sequence[Feature],
    access: PositionAccess,
    config: ImagingMsMsConfig,
    *,
    writer: Optional[AcquisitionWriter] = None,
    purity: Optional[PurityEvaluator] = None,
    is_canceled: Optional[Callable[[], bool]] = None,
    progress: Optional[Callable[[float], None]] = None,
    audit: Optional[AuditTrail] = None,
) -> ImagingMsMsRunResult:
    config.validate()
    is_canceled = is_canceled or (lambda: False)
    report = progress or (lambda fraction: None)
    writer = writer if writer is not None else writer_for_config(config)
    started = time.perf_counter()

    # the writer creates save_dir
    save_dir = Path(config.save_path_dir)

    if is_canceled():
        return _canceled_result(config, "before assignment")

    if not features:
        logger.info("No features to fragment, nothing to write")
        report(1.0)
        return ImagingMsMsRunResult(
            status="finished",
            collision_energies=tuple(config.collision_energies),
            features_per_msms_count=[0] * (config.total_msms_per_feature + 1),
        )

    engine = AssignmentEngine(
        config,
        access,
        purity=purity,
        is_canceled=is_canceled,
        progress=lambda fraction: report(_ASSIGNMENT_PROGRESS_SHARE * fraction),
    )
    try:
        outcome = engine.run(features)
    except AssignmentCanceled as exc:
        return _canceled_result(config, str(exc))

    log_msms_histogram(outcome.features_per_msms_count, len(features))
    sorted_spots = order_spots_for_acquisition(outcome.registry)

    result = ImagingMsMsRunResult(
        status="finished",
        spots=sorted_spots,
        collision_energies=tuple(config.collision_energies),
        features_per_msms_count=outcome.features_per_msms_count,
        decisions=outcome.decisions,
        skipped_features=outcome.skipped_features,
        registry_full=outcome.registry_full,
    )

    if is_canceled():
        return _canceled_result(config, "before acquisition export")

    acq_file = save_dir / ACQUISITION_FILE_NAME
    ce_tables = CollisionEnergyTables.from_config(config)
    try:
        written = writer.write_acquisition_file(
            acq_file, sorted_spots, ce_tables, is_canceled, save_dir
        )
    except AcquisitionWriteError as exc:
        logger.error("%s", exc)
        result.status = "error"
        result.error_message = str(exc)
        return result

    if written is None:
        return _canceled_result(config, "during acquisition export")

    result.acquisition_path = written
    if audit is not None:
        _write_audit(audit, outcome, sorted_spots, written)

    result.debug = {
        "elapsed_s": round(time.perf_counter() - started, 3),
        "spot_count": len(sorted_spots),
        "assignment_count": len(outcome.decisions),
        "reused_assignments": sum(1 for d in outcome.decisions if d.action == "reuse"),
        "plate_positions": access.number_of_positions,
    }
    report(1.0)
    return result


def log_msms_histogram(counts: List[int], feature_count: int) -> None:
    for n_msms, n_features in enumerate(counts):
        share = 100.0 * n_features / feature_count if feature_count else 0.0
        logger.info("%d features have %d MS/MS spots. (%.1f%%)", n_features, n_msms, share)


def _write_audit(
    audit: AuditTrail,
    outcome: AssignmentOutcome,
    sorted_spots: Sequence,
    acquisition_path: Path,
) -> None:
    audit.append_assignments(outcome.decisions)
    audit.write_checkpoint(
        phase_index=0,
        phase_name="assignment",
        counts={
            "features": len(outcome.demands) + outcome.skipped_features,
            "skipped_features": outcome.skipped_features,
            "spots": len(outcome.registry),
            "assignments": len(outcome.decisions),
        },
        outputs={"features_per_msms_count": list(outcome.features_per_msms_count)},
    )
    audit.write_checkpoint(
        phase_index=1,
        phase_name="ordering",
        counts={"spots": len(sorted_spots)},
        outputs={
            "acquisition_file": str(acquisition_path),
            "first_spot": sorted_spots[0].position.spot_name if sorted_spots else None,
        },
    )
    audit.finalize()


def _canceled_result(config: ImagingMsMsConfig, where: str) -> ImagingMsMsRunResult:
    logger.info("Imaging MS/MS run canceled (%s)", where)
    return ImagingMsMsRunResult(
        status="canceled",
        collision_energies=tuple(config.collision_energies),
    )
