#!/usr/bin/env python3
"""Plan imaging MS/MS spots for a feature list and export the acquisition file."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from imaging_msms import ImagingMsMsConfig, run_imaging_msms
from imaging_msms.audit import AuditTrail
from imaging_msms.contracts import ImagingMsMsRunResult
from imaging_msms.dataset import load_dataset
from imaging_msms.run_protocol import (
    copy_input_file,
    prepare_run_dir,
    update_latest_pointer,
    write_json,
    write_text,
)

EXIT_CODES = {"finished": 0, "error": 1, "canceled": 2}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Assign MS/MS events of image features to plate spots"
    )
    parser.add_argument("--dataset", required=True, help="Path to dataset JSON")
    parser.add_argument("--config", default=None, help="Optional config JSON")
    parser.add_argument("--name", default="imaging_msms", help="Run name")
    parser.add_argument("--runs-dir", default="runs", help="Runs output root")
    parser.add_argument(
        "--collision-energies",
        type=float,
        nargs="+",
        default=None,
        help="Collision energy ladder in eV, in priority order",
    )
    parser.add_argument(
        "--num-msms", type=int, default=None, help="MS/MS events per feature and energy"
    )
    parser.add_argument(
        "--min-intensity",
        type=float,
        default=None,
        help="Minimum feature intensity at a spot for MS/MS",
    )
    parser.add_argument(
        "--min-distance",
        type=float,
        default=None,
        help="Minimum spot distance between uses of a feature at one energy",
    )
    parser.add_argument(
        "--min-chimerity",
        type=float,
        default=None,
        help="Minimum isolation purity score (0-1)",
    )
    parser.add_argument(
        "--isolation-width", type=float, default=None, help="Isolation width in m/z"
    )
    parser.add_argument("--min-mobility-width", type=float, default=None)
    parser.add_argument("--max-mobility-width", type=float, default=None)
    parser.add_argument(
        "--mode", choices=["single", "quad"], default=None, help="Spot layout"
    )
    parser.add_argument("--laser-offset-x", type=float, default=None, help="um")
    parser.add_argument("--laser-offset-y", type=float, default=None, help="um")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logs"
    )
    return parser


def _config_from_args(args: argparse.Namespace) -> ImagingMsMsConfig:
    values: Dict[str, Any] = {}
    if args.config:
        values.update(json.loads(Path(args.config).read_text(encoding="utf-8")))

    overrides = {
        "collision_energies": args.collision_energies,
        "num_msms": args.num_msms,
        "min_msms_intensity": args.min_intensity,
        "min_distance": args.min_distance,
        "min_chimerity_score": args.min_chimerity,
        "isolation_width": args.isolation_width,
        "min_mobility_width": args.min_mobility_width,
        "max_mobility_width": args.max_mobility_width,
        "ms2_imaging_mode": args.mode,
        "laser_offset_x_um": args.laser_offset_x,
        "laser_offset_y_um": args.laser_offset_y,
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    return ImagingMsMsConfig.from_dict(values)


def _build_summary(
    *,
    run_id: str,
    elapsed_s: float,
    result: ImagingMsMsRunResult,
    feature_count: int,
) -> str:
    lines = [
        f"# Run {run_id}",
        "",
        f"- Status: **{result.status.upper()}**",
        f"- Duration: {elapsed_s:.2f}s",
        f"- Features: {feature_count} ({result.skipped_features} below intensity minimum)",
        f"- Spots: {len(result.spots)}",
        f"- Assignments: {len(result.decisions)}",
        f"- Plate full: {'yes' if result.registry_full else 'no'}",
        "",
        "## MS/MS per feature",
    ]
    for n_msms, n_features in enumerate(result.features_per_msms_count):
        lines.append(f"- {n_msms}: {n_features}")
    if result.error_message:
        lines.extend(["", "## Error", f"- {result.error_message}"])
    return "\n".join(lines) + "\n"


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    dataset_path = Path(args.dataset)
    if not dataset_path.is_file():
        parser.error(f"Dataset file not found: {dataset_path}")

    started = time.perf_counter()
    try:
        config = _config_from_args(args)
    except ValueError as exc:
        parser.error(str(exc))
    try:
        dataset = load_dataset(dataset_path)
    except ValueError as exc:
        parser.error(f"Invalid dataset {dataset_path}: {exc}")

    run_paths = prepare_run_dir(args.runs_dir, args.name)
    copied_dataset = copy_input_file(dataset_path, run_paths.input_dir)
    config = replace(config, save_path_dir=str(run_paths.acquisition_dir))

    audit = AuditTrail(run_id=run_paths.run_id, artifacts_dir=run_paths.artifacts_dir)
    result = run_imaging_msms(dataset.features, dataset.access, config, audit=audit)
    elapsed = time.perf_counter() - started

    metrics_payload = {
        "run_id": run_paths.run_id,
        "status": result.status,
        "elapsed_s": round(elapsed, 3),
        "features_per_msms_count": result.features_per_msms_count,
        "counts": {
            "features": len(dataset.features),
            "skipped_features": result.skipped_features,
            "plate_positions": dataset.access.number_of_positions,
            "spots": len(result.spots),
            "assignments": len(result.decisions),
        },
        "registry_full": result.registry_full,
        "error": result.error_message,
        "debug": result.debug,
    }
    write_json(run_paths.metrics_path, metrics_payload)
    write_text(
        run_paths.summary_path,
        _build_summary(
            run_id=run_paths.run_id,
            elapsed_s=elapsed,
            result=result,
            feature_count=len(dataset.features),
        ),
    )

    manifest = {
        "run_id": run_paths.run_id,
        "name": args.name,
        "created_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "input_dataset": str(copied_dataset),
        "status": result.status,
        "config": config.to_dict(),
        "artifacts": {
            "acquisition": str(result.acquisition_path) if result.acquisition_path else None,
            "metrics": str(run_paths.metrics_path),
            "summary": str(run_paths.summary_path),
            "checkpoints": [str(c.path) for c in audit.checkpoints],
            "decision_log": str(audit.decision_log_path),
            "decision_hash_chain": str(audit.hash_chain_path),
        },
    }
    write_json(run_paths.manifest_path, manifest)
    update_latest_pointer(args.runs_dir, run_paths.run_dir)

    print(f"Run ID: {run_paths.run_id}")
    print(f"Run dir: {run_paths.run_dir}")
    print(f"Status: {result.status.upper()}")
    print(f"Spots: {len(result.spots)}")
    print(f"Assignments: {len(result.decisions)}")
    if result.acquisition_path:
        print(f"Acquisition file: {result.acquisition_path}")
    if result.error_message:
        print(f"Error: {result.error_message}", file=sys.stderr)
    return EXIT_CODES.get(result.status, 1)


if __name__ == "__main__":
    raise SystemExit(main())
