from __future__ import annotations

import json
from pathlib import Path

from imaging_msms.audit import GENESIS_HASH, AuditTrail, canonical_json, sha256_text
from imaging_msms.contracts import AssignmentDecision


def _decision(feature_id: str, action: str = "create") -> AssignmentDecision:
    return AssignmentDecision(
        feature_id=feature_id,
        spot_name="R00C00",
        x_index=0,
        y_index=0,
        collision_energy=20.0,
        slot_index=0,
        action=action,
        intensity=42.0,
    )


def test_records_link_to_previous_hash(tmp_path: Path):
    audit = AuditTrail(run_id="chain", artifacts_dir=tmp_path)
    first = audit.append_assignment(_decision("a"))
    second = audit.append_assignment(_decision("b", action="reuse"))

    assert first["previous_hash"] == GENESIS_HASH
    assert second["previous_hash"] == first["hash"]
    assert second["decision_type"] == "reuse_spot"
    assert second["spot"] == {"name": "R00C00", "x_index": 0, "y_index": 0, "slot": 0}
    assert audit.decision_count == 2

    unhashed = {k: v for k, v in second.items() if k != "hash"}
    assert sha256_text(canonical_json(unhashed)) == second["hash"]


def test_checkpoints_are_ordered_and_hashed(tmp_path: Path):
    audit = AuditTrail(run_id="cp", artifacts_dir=tmp_path)
    audit.write_checkpoint(phase_index=0, phase_name="assignment", counts={"spots": 3})
    audit.write_checkpoint(phase_index=1, phase_name="ordering", counts={"spots": 3})

    names = [path.name for path in sorted((tmp_path / "checkpoints").glob("phase_*.json"))]
    assert names == ["phase_00_assignment.json", "phase_01_ordering.json"]

    payload = json.loads(audit.checkpoints[0].path.read_text(encoding="utf-8"))
    digest = payload.pop("payload_sha256")
    assert sha256_text(canonical_json(payload)) == digest


def test_finalize_without_decisions(tmp_path: Path):
    audit = AuditTrail(run_id="empty", artifacts_dir=tmp_path)
    audit.finalize()
    chain = json.loads(audit.hash_chain_path.read_text(encoding="utf-8"))
    assert chain["final_hash"] == GENESIS_HASH
    assert chain["decision_count"] == 0
    assert chain["entries"] == []
