"""Hash-chained audit log of spot assignment decisions."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from imaging_msms.contracts import AssignmentDecision

SCHEMA_DECISION_V1 = "imaging_msms.decision.v1"
SCHEMA_CHECKPOINT_V1 = "imaging_msms.checkpoint.v1"
SCHEMA_HASH_CHAIN_V1 = "imaging_msms.hash_chain.v1"
GENESIS_HASH = "0" * 64


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def canonical_json(payload: Dict[str, object]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def sha256_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass
class CheckpointHandle:
    phase_index: int
    phase_name: str
    path: Path
    payload_sha256: str


class AuditTrail:
    """Append-only assignment log; each record hashes its predecessor."""

    def __init__(self, run_id: str, artifacts_dir: Path):
        self.run_id = run_id
        self.artifacts_dir = Path(artifacts_dir)
        self.checkpoints_dir = self.artifacts_dir / "checkpoints"
        self.checkpoints_dir.mkdir(parents=True, exist_ok=True)
        self.decision_log_path = self.artifacts_dir / "decision_log.jsonl"
        self.hash_chain_path = self.artifacts_dir / "decision_hash_chain.json"
        self._sequence = 0
        self._prev_hash = GENESIS_HASH
        self._chain: List[Dict[str, object]] = []
        self._checkpoints: List[CheckpointHandle] = []

    @property
    def checkpoints(self) -> List[CheckpointHandle]:
        return list(self._checkpoints)

    @property
    def decision_count(self) -> int:
        return self._sequence

    def append_assignment(self, decision: AssignmentDecision) -> Dict[str, object]:
        self._sequence += 1
        payload: Dict[str, object] = {
            "schema_version": SCHEMA_DECISION_V1,
            "run_id": self.run_id,
            "seq": self._sequence,
            "timestamp_utc": _utc_now_iso(),
            "decision_type": f"{decision.action}_spot",
            "feature_id": decision.feature_id,
            "spot": {
                "name": decision.spot_name,
                "x_index": decision.x_index,
                "y_index": decision.y_index,
                "slot": decision.slot_index,
            },
            "collision_energy": decision.collision_energy,
            "numeric_evidence": {"intensity": decision.intensity},
            "previous_hash": self._prev_hash,
        }
        digest = sha256_text(canonical_json(payload))
        payload["hash"] = digest

        with self.decision_log_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(payload, sort_keys=True) + "\n")

        self._chain.append(
            {"seq": self._sequence, "hash": digest, "previous_hash": self._prev_hash}
        )
        self._prev_hash = digest
        return payload

    def append_assignments(self, decisions: Iterable[AssignmentDecision]) -> int:
        count = 0
        for decision in decisions:
            self.append_assignment(decision)
            count += 1
        return count

    def write_checkpoint(
        self,
        *,
        phase_index: int,
        phase_name: str,
        counts: Dict[str, int],
        metrics: Optional[Dict[str, float]] = None,
        outputs: Optional[Dict[str, object]] = None,
    ) -> CheckpointHandle:
        slug = phase_name.lower().replace(" ", "_")
        path = self.checkpoints_dir / f"phase_{phase_index:02d}_{slug}.json"
        payload: Dict[str, object] = {
            "schema_version": SCHEMA_CHECKPOINT_V1,
            "run_id": self.run_id,
            "phase_index": int(phase_index),
            "phase_name": phase_name,
            "timestamp_utc": _utc_now_iso(),
            "counts": counts,
            "metrics": metrics or {},
            "outputs": outputs or {},
        }
        payload_sha = sha256_text(canonical_json(payload))
        payload["payload_sha256"] = payload_sha
        path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")

        handle = CheckpointHandle(
            phase_index=phase_index,
            phase_name=phase_name,
            path=path,
            payload_sha256=payload_sha,
        )
        self._checkpoints.append(handle)
        return handle

    def finalize(self) -> None:
        payload = {
            "schema_version": SCHEMA_HASH_CHAIN_V1,
            "run_id": self.run_id,
            "final_hash": self._prev_hash,
            "decision_count": self._sequence,
            "entries": self._chain,
            "checkpoint_hashes": [
                {
                    "phase_index": c.phase_index,
                    "phase_name": c.phase_name,
                    "path": str(c.path),
                    "payload_sha256": c.payload_sha256,
                }
                for c in self._checkpoints
            ],
        }
        self.hash_chain_path.write_text(
            json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8"
        )
