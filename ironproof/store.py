"""
Workout record store for IronProof.

Append-only JSON-lines log of sessions, sets and reps, each keyed by a
UUID. Nothing is ever rewritten in place; the nested session view is
rebuilt by replaying the log.
"""

import json
import os
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .fatigue import RepRecord, compute_loss_pct
from .log_utils import get_logger

logger = get_logger("store")

RECORDS_FILE = "records.jsonl"


def iso_from_ts(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


class WorkoutStore:
    """
    Sessions -> sets -> reps, persisted as one record per line.

    At most one session and one set are active. Reps are appended to the
    active set; without one they are ignored with a warning.

    Usage:
        store = WorkoutStore("sessions")
        store.start_session("leg day")
        store.start_set("squat", weight_kg=100, target_reps=5)
        store.add_rep(peak_velocity=0.82, mean_velocity=0.55)
        store.end_set()
        store.end_session()
    """

    def __init__(self, root_dir: Union[str, Path]):
        self.root = Path(root_dir)
        self.root.mkdir(parents=True, exist_ok=True)
        self.records_path = self.root / RECORDS_FILE

        self.active_session_id: Optional[str] = None
        self.active_set_id: Optional[str] = None
        self._set_reps = 0

    # ----------------------- Writing -----------------------

    def _append(self, record: Dict[str, Any]):
        record.setdefault("timestamp", time.time())
        with open(self.records_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record) + "\n")

    def start_session(self, notes: str = "") -> str:
        """Open a new session and make it active."""
        if self.active_session_id:
            self.end_session()
        session_id = str(uuid.uuid4())
        self._append({"kind": "session", "id": session_id, "notes": notes})
        self.active_session_id = session_id
        self.active_set_id = None
        logger.info(f"Session started: {session_id}")
        return session_id

    def end_session(self):
        if self.active_set_id:
            self.end_set()
        if self.active_session_id:
            self._append({"kind": "session_end", "session_id": self.active_session_id})
        self.active_session_id = None

    def start_set(self, exercise_name: str, weight_kg: float, target_reps: int) -> Optional[str]:
        """Open a set in the active session. Returns None without a session."""
        if not self.active_session_id:
            logger.warning("start_set ignored: no active session")
            return None
        if self.active_set_id:
            self.end_set()
        set_id = str(uuid.uuid4())
        self._append({
            "kind": "set",
            "id": set_id,
            "session_id": self.active_session_id,
            "exercise_name": exercise_name,
            "weight_kg": float(weight_kg),
            "target_reps": int(target_reps),
        })
        self.active_set_id = set_id
        self._set_reps = 0
        return set_id

    def end_set(self):
        if self.active_set_id:
            self._append({"kind": "set_end", "set_id": self.active_set_id})
        self.active_set_id = None
        self._set_reps = 0

    def add_rep(
        self,
        peak_velocity: float,
        mean_velocity: Optional[float] = None,
        **extra: Any
    ) -> Optional[Dict[str, Any]]:
        """
        Append a rep to the active set.

        Returns:
            The stored record, or None when no set is active
        """
        if not self.active_session_id or not self.active_set_id:
            logger.warning("add_rep ignored: no active set")
            return None

        self._set_reps += 1
        record = {
            "kind": "rep",
            "id": str(uuid.uuid4()),
            "session_id": self.active_session_id,
            "set_id": self.active_set_id,
            "rep_number": self._set_reps,
            "peak_velocity": float(peak_velocity),
            "mean_velocity": None if mean_velocity is None else float(mean_velocity),
        }
        record.update(extra)
        self._append(record)
        return record

    def add_rep_record(self, rep: RepRecord) -> Optional[Dict[str, Any]]:
        """Store a RepRecord produced by the pipeline."""
        return self.add_rep(
            rep.peak_velocity,
            rep.mean_velocity,
            velocity_drop_pct=rep.velocity_drop_pct,
            fatigue_status=rep.fatigue_status.value,
        )

    # ----------------------- Reading -----------------------

    def records(self) -> List[Dict[str, Any]]:
        """All records in write order. Unparseable lines are skipped."""
        if not self.records_path.exists():
            return []
        out = []
        with open(self.records_path, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    out.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.warning(f"Skipping corrupt record at line {lineno}")
        return out

    def sessions(self) -> List[Dict[str, Any]]:
        """
        Nested view: newest session first, each with its sets and reps.
        """
        sessions: Dict[str, Dict[str, Any]] = {}
        sets: Dict[str, Dict[str, Any]] = {}

        for rec in self.records():
            kind = rec.get("kind")
            if kind == "session":
                sessions[rec["id"]] = {
                    "id": rec["id"],
                    "timestamp": rec["timestamp"],
                    "notes": rec.get("notes", ""),
                    "ended": False,
                    "sets": [],
                }
            elif kind == "session_end" and rec.get("session_id") in sessions:
                sessions[rec["session_id"]]["ended"] = True
            elif kind == "set" and rec.get("session_id") in sessions:
                exercise_set = {
                    "id": rec["id"],
                    "exercise_name": rec["exercise_name"],
                    "weight_kg": rec["weight_kg"],
                    "target_reps": rec["target_reps"],
                    "reps": [],
                }
                sets[rec["id"]] = exercise_set
                sessions[rec["session_id"]]["sets"].append(exercise_set)
            elif kind == "rep" and rec.get("set_id") in sets:
                rep = {k: v for k, v in rec.items() if k not in ("kind", "session_id", "set_id")}
                sets[rec["set_id"]]["reps"].append(rep)

        # Log order is creation order
        return list(reversed(list(sessions.values())))

    def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        for s in self.sessions():
            if s["id"] == session_id:
                return s
        return None

    def write_summary(self, session_id: str) -> Optional[str]:
        """
        Write `summary_<id>.json` next to the log.

        Returns:
            Path of the summary, or None if the session is unknown
        """
        session = self.get_session(session_id)
        if session is None:
            return None

        set_summaries = []
        total_reps = 0
        for s in session["sets"]:
            peaks = [r["peak_velocity"] for r in s["reps"]]
            total_reps += len(peaks)
            set_summaries.append({
                "set_id": s["id"],
                "exercise_name": s["exercise_name"],
                "weight_kg": s["weight_kg"],
                "reps": len(peaks),
                "velocity_per_rep_ms": [round(float(v), 3) for v in peaks],
                "best_velocity_ms": round(max(peaks), 3) if peaks else None,
                "avg_velocity_ms": round(sum(peaks) / len(peaks), 3) if peaks else None,
                "velocity_loss_pct": compute_loss_pct(peaks),
            })

        summary = {
            "session_id": session_id,
            "start_time": iso_from_ts(session["timestamp"]),
            "notes": session["notes"],
            "total_reps": total_reps,
            "sets": set_summaries,
        }

        path = self.root / f"summary_{session_id}.json"
        tmp = str(path) + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(summary, f, indent=2)
        os.replace(tmp, path)
        return str(path)
