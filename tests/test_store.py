import json

import pytest

from ironproof.fatigue import FatigueStatus, RepRecord
from ironproof.store import WorkoutStore


@pytest.fixture
def store(tmp_path):
    return WorkoutStore(tmp_path / "sessions")


def test_session_set_rep_roundtrip(store):
    session_id = store.start_session("leg day")
    set_id = store.start_set("squat", weight_kg=100, target_reps=5)
    store.add_rep(0.82, 0.55)
    store.add_rep(0.74)
    store.end_set()
    store.end_session()

    sessions = store.sessions()
    assert len(sessions) == 1
    session = sessions[0]
    assert session["id"] == session_id
    assert session["notes"] == "leg day"
    assert session["ended"]

    (exercise_set,) = session["sets"]
    assert exercise_set["id"] == set_id
    assert exercise_set["exercise_name"] == "squat"
    assert exercise_set["weight_kg"] == 100.0
    assert [r["rep_number"] for r in exercise_set["reps"]] == [1, 2]
    assert exercise_set["reps"][0]["mean_velocity"] == 0.55
    assert exercise_set["reps"][1]["mean_velocity"] is None


def test_state_survives_reopen(tmp_path):
    first = WorkoutStore(tmp_path)
    session_id = first.start_session()
    first.start_set("bench", 60, 8)
    first.add_rep(0.6)

    reopened = WorkoutStore(tmp_path)
    assert reopened.get_session(session_id)["sets"][0]["reps"][0]["peak_velocity"] == 0.6


def test_newest_session_first(store):
    older = store.start_session("a")
    newer = store.start_session("b")
    assert [s["id"] for s in store.sessions()] == [newer, older]


def test_rep_without_set_is_ignored(store):
    assert store.add_rep(0.5) is None
    store.start_session()
    assert store.add_rep(0.5) is None
    assert store.start_set("deadlift", 140, 3) is not None
    assert store.add_rep(0.5) is not None


def test_set_without_session_is_ignored(store):
    assert store.start_set("squat", 100, 5) is None


def test_rep_numbers_restart_per_set(store):
    store.start_session()
    store.start_set("squat", 100, 5)
    store.add_rep(0.8)
    store.add_rep(0.7)
    store.start_set("squat", 110, 3)
    rec = store.add_rep(0.6)
    assert rec["rep_number"] == 1


def test_add_rep_record(store):
    store.start_session()
    store.start_set("squat", 100, 5)
    rep = RepRecord(
        rep_number=1,
        peak_velocity=0.7,
        mean_velocity=0.45,
        velocity_drop_pct=12.5,
        fatigue_status=FatigueStatus.BUILDING,
    )
    stored = store.add_rep_record(rep)
    assert stored["velocity_drop_pct"] == 12.5
    assert stored["fatigue_status"] == "fatigue_building"


def test_corrupt_line_skipped(store):
    store.start_session()
    with open(store.records_path, "a", encoding="utf-8") as f:
        f.write("{not json\n")
    store.start_session("after")
    assert len(store.sessions()) == 2


def test_write_summary(store):
    session_id = store.start_session("pull")
    store.start_set("row", 80, 3)
    for v in (1.0, 0.9, 0.8):
        store.add_rep(v)
    store.end_session()

    path = store.write_summary(session_id)
    with open(path, encoding="utf-8") as f:
        summary = json.load(f)

    assert summary["session_id"] == session_id
    assert summary["total_reps"] == 3
    (s,) = summary["sets"]
    assert s["best_velocity_ms"] == 1.0
    assert s["avg_velocity_ms"] == pytest.approx(0.9)
    assert s["velocity_loss_pct"] == pytest.approx(20.0)
    assert summary["start_time"].endswith("Z")


def test_summary_unknown_session(store):
    assert store.write_summary("nope") is None

