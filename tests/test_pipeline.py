import threading

import pytest

from conftest import accel_frame, quat_frame, rep_frames
from ironproof.config import PipelineConfig
from ironproof.fatigue import FatigueStatus
from ironproof.pipeline import VelocityPipeline


def run_rep(pipeline, accel, **kwargs):
    updates = [pipeline.process(f) for f in rep_frames(accel, **kwargs)]
    return [u for u in updates if u is not None]


def test_synthetic_rep(config_200hz):
    pipeline = VelocityPipeline(config_200hz, reference_velocity=1.0)
    updates = run_rep(pipeline, 2.0)

    peak = max(abs(u.velocity) for u in updates)
    assert 0.3 < peak < 0.7
    assert updates[-1].velocity == 0.0
    assert updates[-1].zupt_locked

    metric = pipeline.metric()
    assert metric.peak_velocity == pytest.approx(peak)
    assert metric.velocity_drop_pct == pytest.approx((1.0 - peak) * 100.0)
    assert metric.fatigue_status is FatigueStatus.STOP


def test_synthetic_rep_is_deterministic(config_200hz):
    first = VelocityPipeline(config_200hz)
    second = VelocityPipeline(config_200hz)
    a = [u.velocity for u in run_rep(first, 2.0)]
    b = [u.velocity for u in run_rep(second, 2.0)]
    assert a == b


def test_synthetic_rep_20hz(config_20hz):
    pipeline = VelocityPipeline(config_20hz)
    updates = run_rep(pipeline, 2.0, rest_before=10, moving=5, rest_after=20)

    assert max(abs(u.velocity) for u in updates) > 0.2
    assert updates[-1].velocity == 0.0


def test_slower_rep_triggers_stop_alert(config_200hz):
    alerts = []
    pipeline = VelocityPipeline(config_200hz, on_alert=alerts.append)

    run_rep(pipeline, 2.0)
    first = pipeline.end_rep()
    run_rep(pipeline, 1.5)
    second = pipeline.end_rep()

    assert first.fatigue_status is FatigueStatus.STABLE
    assert second.velocity_drop_pct > 20.0
    assert second.fatigue_status is FatigueStatus.STOP
    assert len(alerts) == 1


def test_orientation_frames_update_tracker(config_200hz):
    pipeline = VelocityPipeline(config_200hz)

    stale = pipeline.process(accel_frame(9.81))
    assert stale.stale_orientation

    assert pipeline.process(quat_frame(1.0)) is None
    fresh = pipeline.process(accel_frame(9.81))
    assert not fresh.stale_orientation
    assert fresh.linear_z == pytest.approx(0.0, abs=0.01)


def test_tilted_sensor_at_rest_stays_still(config_200hz):
    pipeline = VelocityPipeline(config_200hz)
    # 60 degrees about X: half the gravity on Z
    pipeline.process(quat_frame(0.8660254, 0.5))
    updates = [pipeline.process(accel_frame(9.81 * 0.5)) for _ in range(100)]

    assert all(abs(u.linear_z) < 0.05 for u in updates)
    assert updates[-1].velocity == 0.0


def test_malformed_and_corrupt_frames_skipped(config_200hz):
    pipeline = VelocityPipeline(config_200hz)
    good = accel_frame(9.81)
    corrupt = good[:10] + bytes([(good[10] + 1) & 0xFF])

    assert pipeline.process(b"\x55\x51") is None
    assert pipeline.process(corrupt) is None
    assert pipeline.process(good) is not None

    stats = pipeline.stats()
    assert stats["dropped_short"] == 1
    assert stats["corrupt_frames"] == 1
    assert stats["accel_frames"] == 1


def test_checksum_check_can_be_disabled():
    config = PipelineConfig.from_preset("200hz", verify_checksum=False)
    pipeline = VelocityPipeline(config)
    good = accel_frame(9.81)
    assert pipeline.process(good[:10] + b"\x00") is not None


def test_disconnect_clears_state(config_200hz):
    pipeline = VelocityPipeline(config_200hz, reference_velocity=1.0)
    run_rep(pipeline, 2.0)
    pipeline.end_rep()

    pipeline.process(quat_frame(1.0))
    for _ in range(30):
        pipeline.process(accel_frame(9.81 + 2.0))
    assert pipeline.velocity > 0

    pipeline.disconnect()

    assert pipeline.velocity == 0.0
    assert pipeline.metric().peak_velocity == 0.0
    assert not pipeline.orientation.has_orientation
    assert pipeline.lowpass.output == 0.0
    assert len(pipeline.classifier.reps) == 1
    assert pipeline.stats()["disconnects"] == 1

    update = pipeline.process(accel_frame(9.81))
    assert update.stale_orientation


def test_start_set_resets_history(config_200hz):
    pipeline = VelocityPipeline(config_200hz)
    run_rep(pipeline, 2.0)
    pipeline.end_rep()

    pipeline.start_set(reference_velocity=0.8)

    assert pipeline.classifier.reps == []
    assert pipeline.metric().reference_velocity == 0.8


def test_concurrent_readers(config_200hz):
    pipeline = VelocityPipeline(config_200hz)
    frames = rep_frames(2.0)
    errors = []

    def reader():
        try:
            for _ in range(200):
                pipeline.metric()
                pipeline.stats()
        except Exception as e:  # pragma: no cover
            errors.append(e)

    t = threading.Thread(target=reader)
    t.start()
    for f in frames:
        pipeline.process(f)
    t.join()

    assert not errors
    assert pipeline.stats()["accel_frames"] == len(frames)


def test_sample_mode_alerts_only_on_real_slowdown():
    alerts = []
    config = PipelineConfig.from_preset("200hz", alert_on="sample")
    pipeline = VelocityPipeline(config, on_alert=alerts.append)

    def rep_with_live_metrics(accel):
        for f in rep_frames(accel):
            if pipeline.process(f) is not None:
                pipeline.metric()
        return pipeline.end_rep()

    records = [rep_with_live_metrics(2.0) for _ in range(3)]
    assert all(r.fatigue_status is FatigueStatus.STABLE for r in records)
    assert not alerts

    slow = rep_with_live_metrics(1.5)
    assert slow.fatigue_status is FatigueStatus.STOP
    assert len(alerts) == 1
    assert alerts[0].velocity_drop_pct > 20.0
