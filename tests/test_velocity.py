import math

import pytest

from ironproof.velocity import VelocityIntegrator


def test_constant_acceleration_integrates():
    integrator = VelocityIntegrator(sample_rate_hz=200, zupt_threshold=0.15, zupt_max_frames=40)
    a, n, dt = 2.0, 100, 1 / 200

    for _ in range(n):
        v = integrator.update(a)

    # First trapezoid averages against the initial a_prev of 0
    assert v == pytest.approx(a * n * dt, abs=a * dt)
    assert not integrator.is_locked


def test_zupt_forces_exact_zero():
    integrator = VelocityIntegrator(sample_rate_hz=200, zupt_threshold=0.15, zupt_max_frames=40)
    for _ in range(50):
        integrator.update(1.0)
    assert integrator.velocity > 0

    for i in range(39):
        integrator.update(0.05)
    assert integrator.velocity != 0.0
    assert not integrator.is_locked

    integrator.update(0.05)
    assert integrator.velocity == 0.0
    assert integrator.is_locked
    assert integrator.zupt_events == 1

    # Stays anchored while quiet
    for _ in range(100):
        assert integrator.update(-0.1) == 0.0
    assert integrator.zupt_events == 1


def test_lock_released_above_threshold():
    integrator = VelocityIntegrator(sample_rate_hz=20, zupt_threshold=0.15, zupt_max_frames=4)
    for _ in range(4):
        integrator.update(0.0)
    assert integrator.is_locked

    v = integrator.update(1.0)
    assert not integrator.is_locked
    assert v == pytest.approx(0.5 * 1.0 / 20)


def test_brief_pause_does_not_reset():
    integrator = VelocityIntegrator(sample_rate_hz=200, zupt_threshold=0.15, zupt_max_frames=40)
    for _ in range(20):
        integrator.update(1.0)
    for _ in range(10):
        integrator.update(0.0)
    assert integrator.velocity > 0
    assert integrator.zupt_events == 0


def test_reset_equals_fresh():
    used = VelocityIntegrator(sample_rate_hz=200)
    for a in (1.0, 3.0, -2.0, 0.5):
        used.update(a)
    used.reset()
    fresh = VelocityIntegrator(sample_rate_hz=200)

    inputs = [0.4, 1.1, -0.3, 0.0, 2.5]
    assert [used.update(a) for a in inputs] == [fresh.update(a) for a in inputs]


def test_non_finite_ignored():
    integrator = VelocityIntegrator(sample_rate_hz=200)
    integrator.update(1.0)
    before = integrator.velocity

    assert integrator.update(math.nan) == before
    assert integrator.update(-math.inf) == before
    assert integrator.rejected == 2
    assert integrator.prev_accel == 1.0
