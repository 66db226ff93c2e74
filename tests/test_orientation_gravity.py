import math

import pytest

from ironproof.frames import OrientationSample
from ironproof.gravity import GravityCompensator, compensate, vertical_gravity_component
from ironproof.orientation import OrientationTracker


def tilt_about_x(deg):
    half = math.radians(deg) / 2
    return OrientationSample(math.cos(half), math.sin(half), 0.0, 0.0)


def test_tracker_identity_until_first_update():
    tracker = OrientationTracker()
    assert not tracker.has_orientation
    assert tracker.current() == OrientationSample.identity()

    q = tilt_about_x(30)
    tracker.update(q)
    assert tracker.has_orientation
    assert tracker.current() is q


def test_tracker_last_write_wins_and_reset():
    tracker = OrientationTracker()
    tracker.update(tilt_about_x(10))
    latest = tilt_about_x(45)
    tracker.update(latest)

    assert tracker.current() is latest
    assert tracker.updates == 2

    tracker.reset()
    assert not tracker.has_orientation
    assert tracker.current() == OrientationSample.identity()


def test_level_sensor_at_rest_is_zero():
    assert compensate(9.81, OrientationSample.identity()) == pytest.approx(0.0)


@pytest.mark.parametrize("deg", [0, 30, 60, 90, 180])
def test_stationary_sensor_any_tilt(deg):
    q = tilt_about_x(deg)
    raw_z = 9.81 * math.cos(math.radians(deg))
    assert vertical_gravity_component(q) == pytest.approx(math.cos(math.radians(deg)))
    assert compensate(raw_z, q) == pytest.approx(0.0, abs=1e-9)


def test_compensator_keeps_motion():
    compensator = GravityCompensator()
    assert compensator.compensate(9.81 + 2.0, OrientationSample.identity()) == pytest.approx(2.0)


def test_compensator_uses_local_gravity():
    compensator = GravityCompensator(gravity=9.80)
    q = tilt_about_x(60)
    assert compensator.compensate(4.90, q) == pytest.approx(0.0, abs=1e-9)
