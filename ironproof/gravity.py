"""
Gravity compensation for IronProof.

Removes the gravity component from vertical accelerometer readings to obtain
linear (motion-only) acceleration, which is needed for velocity integration.

The gravity vector in the sensor frame depends on the sensor's orientation.
We rotate world-frame gravity [0, 0, g] into the sensor frame using the
quaternion reported by the sensor and subtract it.
"""

from .config import STANDARD_GRAVITY
from .frames import OrientationSample


def vertical_gravity_component(q: OrientationSample) -> float:
    """
    Fraction of gravity along the sensor's Z axis.

    This is the (3, 3) entry of the rotation matrix built from the
    quaternion: 1.0 when level, 0.0 when on its side.
    """
    return q.q0 * q.q0 - q.q1 * q.q1 - q.q2 * q.q2 + q.q3 * q.q3


def compensate(
    raw_axis_value: float,
    orientation: OrientationSample,
    gravity: float = STANDARD_GRAVITY
) -> float:
    """
    Remove gravity from a raw Z-axis reading.

    A non-unit quaternion gives a wrong but finite result; the decoder's
    fixed-point scaling is trusted to deliver unit quaternions.

    Args:
        raw_axis_value: Raw Z acceleration (m/s²)
        orientation: Current sensor orientation
        gravity: Local gravity magnitude

    Returns:
        Linear Z acceleration (m/s²), ~0 for a stationary sensor at any tilt
    """
    return raw_axis_value - vertical_gravity_component(orientation) * gravity


class GravityCompensator:
    """
    Remove gravity component from accelerometer to get linear acceleration.

    Usage:
        compensator = GravityCompensator()
        a_lin_z = compensator.compensate(sample.z, tracker.current())
    """

    def __init__(self, gravity: float = STANDARD_GRAVITY):
        """
        Args:
            gravity: Local gravity magnitude (default 9.81 m/s²)
        """
        self.gravity = gravity

    def compensate(self, raw_axis_value: float, orientation: OrientationSample) -> float:
        """Linear Z acceleration for one raw Z reading."""
        return compensate(raw_axis_value, orientation, self.gravity)
