import logging
import struct

import pytest

from ironproof.config import FRAME_ACCEL, FRAME_QUATERNION, STANDARD_GRAVITY, PipelineConfig

INT16_MAX = 32767
INT16_MIN = -32768


def _clamp(raw):
    return max(INT16_MIN, min(INT16_MAX, int(round(raw))))


def make_frame(frame_type, a=0, b=0, c=0, d=0, checksum=None):
    """11-byte sensor frame from four raw int16 fields."""
    body = bytes([0x55, frame_type]) + struct.pack("<4h", a, b, c, d)
    if checksum is None:
        checksum = sum(body) & 0xFF
    return body + bytes([checksum])


def accel_frame(z, x=0.0, y=0.0, full_scale_g=16.0, temperature_c=25.0):
    """Acceleration frame for values in m/s²."""
    scale = 32768.0 / (full_scale_g * STANDARD_GRAVITY)
    return make_frame(
        FRAME_ACCEL,
        _clamp(x * scale),
        _clamp(y * scale),
        _clamp(z * scale),
        _clamp(temperature_c * 100),
    )


def quat_frame(q0, q1=0.0, q2=0.0, q3=0.0):
    return make_frame(
        FRAME_QUATERNION,
        _clamp(q0 * 32768),
        _clamp(q1 * 32768),
        _clamp(q2 * 32768),
        _clamp(q3 * 32768),
    )


def rep_frames(accel, rest_before=40, moving=50, rest_after=150):
    """
    Acceleration frames for one vertical rep with the sensor level:
    rest, push at +accel, brake at -accel, rest.
    """
    profile = ([0.0] * rest_before + [accel] * moving
               + [-accel] * moving + [0.0] * rest_after)
    return [accel_frame(STANDARD_GRAVITY + a) for a in profile]


@pytest.fixture
def config_200hz():
    return PipelineConfig.from_preset("200hz")


@pytest.fixture
def config_20hz():
    return PipelineConfig.from_preset("20hz")


@pytest.fixture(autouse=True)
def _reset_package_logger():
    """CLI entry points install handlers; drop them between tests."""
    yield
    logger = logging.getLogger("ironproof")
    logger.handlers = []
    logger.setLevel(logging.NOTSET)
