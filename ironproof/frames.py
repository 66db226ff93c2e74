"""
Frame decoding for IronProof.

Turns the sensor's 11-byte notification frames into typed samples.

WitMotion layout (little-endian int16 fields):
    0x51 acceleration: [0x55, 0x51, AxL, AxH, AyL, AyH, AzL, AzH, TL, TH, SUM]
    0x59 quaternion:   [0x55, 0x59, q0L, q0H, q1L, q1H, q2L, q2H, q3L, q3H, SUM]

SUM is the low byte of the sum of the ten preceding bytes.
"""

import struct
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Union

from .config import (
    FRAME_ACCEL,
    FRAME_LENGTH,
    FRAME_QUATERNION,
    STANDARD_GRAVITY,
    SYNC_BYTE,
)
from .log_utils import get_logger

logger = get_logger("frames")

_FIELDS = struct.Struct("<4h")  # four int16 fields at offset 2
_KNOWN_TYPES = (FRAME_ACCEL, FRAME_QUATERNION)


@dataclass(frozen=True)
class AccelerationSample:
    """Single acceleration reading in m/s²."""
    x: float
    y: float
    z: float
    seq: int = 0               # arrival order, assigned by FrameDecoder
    temperature_c: float = 0.0


@dataclass(frozen=True)
class OrientationSample:
    """Unit quaternion (w, x, y, z) relative to the world frame."""
    q0: float
    q1: float
    q2: float
    q3: float
    seq: int = 0

    @classmethod
    def identity(cls) -> "OrientationSample":
        return cls(1.0, 0.0, 0.0, 0.0)


DecodedFrame = Union[AccelerationSample, OrientationSample]


class FrameError(ValueError):
    """A buffer that cannot be decoded. `reason` is short, sync, type or checksum."""

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


def frame_checksum(frame: bytes) -> int:
    """Low byte of the sum of the first ten bytes."""
    return sum(frame[:FRAME_LENGTH - 1]) & 0xFF


def parse_frame(
    buffer: bytes,
    full_scale_g: float = 16.0,
    verify_checksum: bool = True,
    seq: int = 0
) -> DecodedFrame:
    """
    Decode one frame from the start of `buffer`.

    Args:
        buffer: Raw notification bytes (>= 11 bytes, extra bytes ignored)
        full_scale_g: Accelerometer range configured on the sensor
        verify_checksum: Drop frames whose SUM byte does not match
        seq: Sequence number stamped on the sample

    Returns:
        AccelerationSample or OrientationSample

    Raises:
        FrameError: if the buffer is short, out of sync, of an unknown
            type, or fails the checksum
    """
    if len(buffer) < FRAME_LENGTH:
        raise FrameError("short", f"frame has {len(buffer)} bytes, need {FRAME_LENGTH}")
    if buffer[0] != SYNC_BYTE:
        raise FrameError("sync", f"bad sync byte 0x{buffer[0]:02x}")

    frame_type = buffer[1]
    if frame_type not in _KNOWN_TYPES:
        raise FrameError("type", f"unknown frame type 0x{frame_type:02x}")

    if verify_checksum:
        expected = frame_checksum(buffer)
        if buffer[FRAME_LENGTH - 1] != expected:
            raise FrameError(
                "checksum",
                f"checksum 0x{buffer[FRAME_LENGTH - 1]:02x} != 0x{expected:02x}"
            )

    a, b, c, d = _FIELDS.unpack_from(buffer, 2)

    if frame_type == FRAME_ACCEL:
        scale = full_scale_g * STANDARD_GRAVITY / 32768.0
        return AccelerationSample(
            x=a * scale,
            y=b * scale,
            z=c * scale,
            seq=seq,
            temperature_c=d / 100.0,
        )

    return OrientationSample(
        q0=a / 32768.0,
        q1=b / 32768.0,
        q2=c / 32768.0,
        q3=d / 32768.0,
        seq=seq,
    )


def decode_frame(
    buffer: bytes,
    full_scale_g: float = 16.0,
    verify_checksum: bool = True
) -> Optional[DecodedFrame]:
    """Decode a frame, returning None instead of raising."""
    try:
        return parse_frame(buffer, full_scale_g, verify_checksum)
    except FrameError:
        return None


def iter_frames(stream: bytes) -> Iterator[bytes]:
    """
    Yield 11-byte frame candidates from a raw byte stream.

    Scans for the sync byte followed by a known type byte and skips garbage
    in between, so a dump that starts mid-frame resynchronises.
    """
    i = 0
    end = len(stream) - FRAME_LENGTH
    while i <= end:
        if stream[i] == SYNC_BYTE and stream[i + 1] in _KNOWN_TYPES:
            yield bytes(stream[i:i + FRAME_LENGTH])
            i += FRAME_LENGTH
        else:
            i += 1


class FrameDecoder:
    """
    Stateful wrapper around `parse_frame` for one connection.

    Stamps each decoded sample with a monotonic sequence number and counts
    dropped frames per reason. Decoding never raises.

    Usage:
        decoder = FrameDecoder(full_scale_g=16)
        sample = decoder.decode(notification_bytes)
        if isinstance(sample, AccelerationSample):
            ...
    """

    def __init__(self, full_scale_g: float = 16.0, verify_checksum: bool = True):
        """
        Args:
            full_scale_g: Accelerometer range (16g default, 2g on some firmware)
            verify_checksum: Drop frames with a bad SUM byte
        """
        self.full_scale_g = full_scale_g
        self.verify_checksum = verify_checksum

        self._seq = 0
        self.decoded = 0
        self.dropped: Dict[str, int] = {"short": 0, "sync": 0, "type": 0, "checksum": 0}

    def decode(self, buffer: bytes) -> Optional[DecodedFrame]:
        """Decode one notification buffer, or return None if it is malformed."""
        try:
            sample = parse_frame(buffer, self.full_scale_g, self.verify_checksum, self._seq)
        except FrameError as e:
            self.dropped[e.reason] += 1
            logger.debug(f"Dropped frame: {e}")
            return None

        self._seq += 1
        self.decoded += 1
        return sample

    @property
    def corrupt_frames(self) -> int:
        """Frames dropped for a checksum mismatch."""
        return self.dropped["checksum"]

    @property
    def malformed_frames(self) -> int:
        """Frames dropped for any reason."""
        return sum(self.dropped.values())

    def reset_counters(self):
        self.decoded = 0
        for key in self.dropped:
            self.dropped[key] = 0
