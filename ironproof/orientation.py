"""
Orientation tracking for IronProof.

The sensor reports its own fused attitude as a quaternion, so there is no
AHRS to run here: the tracker only holds the latest report. Gravity
direction depends on the current attitude alone, so no history is kept.
"""

from typing import Optional

from .frames import OrientationSample


class OrientationTracker:
    """
    Last-write-wins holder for the current sensor orientation.

    Before any quaternion frame has arrived, `current()` returns the
    identity quaternion (sensor assumed level).

    Usage:
        tracker = OrientationTracker()
        tracker.update(sample)
        q = tracker.current()
    """

    def __init__(self):
        self._current: Optional[OrientationSample] = None
        self.updates = 0

    def update(self, sample: OrientationSample):
        """Replace the current orientation."""
        self._current = sample
        self.updates += 1

    def current(self) -> OrientationSample:
        """Latest orientation, or identity if none has been seen."""
        if self._current is None:
            return OrientationSample.identity()
        return self._current

    @property
    def has_orientation(self) -> bool:
        """False while the identity fallback is in use."""
        return self._current is not None

    def reset(self):
        """Drop the held orientation (e.g. on disconnect)."""
        self._current = None
        self.updates = 0
