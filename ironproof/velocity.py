"""
Velocity estimation for IronProof.

Estimates bar velocity by integrating filtered linear acceleration.
Includes drift correction via zero-velocity updates (ZUPT): between reps
the bar is briefly stationary, so a sustained run of near-zero acceleration
is taken as proof that true velocity is zero and the integral is re-anchored.
"""

import math
from typing import Optional

from .config import PipelineConfig
from .log_utils import get_logger

logger = get_logger("velocity")


class VelocityIntegrator:
    """
    Trapezoidal velocity integrator with counter-based ZUPT.

    On every sample:
      - |a| below threshold increments the zero-run counter, otherwise the
        counter is cleared
      - once the counter reaches `zupt_max_frames` velocity is forced to
        exactly 0 and integration is suspended until the counter clears
      - otherwise velocity += (a + a_prev) / 2 * dt
      - a is always stored as a_prev

    Usage:
        integrator = VelocityIntegrator(sample_rate_hz=200)
        velocity = integrator.update(filtered_a)

        # On disconnect or new set:
        integrator.reset()
    """

    def __init__(
        self,
        sample_rate_hz: float = 200.0,
        zupt_threshold: float = 0.15,
        zupt_max_frames: int = 40
    ):
        """
        Args:
            sample_rate_hz: IMU sample rate, sets dt
            zupt_threshold: |a| below this counts as stationary (m/s²)
            zupt_max_frames: Consecutive stationary samples needed for ZUPT
        """
        self.dt = 1.0 / sample_rate_hz
        self.zupt_threshold = zupt_threshold
        self.zupt_max_frames = max(1, int(zupt_max_frames))

        self.velocity = 0.0
        self.prev_accel = 0.0
        self.zupt_count = 0

        # Diagnostics
        self.zupt_events = 0
        self.rejected = 0

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "VelocityIntegrator":
        return cls(
            sample_rate_hz=config.sample_rate_hz,
            zupt_threshold=config.zupt_threshold_mps2,
            zupt_max_frames=config.zupt_max_frames,
        )

    def update(self, accel: float) -> float:
        """
        Update velocity estimate with a new filtered acceleration.

        Args:
            accel: Filtered vertical linear acceleration (m/s²)

        Returns:
            Current velocity estimate (m/s), signed
        """
        if not math.isfinite(accel):
            self.rejected += 1
            logger.warning(f"Ignored non-finite acceleration {accel!r}")
            return self.velocity

        if abs(accel) < self.zupt_threshold:
            # Counter saturates at the max; velocity stays anchored at 0
            if self.zupt_count < self.zupt_max_frames:
                self.zupt_count += 1
                if self.zupt_count == self.zupt_max_frames:
                    self._apply_zupt()
        else:
            self.zupt_count = 0

        if self.zupt_count < self.zupt_max_frames:
            self.velocity += (accel + self.prev_accel) / 2.0 * self.dt

        self.prev_accel = accel
        return self.velocity

    def _apply_zupt(self):
        """Anchor velocity to zero."""
        if self.velocity != 0.0:
            logger.debug(f"ZUPT removed {self.velocity:+.4f} m/s of drift")
        self.velocity = 0.0
        self.zupt_events += 1

    @property
    def is_locked(self) -> bool:
        """True while ZUPT holds velocity at zero."""
        return self.zupt_count >= self.zupt_max_frames

    def reset(self, reason: Optional[str] = None):
        """Return to the freshly constructed state."""
        if reason:
            logger.info(f"Integrator reset ({reason})")
        self.velocity = 0.0
        self.prev_accel = 0.0
        self.zupt_count = 0
