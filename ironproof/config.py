"""
Pipeline configuration for IronProof.

All tunables for the velocity pipeline live here. The filter constants are
precomputed for a specific (sample rate, cutoff) pair and must always travel
together with that sample rate, so the supported combinations are exposed as
presets rather than derived at runtime.
"""

import math
import os
from dataclasses import dataclass, replace
from typing import Dict, Optional, Tuple

from .log_utils import get_logger

logger = get_logger("config")


# =============================================================================
# Protocol constants (WitMotion WT901 / WT9011 family)
# =============================================================================

STANDARD_GRAVITY = 9.81  # m/s²

FRAME_LENGTH = 11
SYNC_BYTE = 0x55
FRAME_ACCEL = 0x51
FRAME_QUATERNION = 0x59

SUPPORTED_FULL_SCALE_G = (2, 4, 8, 16)

# Haptic pattern sent with the stop-set alert (on, off, on in ms)
STOP_ALERT_PATTERN = (200, 100, 200)

# When the stop-set alert is evaluated: on completed reps, or on every metric
ALERT_ON_REP = "rep"
ALERT_ON_SAMPLE = "sample"


class ConfigError(ValueError):
    """Raised when a pipeline configuration is inconsistent."""


@dataclass(frozen=True)
class FilterCoefficients:
    """
    Constants for the 4th-order Butterworth low-pass.

    Args:
        gain: Input divisor (GAIN)
        feedback: Taps applied to y[n-4], y[n-3], y[n-2], y[n-1]
    """
    gain: float
    feedback: Tuple[float, float, float, float]

    def __post_init__(self):
        if len(self.feedback) != 4:
            raise ConfigError(f"expected 4 feedback taps, got {len(self.feedback)}")
        if not all(math.isfinite(c) for c in self.feedback):
            raise ConfigError("feedback taps must be finite")
        if not math.isfinite(self.gain) or self.gain <= 0:
            raise ConfigError(f"gain must be positive, got {self.gain}")

    def dc_gain(self) -> float:
        """Steady-state output/input ratio implied by these constants."""
        denominator = 1.0 - sum(self.feedback)
        if denominator == 0:
            return math.inf
        # Feed-forward taps 1, 4, 6, 4, 1 sum to 16
        return 16.0 / self.gain / denominator


# 200 Hz sample rate, 10 Hz cutoff
BUTTERWORTH_200HZ_10HZ = FilterCoefficients(
    gain=2400.3886,
    feedback=(-0.4382651422, 2.1121553555, -3.8611943503, 3.1806385500),
)

# 20 Hz sample rate, 5 Hz cutoff
BUTTERWORTH_20HZ_5HZ = FilterCoefficients(
    gain=10.6404654,
    feedback=(-0.0176648011, 0.0, -0.4860288237, 0.0),
)


@dataclass(frozen=True)
class PipelineConfig:
    """
    Everything the pipeline needs at construction.

    `filter` must be tuned for `sample_rate_hz`; use `from_preset` unless you
    have designed your own coefficients.
    """
    sample_rate_hz: float
    filter: FilterCoefficients
    accel_full_scale_g: float = 16.0
    zupt_threshold_mps2: float = 0.15
    zupt_hold_seconds: float = 0.2
    verify_checksum: bool = True
    gravity: float = STANDARD_GRAVITY

    # Fatigue bands on velocity-drop percent
    fatigue_building_pct: float = 5.0
    stop_set_pct: float = 20.0
    alert_on: str = ALERT_ON_REP

    def __post_init__(self):
        if not self.sample_rate_hz > 0:
            raise ConfigError(f"sample_rate_hz must be positive, got {self.sample_rate_hz}")
        if self.accel_full_scale_g not in SUPPORTED_FULL_SCALE_G:
            raise ConfigError(
                f"accel_full_scale_g must be one of {SUPPORTED_FULL_SCALE_G}, "
                f"got {self.accel_full_scale_g}"
            )
        if self.zupt_threshold_mps2 < 0:
            raise ConfigError("zupt_threshold_mps2 must be >= 0")
        if not self.zupt_hold_seconds > 0:
            raise ConfigError("zupt_hold_seconds must be positive")
        if not self.gravity > 0:
            raise ConfigError("gravity must be positive")
        if not 0 <= self.fatigue_building_pct < self.stop_set_pct:
            raise ConfigError("need 0 <= fatigue_building_pct < stop_set_pct")
        if self.alert_on not in (ALERT_ON_REP, ALERT_ON_SAMPLE):
            raise ConfigError(f"alert_on must be 'rep' or 'sample', got {self.alert_on!r}")

        dc = self.filter.dc_gain()
        if not 0.99 <= dc <= 1.01:
            logger.warning(f"Filter DC gain is {dc:.3f}, expected ~1.0 (check GAIN)")

    @property
    def dt(self) -> float:
        """Integration step in seconds."""
        return 1.0 / self.sample_rate_hz

    @property
    def zupt_max_frames(self) -> int:
        """Consecutive quiet frames before velocity is locked to zero."""
        # round() first so 0.2 * 200 does not become 41 through float noise
        return max(1, math.ceil(round(self.zupt_hold_seconds * self.sample_rate_hz, 9)))

    @classmethod
    def from_preset(cls, name: str, **overrides) -> "PipelineConfig":
        """Build a config from a named preset, optionally overriding fields."""
        try:
            base = PRESETS[name]
        except KeyError:
            raise ConfigError(
                f"unknown preset {name!r}, choose from {sorted(PRESETS)}"
            ) from None
        return replace(base, **overrides) if overrides else base

    @classmethod
    def from_env(cls, prefix: str = "IRONPROOF_", environ: Optional[Dict[str, str]] = None) -> "PipelineConfig":
        """
        Build a config from environment variables.

        Reads {prefix}PRESET, FULL_SCALE_G, ZUPT_THRESHOLD, ZUPT_HOLD_SEC,
        VERIFY_CHECKSUM and ALERT_ON. The sample rate always comes from the
        preset.
        """
        env = os.environ if environ is None else environ
        overrides = {}

        full_scale = env.get(f"{prefix}FULL_SCALE_G", "").strip()
        if full_scale:
            overrides["accel_full_scale_g"] = float(full_scale)

        threshold = env.get(f"{prefix}ZUPT_THRESHOLD", "").strip()
        if threshold:
            overrides["zupt_threshold_mps2"] = float(threshold)

        hold = env.get(f"{prefix}ZUPT_HOLD_SEC", "").strip()
        if hold:
            overrides["zupt_hold_seconds"] = float(hold)

        checksum = env.get(f"{prefix}VERIFY_CHECKSUM", "").strip()
        if checksum:
            overrides["verify_checksum"] = checksum.lower() in ("1", "true", "yes")

        alert_on = env.get(f"{prefix}ALERT_ON", "").strip().lower()
        if alert_on:
            overrides["alert_on"] = alert_on

        preset = env.get(f"{prefix}PRESET", DEFAULT_PRESET).strip() or DEFAULT_PRESET
        return cls.from_preset(preset, **overrides)

    def as_dict(self) -> dict:
        """Flat view for logging and session summaries."""
        return {
            "sample_rate_hz": self.sample_rate_hz,
            "accel_full_scale_g": self.accel_full_scale_g,
            "filter_gain": self.filter.gain,
            "filter_feedback": list(self.filter.feedback),
            "zupt_threshold_mps2": self.zupt_threshold_mps2,
            "zupt_hold_seconds": self.zupt_hold_seconds,
            "zupt_max_frames": self.zupt_max_frames,
            "verify_checksum": self.verify_checksum,
            "fatigue_building_pct": self.fatigue_building_pct,
            "stop_set_pct": self.stop_set_pct,
            "alert_on": self.alert_on,
        }


PRESETS: Dict[str, PipelineConfig] = {
    "200hz": PipelineConfig(sample_rate_hz=200.0, filter=BUTTERWORTH_200HZ_10HZ),
    "20hz": PipelineConfig(sample_rate_hz=20.0, filter=BUTTERWORTH_20HZ_5HZ),
}

DEFAULT_PRESET = "200hz"
