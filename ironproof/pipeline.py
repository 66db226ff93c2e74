"""
IronProof velocity pipeline.

One `VelocityPipeline` per sensor connection. Every notification buffer the
transport delivers goes through `process()`, which runs the whole chain
synchronously:

    decode -> (orientation -> tracker)
           -> (acceleration -> gravity -> low-pass -> integrate -> classify)

The pipeline never looks ahead: an acceleration frame is compensated with
whatever orientation was current when it arrived.
"""

import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .butterworth import ButterworthLowPass
from .config import PipelineConfig
from .fatigue import RepClassifier, RepMetric, RepRecord
from .frames import AccelerationSample, FrameDecoder, OrientationSample
from .gravity import GravityCompensator
from .log_utils import get_logger
from .orientation import OrientationTracker
from .velocity import VelocityIntegrator

logger = get_logger("pipeline")


@dataclass(frozen=True)
class PipelineUpdate:
    """Result of one processed acceleration frame."""
    seq: int
    raw_z: float              # m/s², gravity included
    linear_z: float           # m/s², gravity removed
    filtered_z: float         # m/s², after low-pass
    velocity: float           # m/s, signed
    zupt_locked: bool
    stale_orientation: bool   # identity quaternion used


class VelocityPipeline:
    """
    Owns the per-connection decoder, filter and integrator state.

    All public methods take an internal lock, so a transport callback thread
    may call `process()` while another thread reads `metric()`.

    Usage:
        pipeline = VelocityPipeline(PipelineConfig.from_preset("200hz"))
        update = pipeline.process(notification_bytes)
        if update is not None:
            print(update.velocity)

        record = pipeline.end_rep()      # caller decides rep boundaries
        pipeline.disconnect()            # transport dropped
    """

    def __init__(
        self,
        config: PipelineConfig,
        reference_velocity: Optional[float] = None,
        on_alert: Optional[Callable[[RepMetric], None]] = None
    ):
        """
        Args:
            config: Matched sample-rate / filter / ZUPT settings
            reference_velocity: Best/target velocity for the first set
            on_alert: Called when the stop-set alert fires
        """
        self.config = config
        self._lock = threading.RLock()

        self.decoder = FrameDecoder(
            full_scale_g=config.accel_full_scale_g,
            verify_checksum=config.verify_checksum,
        )
        self.orientation = OrientationTracker()
        self.gravity = GravityCompensator(gravity=config.gravity)
        self.lowpass = ButterworthLowPass(config.filter)
        self.integrator = VelocityIntegrator.from_config(config)
        self.classifier = RepClassifier.from_config(
            config, reference_velocity=reference_velocity, on_alert=on_alert
        )

        self.accel_frames = 0
        self.orientation_frames = 0
        self.disconnects = 0

    def process(self, buffer: bytes) -> Optional[PipelineUpdate]:
        """
        Run one notification buffer through the pipeline.

        Returns:
            PipelineUpdate for acceleration frames; None for orientation
            frames and for malformed buffers (which are skipped).
        """
        with self._lock:
            sample = self.decoder.decode(buffer)
            if sample is None:
                return None

            if isinstance(sample, OrientationSample):
                self.orientation.update(sample)
                self.orientation_frames += 1
                return None

            return self._process_accel(sample)

    def _process_accel(self, sample: AccelerationSample) -> PipelineUpdate:
        self.accel_frames += 1

        stale = not self.orientation.has_orientation
        linear_z = self.gravity.compensate(sample.z, self.orientation.current())
        filtered_z = self.lowpass.filter(linear_z)
        velocity = self.integrator.update(filtered_z)
        self.classifier.observe(velocity)

        return PipelineUpdate(
            seq=sample.seq,
            raw_z=sample.z,
            linear_z=linear_z,
            filtered_z=filtered_z,
            velocity=velocity,
            zupt_locked=self.integrator.is_locked,
            stale_orientation=stale,
        )

    @property
    def velocity(self) -> float:
        with self._lock:
            return self.integrator.velocity

    def metric(self) -> RepMetric:
        """Peak, drop and fatigue status of the rep in progress."""
        with self._lock:
            return self.classifier.metric()

    def end_rep(self) -> RepRecord:
        """Close the rep in progress (caller-supplied boundary)."""
        with self._lock:
            record = self.classifier.end_rep()
            logger.info(
                f"Rep {record.rep_number}: peak {record.peak_velocity:.3f} m/s, "
                f"drop {record.velocity_drop_pct:.1f}% ({record.fatigue_status.value})"
            )
            return record

    def start_set(self, reference_velocity: Optional[float] = None):
        """Clear integrator, filter and set history for a new set."""
        with self._lock:
            self.integrator.reset(reason="new set")
            self.lowpass.reset()
            self.classifier.reset(reference_velocity)

    def disconnect(self):
        """
        Handle a transport disconnect.

        Integrator, filter, orientation and the rep in progress are cleared
        before the next event is processed. Completed reps of the set are
        kept.
        """
        with self._lock:
            self.disconnects += 1
            self.integrator.reset(reason="disconnect")
            self.lowpass.reset()
            self.orientation.reset()
            self.classifier.reset_peak()

    def stats(self) -> Dict[str, int]:
        """Counters for diagnostics."""
        with self._lock:
            return {
                "decoded_frames": self.decoder.decoded,
                "accel_frames": self.accel_frames,
                "orientation_frames": self.orientation_frames,
                "dropped_short": self.decoder.dropped["short"],
                "dropped_sync": self.decoder.dropped["sync"],
                "dropped_type": self.decoder.dropped["type"],
                "corrupt_frames": self.decoder.corrupt_frames,
                "filter_rejected": self.lowpass.rejected,
                "integrator_rejected": self.integrator.rejected,
                "zupt_events": self.integrator.zupt_events,
                "disconnects": self.disconnects,
            }
