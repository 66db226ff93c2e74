"""
Rep and set fatigue tracking for IronProof.

Velocity loss within a set is the standard VBT fatigue proxy: compare each
rep's peak velocity with a reference (the set's best rep, or a target the
athlete supplies) and stop the set once the drop gets too large.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from .config import ALERT_ON_REP, ALERT_ON_SAMPLE, PipelineConfig
from .log_utils import get_logger

logger = get_logger("fatigue")

# Upper edge of the warning band, which has no status of its own
WARNING_BAND_PCT = 15.0

# Per-sample alerts wait until speed has fallen to this share of the rep peak
SETTLE_FRACTION = 0.5


class FatigueStatus(str, Enum):
    STABLE = "stable"
    BUILDING = "fatigue_building"
    STOP = "stop_set"


@dataclass(frozen=True)
class RepMetric:
    """Snapshot of the rep in progress."""
    peak_velocity: float
    velocity_drop_pct: float
    fatigue_status: FatigueStatus
    reference_velocity: Optional[float] = None
    alert: bool = False        # this evaluation fired the stop-set alert

    @property
    def in_warning_band(self) -> bool:
        return (self.fatigue_status is FatigueStatus.BUILDING
                and self.velocity_drop_pct >= WARNING_BAND_PCT)


@dataclass(frozen=True)
class RepRecord:
    """A completed rep, ready for the workout store."""
    rep_number: int
    peak_velocity: float
    mean_velocity: Optional[float]
    velocity_drop_pct: float
    fatigue_status: FatigueStatus


def velocity_drop_pct(peak: float, reference: Optional[float]) -> float:
    """
    Percent drop of `peak` below `reference`.

    Returns 0 when there is no usable reference, when nothing has moved yet
    (peak == 0), or when the peak matches or beats the reference.
    """
    if reference is None or reference <= 0 or peak <= 0:
        return 0.0
    return max(0.0, (reference - peak) / reference * 100.0)


def compute_loss_pct(values: List[float]) -> Optional[float]:
    """
    Loss % from first to last (fatigue proxy).

    Returns:
        Percentage drop clamped to 0-100, or None with fewer than 2 values
        or a non-positive first value
    """
    if not values or len(values) < 2:
        return None
    first = float(values[0])
    last = float(values[-1])
    if first <= 0:
        return None
    loss = (1.0 - (last / first)) * 100.0
    return round(min(max(loss, 0.0), 100.0), 2)


def classify_drop(
    drop_pct: float,
    building_at: float = 5.0,
    stop_at: float = 20.0
) -> FatigueStatus:
    """Map a drop percent onto the fatigue bands."""
    if drop_pct >= stop_at:
        return FatigueStatus.STOP
    if drop_pct >= building_at:
        return FatigueStatus.BUILDING
    return FatigueStatus.STABLE


class RepClassifier:
    """
    Track peak velocity per rep and classify fatigue across a set.

    The stop-set alert is edge-triggered: it fires once when the status
    enters STOP and is re-armed only after the status falls back below STOP
    or a new set starts. With alert_on="rep" only completed reps are
    considered; with alert_on="sample" a `metric()` call is considered once
    the rep has passed its peak and speed has fallen to SETTLE_FRACTION of
    it, so the near-zero peak at the start of a rep never fires.

    Usage:
        classifier = RepClassifier(reference_velocity=1.0)
        for v in velocities:
            classifier.observe(v)
        metric = classifier.metric()
        record = classifier.end_rep()
    """

    def __init__(
        self,
        reference_velocity: Optional[float] = None,
        building_at_pct: float = 5.0,
        stop_at_pct: float = 20.0,
        alert_on: str = ALERT_ON_REP,
        on_alert: Optional[Callable[[RepMetric], None]] = None
    ):
        """
        Args:
            reference_velocity: Best/target velocity for the set (m/s).
                None uses the best completed rep of the set.
            building_at_pct: Drop at which fatigue starts building
            stop_at_pct: Drop at which the set should stop
            alert_on: "rep" or "sample"
            on_alert: Called with the metric when the alert fires
        """
        self.reference_velocity = reference_velocity
        self.building_at_pct = building_at_pct
        self.stop_at_pct = stop_at_pct
        self.alert_on = alert_on
        self.on_alert = on_alert

        # Set history
        self.reps: List[RepRecord] = []
        self._alert_armed = True
        self.alerts_fired = 0

        # Rep in progress
        self._peak = 0.0
        self._moving_sum = 0.0
        self._moving_n = 0
        self._last_speed = 0.0

    @classmethod
    def from_config(
        cls,
        config: PipelineConfig,
        reference_velocity: Optional[float] = None,
        on_alert: Optional[Callable[[RepMetric], None]] = None
    ) -> "RepClassifier":
        return cls(
            reference_velocity=reference_velocity,
            building_at_pct=config.fatigue_building_pct,
            stop_at_pct=config.stop_set_pct,
            alert_on=config.alert_on,
            on_alert=on_alert,
        )

    def observe(self, velocity: float):
        """Feed one instantaneous velocity of the rep in progress."""
        speed = abs(velocity)
        self._last_speed = speed
        if speed > self._peak:
            self._peak = speed
        if speed > 0:
            self._moving_sum += speed
            self._moving_n += 1

    @property
    def peak_velocity(self) -> float:
        return self._peak

    @property
    def mean_velocity(self) -> Optional[float]:
        """Mean speed over the moving samples of this rep."""
        if not self._moving_n:
            return None
        return self._moving_sum / self._moving_n

    @property
    def settling(self) -> bool:
        """True once speed has fallen well below the peak of this rep."""
        return self._peak > 0 and self._last_speed <= self._peak * SETTLE_FRACTION

    @property
    def best_peak(self) -> Optional[float]:
        """Best peak velocity among completed reps of this set."""
        if not self.reps:
            return None
        return max(r.peak_velocity for r in self.reps)

    def reference(self) -> Optional[float]:
        """Reference velocity in effect."""
        if self.reference_velocity is not None:
            return self.reference_velocity
        return self.best_peak

    def metric(self) -> RepMetric:
        """Evaluate the rep in progress."""
        return self._evaluate(consider_alert=(self.alert_on == ALERT_ON_SAMPLE and self.settling))

    def _evaluate(self, consider_alert: bool) -> RepMetric:
        ref = self.reference()
        drop = velocity_drop_pct(self._peak, ref)
        status = classify_drop(drop, self.building_at_pct, self.stop_at_pct)

        fired = False
        if consider_alert:
            if status is FatigueStatus.STOP:
                if self._alert_armed:
                    self._alert_armed = False
                    fired = True
            else:
                self._alert_armed = True

        metric = RepMetric(
            peak_velocity=self._peak,
            velocity_drop_pct=drop,
            fatigue_status=status,
            reference_velocity=ref,
            alert=fired,
        )
        if fired:
            self.alerts_fired += 1
            logger.info(f"Stop set: velocity drop {drop:.1f}% (peak {self._peak:.2f} m/s)")
            if self.on_alert is not None:
                self.on_alert(metric)
        return metric

    def end_rep(self) -> RepRecord:
        """
        Close the rep in progress.

        Returns:
            RepRecord for the workout store. The rep is classified against
            the reference in effect before it is added to the set.
        """
        metric = self._evaluate(consider_alert=(self.alert_on == ALERT_ON_REP))
        record = RepRecord(
            rep_number=len(self.reps) + 1,
            peak_velocity=round(metric.peak_velocity, 3),
            mean_velocity=None if self.mean_velocity is None else round(self.mean_velocity, 3),
            velocity_drop_pct=round(metric.velocity_drop_pct, 2),
            fatigue_status=metric.fatigue_status,
        )
        self.reps.append(record)
        self.reset_peak()
        return record

    def reset_peak(self):
        """Discard the rep in progress."""
        self._peak = 0.0
        self._moving_sum = 0.0
        self._moving_n = 0
        self._last_speed = 0.0

    def reset(self, reference_velocity: Optional[float] = None):
        """Start a new set."""
        self.reference_velocity = reference_velocity
        self.reps = []
        self._alert_armed = True
        self.reset_peak()

    def velocity_loss_pct(self) -> Optional[float]:
        """
        Velocity loss from the first to the last completed rep.

        Returns:
            Percentage drop (0-100), or None if < 2 reps recorded
        """
        return compute_loss_pct([r.peak_velocity for r in self.reps])
