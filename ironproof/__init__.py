"""
IronProof Velocity Pipeline

Real-time bar velocity from a WitMotion IMU for velocity-based training:
- FrameDecoder: Parses 11-byte acceleration / quaternion frames
- OrientationTracker: Holds the sensor's latest attitude
- GravityCompensator: Removes gravity to get linear acceleration
- ButterworthLowPass: 4th-order low-pass on linear acceleration
- VelocityIntegrator: Integrates acceleration to velocity with ZUPT
- RepClassifier: Peak velocity per rep and velocity-drop fatigue status
- VelocityPipeline: All of the above, one instance per connection

Usage:
    from ironproof import PipelineConfig, VelocityPipeline

    pipeline = VelocityPipeline(PipelineConfig.from_preset("200hz"))

    # In the notification callback:
    update = pipeline.process(buffer)
    if update is not None:
        print(update.velocity, pipeline.metric().fatigue_status)
"""

from .config import (
    PipelineConfig,
    FilterCoefficients,
    ConfigError,
    PRESETS,
    BUTTERWORTH_200HZ_10HZ,
    BUTTERWORTH_20HZ_5HZ,
)
from .frames import (
    AccelerationSample,
    OrientationSample,
    FrameDecoder,
    FrameError,
    parse_frame,
    decode_frame,
)
from .orientation import OrientationTracker
from .gravity import GravityCompensator, compensate
from .butterworth import ButterworthLowPass
from .velocity import VelocityIntegrator
from .fatigue import FatigueStatus, RepMetric, RepRecord, RepClassifier, velocity_drop_pct
from .pipeline import VelocityPipeline, PipelineUpdate
from .store import WorkoutStore

__all__ = [
    # Config
    'PipelineConfig',
    'FilterCoefficients',
    'ConfigError',
    'PRESETS',
    'BUTTERWORTH_200HZ_10HZ',
    'BUTTERWORTH_20HZ_5HZ',

    # Frames
    'AccelerationSample',
    'OrientationSample',
    'FrameDecoder',
    'FrameError',
    'parse_frame',
    'decode_frame',

    # Orientation / gravity
    'OrientationTracker',
    'GravityCompensator',
    'compensate',

    # Filter / velocity
    'ButterworthLowPass',
    'VelocityIntegrator',

    # Fatigue
    'FatigueStatus',
    'RepMetric',
    'RepRecord',
    'RepClassifier',
    'velocity_drop_pct',

    # Pipeline
    'VelocityPipeline',
    'PipelineUpdate',
    'WorkoutStore',
]

__version__ = '1.0.0'
