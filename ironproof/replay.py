"""
Replay a captured sensor log through the IronProof pipeline.

Capture formats:
    hex: one notification per line as hex bytes ("55 51 ..." or "5551...").
         Lines starting with '#' are comments. A line reading "rep" marks a
         rep boundary and "disconnect" a transport drop.
    bin: raw byte dump of the sensor stream; frames are located by their
         sync byte.

Usage:
    ironproof-replay capture.txt
    ironproof-replay capture.bin --format bin --preset 20hz --output trace.csv
"""

import argparse
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .config import DEFAULT_PRESET, PRESETS, PipelineConfig
from .fatigue import RepRecord
from .frames import iter_frames
from .log_utils import get_logger, setup_logging
from .pipeline import VelocityPipeline

logger = get_logger("replay")

MARKER_REP = "rep"
MARKER_DISCONNECT = "disconnect"

Event = Union[bytes, str]

TRACE_COLUMNS = [
    "seq", "raw_z", "linear_z", "filtered_z", "velocity",
    "zupt_locked", "stale_orientation",
]


def read_capture(path: Union[str, Path], fmt: str = "hex") -> Iterator[Event]:
    """
    Yield notification buffers (bytes) and markers (str) from a capture.
    """
    path = Path(path)

    if fmt == "bin":
        yield from iter_frames(path.read_bytes())
        return

    with open(path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            lowered = line.lower()
            if lowered in (MARKER_REP, MARKER_DISCONNECT):
                yield lowered
                continue
            try:
                yield bytes.fromhex(line)
            except ValueError:
                logger.warning(f"Line {lineno}: not hex, skipped")


def replay(
    events: Iterator[Event],
    config: PipelineConfig,
    reference_velocity: Optional[float] = None
) -> Tuple[pd.DataFrame, List[RepRecord], dict]:
    """
    Run capture events through a fresh pipeline.

    Returns:
        (trace DataFrame with one row per acceleration frame,
         completed reps, pipeline stats)
    """
    pipeline = VelocityPipeline(config, reference_velocity=reference_velocity)
    rows = []
    reps: List[RepRecord] = []

    for event in events:
        if event == MARKER_REP:
            reps.append(pipeline.end_rep())
        elif event == MARKER_DISCONNECT:
            pipeline.disconnect()
        else:
            update = pipeline.process(event)
            if update is not None:
                rows.append((
                    update.seq, update.raw_z, update.linear_z, update.filtered_z,
                    update.velocity, update.zupt_locked, update.stale_orientation,
                ))

    trace = pd.DataFrame(rows, columns=TRACE_COLUMNS)
    if len(trace):
        trace["t"] = np.arange(len(trace)) * config.dt
    else:
        trace["t"] = pd.Series(dtype=float)
    return trace, reps, pipeline.stats()


def summarize(trace: pd.DataFrame, reps: List[RepRecord], stats: dict):
    """Print a short report of a replay."""
    print("=" * 50)
    print("IronProof replay")
    print("=" * 50)
    print(f"Acceleration frames: {len(trace)}")
    if len(trace):
        speeds = np.abs(trace["velocity"].to_numpy())
        print(f"Peak |velocity|: {speeds.max():.3f} m/s")
        print(f"Final velocity: {trace['velocity'].iloc[-1]:+.3f} m/s")
        print(f"ZUPT-locked samples: {int(trace['zupt_locked'].sum())}")
    print(f"Dropped frames: {stats['dropped_short'] + stats['dropped_sync'] + stats['dropped_type']}"
          f" malformed, {stats['corrupt_frames']} corrupt")

    if reps:
        print("\nReps:")
        for r in reps:
            mean = "-" if r.mean_velocity is None else f"{r.mean_velocity:.3f}"
            print(f"  #{r.rep_number}: peak {r.peak_velocity:.3f} m/s, mean {mean} m/s, "
                  f"drop {r.velocity_drop_pct:.1f}% ({r.fatigue_status.value})")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Replay a sensor capture through the velocity pipeline")
    parser.add_argument("capture", help="Capture file")
    parser.add_argument("--format", choices=["hex", "bin"], default="hex", help="Capture format")
    parser.add_argument("--preset", choices=sorted(PRESETS), default=DEFAULT_PRESET,
                        help="Sample-rate / filter preset")
    parser.add_argument("--full-scale-g", type=float, default=16.0,
                        help="Accelerometer range the sensor was set to (2 on some firmware)")
    parser.add_argument("--no-checksum", action="store_true", help="Accept frames with a bad SUM byte")
    parser.add_argument("--reference", type=float, default=None,
                        help="Reference velocity for the set (m/s); default best rep")
    parser.add_argument("--output", default=None, help="Write the per-sample trace to this CSV")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    setup_logging("DEBUG" if args.verbose else "INFO", verbose_console=args.verbose)

    config = PipelineConfig.from_preset(
        args.preset,
        accel_full_scale_g=args.full_scale_g,
        verify_checksum=not args.no_checksum,
    )

    trace, reps, stats = replay(read_capture(args.capture, args.format), config, args.reference)
    summarize(trace, reps, stats)

    if args.output:
        trace.to_csv(args.output, index=False)
        print(f"\nSaved trace to {args.output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
