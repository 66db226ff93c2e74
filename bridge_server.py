"""
IronProof WebSocket bridge

Runs the velocity pipeline next to the sensor link and streams the numbers
to any connected app:

  [WT9011 sensor] -BLE-> [forwarder] -binary ws-> [this server] -JSON ws-> [apps]

The forwarder (phone, bleak script, ...) sends every BLE notification as one
binary message. Any client may send JSON commands:

  {"type": "cmd", "action": "start_session", "notes": "..."}
  {"type": "cmd", "action": "start_set", "exercise": "squat", "weight_kg": 100,
   "target_reps": 5, "reference_velocity": 1.0}
  {"type": "cmd", "action": "end_rep"}
  {"type": "cmd", "action": "end_set"}
  {"type": "cmd", "action": "end_session"}
  {"type": "cmd", "action": "connect" | "disconnect" | "status"}

Usage:
    python bridge_server.py
    python bridge_server.py --port 8765 --preset 20hz --full-scale-g 2
"""

import argparse
import asyncio
import json
import os
from typing import Any, Dict, List, Optional, Tuple

import websockets

from ironproof.config import (
    PRESETS,
    STOP_ALERT_PATTERN,
    PipelineConfig,
)
from ironproof.fatigue import RepMetric
from ironproof.log_utils import get_logger, setup_logging
from ironproof.pipeline import VelocityPipeline
from ironproof.store import WorkoutStore

logger = get_logger("bridge")

# =============================================================================
# Configuration
# =============================================================================

HOST = os.getenv("IRONPROOF_HOST", "0.0.0.0")
PORT = int(os.getenv("IRONPROOF_PORT", "8765"))

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
STORE_DIR = os.getenv("IRONPROOF_STORE_DIR", os.path.join(BASE_DIR, "sessions"))

# Velocity messages per acceleration frame (~20 Hz at 200 Hz sampling)
BROADCAST_EVERY_N = max(1, int(os.getenv("IRONPROOF_BROADCAST_EVERY_N", "10")))


def is_command_message(msg: Any) -> bool:
    return isinstance(msg, dict) and msg.get("type") in ("cmd", "command")


def metric_fields(metric: RepMetric) -> Dict[str, Any]:
    return {
        "peak_velocity": round(metric.peak_velocity, 3),
        "velocity_drop_pct": round(metric.velocity_drop_pct, 2),
        "fatigue_status": metric.fatigue_status.value,
        "reference_velocity": metric.reference_velocity,
    }


class Bridge:
    """
    Connection state for one sensor: the pipeline, the workout store and
    the set of subscribed clients.

    Frame and command handling are plain methods returning the messages to
    send, so the protocol can be exercised without a socket.
    """

    def __init__(
        self,
        config: PipelineConfig,
        store: WorkoutStore,
        broadcast_every_n: int = BROADCAST_EVERY_N
    ):
        self.config = config
        self.store = store
        self.broadcast_every_n = max(1, int(broadcast_every_n))

        self.pipeline = VelocityPipeline(config, on_alert=self._on_alert)
        self.clients = set()
        self.connected = False

        self._source = None          # client currently pushing sensor frames
        self._pending: List[Dict[str, Any]] = []

    # ----------------------- Pipeline side -----------------------

    def _on_alert(self, metric: RepMetric):
        self._pending.append({
            "type": "alert",
            "reason": "stop_set",
            "pattern": list(STOP_ALERT_PATTERN),
            **metric_fields(metric),
        })

    def _drain(self) -> List[Dict[str, Any]]:
        out, self._pending = self._pending, []
        return out

    def handle_frame(self, buffer: bytes) -> List[Dict[str, Any]]:
        """Process one notification; return messages to broadcast."""
        self.connected = True
        update = self.pipeline.process(buffer)
        if update is None:
            return self._drain()

        if self.pipeline.accel_frames % self.broadcast_every_n:
            return self._drain()

        msg = {
            "type": "velocity",
            "seq": update.seq,
            "velocity": round(update.velocity, 4),
            "accel_z": round(update.filtered_z, 4),
            "zupt": update.zupt_locked,
            **metric_fields(self.pipeline.metric()),
        }
        return [msg] + self._drain()

    def status_message(self) -> Dict[str, Any]:
        return {
            "type": "status",
            "connected": self.connected,
            "velocity": round(self.pipeline.velocity, 4),
            "session_id": self.store.active_session_id,
            "set_id": self.store.active_set_id,
            "config": self.config.as_dict(),
            "stats": self.pipeline.stats(),
            **metric_fields(self.pipeline.metric()),
        }

    def handle_disconnect(self):
        """Sensor link dropped: stale state must not reach the next session."""
        self.connected = False
        self.pipeline.disconnect()

    # ----------------------- Commands -----------------------

    def handle_command(self, msg: Any) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
        """
        Apply one JSON command.

        Returns:
            (reply to the sender, messages to broadcast)
        """
        if not is_command_message(msg):
            return {"type": "error", "error": "not_a_command"}, []

        action = msg.get("action")
        broadcasts: List[Dict[str, Any]] = []

        if action == "connect":
            self.connected = True
            reply = {"type": "ack", "action": action, "ok": True}

        elif action == "disconnect":
            self.handle_disconnect()
            reply = {"type": "ack", "action": action, "ok": True}

        elif action == "start_session":
            session_id = self.store.start_session(str(msg.get("notes", "")))
            reply = {"type": "ack", "action": action, "ok": True, "session_id": session_id}

        elif action == "end_session":
            session_id = self.store.active_session_id
            self.store.end_session()
            summary = self.store.write_summary(session_id) if session_id else None
            reply = {
                "type": "ack", "action": action, "ok": session_id is not None,
                "session_id": session_id, "summary": summary,
            }

        elif action == "start_set":
            try:
                weight = float(msg.get("weight_kg", 0.0))
                target = int(msg.get("target_reps", 0))
                ref = msg.get("reference_velocity")
                ref = None if ref is None else float(ref)
            except (TypeError, ValueError):
                return {"type": "error", "action": action, "error": "bad_arguments"}, []

            set_id = self.store.start_set(str(msg.get("exercise", "")), weight, target)
            self.pipeline.start_set(ref)
            reply = {"type": "ack", "action": action, "ok": set_id is not None, "set_id": set_id}

        elif action == "end_rep":
            record = self.pipeline.end_rep()
            stored = self.store.add_rep_record(record)
            rep_msg = {
                "type": "rep",
                "rep_number": record.rep_number,
                "peak_velocity": record.peak_velocity,
                "mean_velocity": record.mean_velocity,
                "velocity_drop_pct": record.velocity_drop_pct,
                "fatigue_status": record.fatigue_status.value,
                "stored": stored is not None,
            }
            broadcasts.append(rep_msg)
            reply = {"type": "ack", "action": action, "ok": True, "rep_number": record.rep_number}

        elif action == "end_set":
            loss = self.pipeline.classifier.velocity_loss_pct()
            reps = len(self.pipeline.classifier.reps)
            self.store.end_set()
            self.pipeline.start_set()
            reply = {
                "type": "ack", "action": action, "ok": True,
                "reps": reps, "velocity_loss_pct": loss,
            }

        elif action == "status":
            reply = self.status_message()

        else:
            reply = {"type": "error", "action": action, "error": "unknown_action"}

        return reply, broadcasts + self._drain()

    # ----------------------- WebSocket side -----------------------

    async def broadcast(self, msg: Dict[str, Any]):
        if not self.clients:
            return
        data = json.dumps(msg)
        dead = []
        for ws in list(self.clients):
            try:
                await ws.send(data)
            except websockets.exceptions.ConnectionClosed:
                dead.append(ws)
        for ws in dead:
            self.clients.discard(ws)

    async def handler(self, ws):
        self.clients.add(ws)
        logger.info("Client connected")

        try:
            await ws.send(json.dumps(self.status_message()))

            async for raw in ws:
                if isinstance(raw, (bytes, bytearray)):
                    self._source = ws
                    for out in self.handle_frame(bytes(raw)):
                        await self.broadcast(out)
                    continue

                try:
                    msg = json.loads(raw)
                except json.JSONDecodeError:
                    await ws.send(json.dumps({"type": "error", "error": "bad_json"}))
                    continue

                reply, broadcasts = self.handle_command(msg)
                await ws.send(json.dumps(reply))
                for out in broadcasts:
                    await self.broadcast(out)

        except websockets.exceptions.ConnectionClosed:
            pass
        finally:
            self.clients.discard(ws)
            if ws is self._source:
                self._source = None
                self.handle_disconnect()
                logger.info("Sensor source disconnected, pipeline reset")
            logger.info("Client disconnected")


# =============================================================================
# Main
# =============================================================================

async def serve(bridge: Bridge, host: str, port: int):
    async with websockets.serve(bridge.handler, host, port, ping_interval=20, ping_timeout=20):
        await asyncio.Future()  # run forever


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description="IronProof WebSocket bridge")
    parser.add_argument("--host", default=HOST)
    parser.add_argument("--port", type=int, default=PORT)
    parser.add_argument("--preset", choices=sorted(PRESETS), default=None,
                        help="Sample-rate / filter preset (default from IRONPROOF_PRESET)")
    parser.add_argument("--full-scale-g", type=float, default=None,
                        help="Accelerometer range (16 default, 2 on some firmware)")
    parser.add_argument("--store-dir", default=STORE_DIR)
    parser.add_argument("--broadcast-every", type=int, default=BROADCAST_EVERY_N)
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    setup_logging("DEBUG" if args.verbose else "INFO", verbose_console=args.verbose)

    # Command line wins over IRONPROOF_* variables
    environ = dict(os.environ)
    if args.preset is not None:
        environ["IRONPROOF_PRESET"] = args.preset
    if args.full_scale_g is not None:
        environ["IRONPROOF_FULL_SCALE_G"] = str(args.full_scale_g)
    config = PipelineConfig.from_env(environ=environ)

    bridge = Bridge(config, WorkoutStore(args.store_dir), args.broadcast_every)

    print("=" * 50)
    print("IronProof WebSocket bridge")
    print("=" * 50)
    print(f"WebSocket: ws://{args.host}:{args.port}")
    print(f"Sample rate: {config.sample_rate_hz} Hz, range ±{config.accel_full_scale_g:g} g")
    print(f"ZUPT: |a| < {config.zupt_threshold_mps2} m/s² for {config.zupt_max_frames} frames")
    print(f"Store: {args.store_dir}")
    print("=" * 50)

    try:
        asyncio.run(serve(bridge, args.host, args.port))
    except KeyboardInterrupt:
        print("\n--- STOP ---")


if __name__ == "__main__":
    main()
