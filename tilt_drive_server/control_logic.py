from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Optional, Tuple


STANDARD_GRAVITY_MPS2 = 9.80665


@dataclass(slots=True)
class TiltSample:
    x: float
    y: float


@dataclass(slots=True)
class WsRequest:
    running: Optional[bool] = None
    tilt: Optional[Tuple[float, float]] = None
    motor: Optional[Tuple[int, int]] = None


def tilt_from_accel(
    ax_mps2: float,
    ay_mps2: float,
    gravity_mps2: float = STANDARD_GRAVITY_MPS2,
    swap_axes: bool = False,
    invert_x: bool = False,
    invert_y: bool = False,
) -> TiltSample:
    """Convert an IMU linear acceleration in m/s^2 into a tilt sample in g."""
    scale = max(1e-6, abs(float(gravity_mps2)))
    x = float(ax_mps2) / scale
    y = float(ay_mps2) / scale
    if bool(swap_axes):
        x, y = y, x
    if bool(invert_x):
        x = -x
    if bool(invert_y):
        y = -y
    return TiltSample(x=x, y=y)


def sample_is_fresh(now_s: float, stamp_s: float, timeout_s: float) -> bool:
    return (now_s - stamp_s) <= max(0.0, timeout_s)


def _parse_pair(value: Any, field_name: str, kind: type) -> tuple:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise ValueError(f"'{field_name}' must be a list of two numbers")
    out = []
    for item in value:
        if isinstance(item, bool) or not isinstance(item, (int, float)):
            raise ValueError(f"'{field_name}' must be a list of two numbers")
        if not math.isfinite(item):
            raise ValueError(f"'{field_name}' values must be finite")
        out.append(kind(item))
    return tuple(out)


def parse_ws_request(raw: str) -> WsRequest:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid_json: {exc}") from exc

    if not isinstance(data, dict):
        raise ValueError("payload must be object")

    request = WsRequest()
    if "running" in data:
        if not isinstance(data["running"], bool):
            raise ValueError("'running' must be boolean")
        request.running = data["running"]
    if "tilt" in data:
        request.tilt = _parse_pair(data["tilt"], "tilt", float)
    if "motor" in data:
        request.motor = _parse_pair(data["motor"], "motor", int)
    return request


def request_refreshes_input(request: WsRequest) -> bool:
    return request.tilt is not None or request.motor is not None


def tilt_applies(now_s: float, motor_stamp_s: float, timeout_s: float) -> bool:
    """A WebSocket motor command holds off IMU samples until it goes stale."""
    return not sample_is_fresh(now_s, motor_stamp_s, timeout_s)
