from __future__ import annotations

import math
from typing import Callable, Dict

from .controller import MotorCommand


DEFAULT_MIX_LAW = "scaled"

SCALED_X_SCALE = 0.5
SCALED_GAIN = 127.0
CROSS_GAIN = 63.0


def _finite(value: float) -> float:
    value = float(value)
    if math.isnan(value):
        return 0.0
    if math.isinf(value):
        return math.copysign(1e6, value)
    return value


def mix_scaled(
    x: float,
    y: float,
    x_scale: float = SCALED_X_SCALE,
    gain: float = SCALED_GAIN,
) -> MotorCommand:
    """Forward/back on x (amplified by 1/x_scale), turn on y, saturating."""
    x = _finite(x) / x_scale
    y = _finite(y)
    return MotorCommand((x + y) * gain, (x - y) * gain)


def mix_cross(x: float, y: float, gain: float = CROSS_GAIN) -> MotorCommand:
    """Cross mix that flips the steering sense when driving backward."""
    x = _finite(x)
    y = _finite(y)
    reverse = 1.0 if x >= 0 else -1.0
    return MotorCommand((-x + reverse * y) * gain, (-x - reverse * y) * gain)


MIX_LAWS: Dict[str, Callable[[float, float], MotorCommand]] = {
    "scaled": mix_scaled,
    "cross": mix_cross,
}


def get_mixer(law: str) -> Callable[[float, float], MotorCommand]:
    try:
        return MIX_LAWS[law]
    except KeyError:
        raise ValueError(f"unknown mix law '{law}', expected one of {sorted(MIX_LAWS)}") from None


def compute(x: float, y: float, law: str = DEFAULT_MIX_LAW) -> MotorCommand:
    return get_mixer(law)(x, y)
