from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


MOTOR_LIMIT = 127


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp_motor(value: float) -> int:
    # clamp before narrowing, int() then truncates toward zero
    return int(clamp(float(value), -MOTOR_LIMIT, MOTOR_LIMIT))


class DriveState(Enum):
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass(slots=True)
class MotorCommand:
    """Signed speed pair, positive is forward, magnitude is speed."""

    left: int = 0
    right: int = 0

    def __post_init__(self) -> None:
        self.left = clamp_motor(self.left)
        self.right = clamp_motor(self.right)

    @classmethod
    def stop(cls) -> "MotorCommand":
        return cls(0, 0)

    @property
    def is_stop(self) -> bool:
        return self.left == 0 and self.right == 0

    def as_tuple(self) -> tuple[int, int]:
        return (self.left, self.right)


@dataclass(slots=True)
class DriveController:
    """Stopped/Running flag plus the command the emission loop re-sends.

    Holds no I/O. The client wraps it with a lock and performs the explicit
    stop send.
    """

    state: DriveState = DriveState.STOPPED
    motor: MotorCommand = field(default_factory=MotorCommand)

    @property
    def is_running(self) -> bool:
        return self.state is DriveState.RUNNING

    def start(self) -> None:
        self.state = DriveState.RUNNING

    def stop(self) -> MotorCommand:
        self.motor = MotorCommand.stop()
        self.state = DriveState.STOPPED
        return self.motor

    def set_motor(self, left: int, right: int) -> MotorCommand:
        self.motor = MotorCommand(left, right)
        return self.motor

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "running": self.is_running,
            "left": self.motor.left,
            "right": self.motor.right,
        }
