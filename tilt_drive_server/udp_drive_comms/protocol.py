from __future__ import annotations

from .controller import MotorCommand, clamp_motor

FRAME_TAG = 0x01
FRAME_SIZE = 5

LEFT_FORWARD = 1
LEFT_REVERSE = 0
RIGHT_FORWARD = 4
RIGHT_REVERSE = 5


def _side(value: int, forward_op: int, reverse_op: int) -> tuple[int, int]:
    # zero goes out as reverse/0 so a stop frame is always the same bytes
    value = clamp_motor(value)
    if value > 0:
        return forward_op, value
    return reverse_op, -value


def encode_motor_frame(command: MotorCommand) -> bytes:
    left_op, left_mag = _side(command.left, LEFT_FORWARD, LEFT_REVERSE)
    right_op, right_mag = _side(command.right, RIGHT_FORWARD, RIGHT_REVERSE)

    frame = bytearray(FRAME_SIZE)
    frame[0] = FRAME_TAG
    frame[1] = left_op
    frame[2] = left_mag
    frame[3] = right_op
    frame[4] = right_mag
    return bytes(frame)


STOP_FRAME = encode_motor_frame(MotorCommand.stop())


def describe_frame(frame: bytes) -> str:
    if len(frame) != FRAME_SIZE:
        raise ValueError(f"Invalid motor frame length: {len(frame)}")
    if frame[0] != FRAME_TAG:
        raise ValueError(f"Invalid motor frame tag: 0x{frame[0]:02X}")

    left_ops = {LEFT_FORWARD: "+", LEFT_REVERSE: "-"}
    right_ops = {RIGHT_FORWARD: "+", RIGHT_REVERSE: "-"}
    if frame[1] not in left_ops:
        raise ValueError(f"Invalid left opcode: {frame[1]}")
    if frame[3] not in right_ops:
        raise ValueError(f"Invalid right opcode: {frame[3]}")

    return f"L{left_ops[frame[1]]}{frame[2]} R{right_ops[frame[3]]}{frame[4]}"
