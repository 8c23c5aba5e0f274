from .controller import DriveController, DriveState, MotorCommand
from .mixing import compute
from .protocol import describe_frame, encode_motor_frame
from .session import DriveSession, SendError, SetupError
from .status import LoggingStatus, StatusSink
from .transport import DriveClient

__all__ = [
    "DriveClient",
    "DriveController",
    "DriveSession",
    "DriveState",
    "LoggingStatus",
    "MotorCommand",
    "SendError",
    "SetupError",
    "StatusSink",
    "compute",
    "describe_frame",
    "encode_motor_frame",
]
