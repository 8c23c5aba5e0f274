from __future__ import annotations

import logging
import socket
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple

from .status import LoggingStatus, StatusSink


logger = logging.getLogger(__name__)

DEFAULT_REMOTE_HOST = "10.38.40.204"
DEFAULT_PORT = 9003
WILDCARD_ADDRESS = "0.0.0.0"

Endpoint = Tuple[str, int]


class DriveCommsError(Exception):
    pass


class SetupErrorKind(Enum):
    ADDRESS_RESOLUTION = "address_resolution"
    SOCKET = "socket"


class SendErrorKind(Enum):
    SHORT_WRITE = "short_write"
    IO = "io"


class SetupError(DriveCommsError):
    def __init__(self, kind: SetupErrorKind, message: str, errno: Optional[int] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.errno = errno


class SendError(DriveCommsError):
    def __init__(self, kind: SendErrorKind, message: str, errno: Optional[int] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.errno = errno


@dataclass(slots=True)
class SessionStats:
    frames_sent: int = 0
    send_errors: int = 0
    setup_errors: int = 0


class DriveSession:
    """Owns the UDP socket used to reach the drive unit.

    The destination is parsed once at ``open`` and every frame goes out with
    ``sendto``; the socket is never connected. A failed ``open`` leaves the
    session disabled, in which state ``send`` does nothing.
    """

    def __init__(
        self,
        remote_host: str = DEFAULT_REMOTE_HOST,
        remote_port: int = DEFAULT_PORT,
        local_port: Optional[int] = None,
        status: Optional[StatusSink] = None,
        socket_factory: Callable[..., socket.socket] = socket.socket,
    ) -> None:
        self.remote_host = str(remote_host)
        self.remote_port = int(remote_port)
        self.local_port = self.remote_port if local_port is None else int(local_port)
        if not 0 < self.remote_port <= 65535:
            raise ValueError(f"remote_port out of range: {self.remote_port}")
        if not 0 <= self.local_port <= 65535:
            raise ValueError(f"local_port out of range: {self.local_port}")
        self.status: StatusSink = status if status is not None else LoggingStatus()
        self.stats = SessionStats()
        self.last_error: Optional[DriveCommsError] = None

        self._socket_factory = socket_factory
        self._sock: Optional[socket.socket] = None
        self._endpoint: Optional[Endpoint] = None

    def __enter__(self) -> "DriveSession":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._sock is not None

    @property
    def endpoint(self) -> Optional[Endpoint]:
        return self._endpoint

    @property
    def local_address(self) -> Optional[Endpoint]:
        if self._sock is None:
            return None
        return self._sock.getsockname()

    def open(self) -> None:
        self.close()

        try:
            sock = self._socket_factory(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
            sock.setblocking(False)
        except OSError as exc:
            raise self._setup_error(
                SetupErrorKind.SOCKET, f"error creating socket: {exc}", exc.errno
            ) from exc

        try:
            packed = socket.inet_aton(self.remote_host)
        except OSError as exc:
            sock.close()
            raise self._setup_error(
                SetupErrorKind.ADDRESS_RESOLUTION,
                f"error parsing destination address ({self.remote_host})",
            ) from exc
        endpoint = (socket.inet_ntoa(packed), self.remote_port)

        try:
            sock.bind((WILDCARD_ADDRESS, self.local_port))
        except OSError as exc:
            sock.close()
            raise self._setup_error(
                SetupErrorKind.SOCKET, f"error binding socket: {exc}", exc.errno
            ) from exc

        self._sock = sock
        self._endpoint = endpoint
        self.last_error = None
        logger.info(
            "drive session open: %s:%d -> %s:%d",
            WILDCARD_ADDRESS,
            self.local_port,
            endpoint[0],
            endpoint[1],
        )

    def send(self, frame: bytes) -> bool:
        if self._sock is None or self._endpoint is None:
            return False

        try:
            sent = self._sock.sendto(frame, self._endpoint)
        except OSError as exc:
            self._send_error(SendErrorKind.IO, f"error sending packet: {exc}", exc.errno)
            return False

        if sent != len(frame):
            self._send_error(
                SendErrorKind.SHORT_WRITE,
                f"error sending packet: short write ({sent} of {len(frame)} bytes)",
            )
            return False

        self.stats.frames_sent += 1
        return True

    def close(self) -> None:
        sock, self._sock = self._sock, None
        self._endpoint = None
        if sock is not None:
            sock.close()
            logger.debug("drive session closed")

    def _setup_error(self, kind: SetupErrorKind, message: str, errno: Optional[int] = None) -> SetupError:
        error = SetupError(kind, message, errno)
        self.stats.setup_errors += 1
        self.last_error = error
        self.status.report(message)
        return error

    def _send_error(self, kind: SendErrorKind, message: str, errno: Optional[int] = None) -> None:
        self.stats.send_errors += 1
        self.last_error = SendError(kind, message, errno)
        self.status.report(message)
