import errno
import socket

import pytest

from tilt_drive_server.udp_drive_comms.protocol import STOP_FRAME
from tilt_drive_server.udp_drive_comms.session import (
    DriveSession,
    SendErrorKind,
    SetupError,
    SetupErrorKind,
)


def test_open_binds_wildcard_and_parses_destination(socket_factory, status) -> None:
    session = DriveSession("10.0.0.7", 9003, status=status, socket_factory=socket_factory)
    session.open()

    sock = socket_factory.created[0]
    assert sock.bound == ("0.0.0.0", 9003)
    assert sock.blocking is False
    assert session.endpoint == ("10.0.0.7", 9003)
    assert session.is_open is True
    assert status.messages == []


def test_send_uses_sendto_with_fixed_destination(socket_factory, status) -> None:
    session = DriveSession("10.0.0.7", 9003, local_port=4000, status=status, socket_factory=socket_factory)
    session.open()

    assert session.send(STOP_FRAME) is True

    sock = socket_factory.created[0]
    assert sock.bound == ("0.0.0.0", 4000)
    assert sock.sent == [(STOP_FRAME, ("10.0.0.7", 9003))]
    assert session.stats.frames_sent == 1


def test_invalid_host_disables_session(socket_factory, status) -> None:
    session = DriveSession("not-an-address", 9003, status=status, socket_factory=socket_factory)

    with pytest.raises(SetupError) as info:
        session.open()

    assert info.value.kind is SetupErrorKind.ADDRESS_RESOLUTION
    assert socket_factory.created[0].closed is True
    assert session.is_open is False
    assert session.send(STOP_FRAME) is False
    assert socket_factory.created[0].sent == []
    assert len(status.messages) == 1
    assert "not-an-address" in status.messages[0]


def test_bind_failure_reports_socket_error(make_socket_factory, status) -> None:
    factory = make_socket_factory(bind_error=OSError(errno.EADDRINUSE, "Address already in use"))
    session = DriveSession("10.0.0.7", 9003, status=status, socket_factory=factory)

    with pytest.raises(SetupError) as info:
        session.open()

    assert info.value.kind is SetupErrorKind.SOCKET
    assert info.value.errno == errno.EADDRINUSE
    assert factory.created[0].closed is True
    assert session.send(STOP_FRAME) is False
    assert len(status.messages) == 1


def test_socket_creation_failure(status) -> None:
    def factory(*args):
        raise OSError(errno.EMFILE, "Too many open files")

    session = DriveSession("10.0.0.7", 9003, status=status, socket_factory=factory)

    with pytest.raises(SetupError) as info:
        session.open()

    assert info.value.kind is SetupErrorKind.SOCKET
    assert info.value.errno == errno.EMFILE
    assert session.send(STOP_FRAME) is False
    assert len(status.messages) == 1


def test_short_write_reports_once_and_does_not_raise(socket_factory, status) -> None:
    session = DriveSession("10.0.0.7", 9003, status=status, socket_factory=socket_factory)
    session.open()
    socket_factory.created[0].send_result = 3

    assert session.send(STOP_FRAME) is False

    assert len(status.messages) == 1
    assert "short write" in status.messages[0]
    assert session.last_error.kind is SendErrorKind.SHORT_WRITE
    assert session.stats.send_errors == 1

    socket_factory.created[0].send_result = None
    assert session.send(STOP_FRAME) is True
    assert len(status.messages) == 1


def test_io_error_is_reported_and_swallowed(socket_factory, status) -> None:
    session = DriveSession("10.0.0.7", 9003, status=status, socket_factory=socket_factory)
    session.open()
    socket_factory.created[0].send_error = BlockingIOError(errno.EAGAIN, "Resource temporarily unavailable")

    assert session.send(STOP_FRAME) is False

    assert session.last_error.kind is SendErrorKind.IO
    assert session.last_error.errno == errno.EAGAIN
    assert len(status.messages) == 1


def test_reopen_releases_previous_socket(socket_factory, status) -> None:
    session = DriveSession("10.0.0.7", 9003, status=status, socket_factory=socket_factory)
    session.open()
    session.open()

    assert len(socket_factory.created) == 2
    assert socket_factory.created[0].closed is True
    assert socket_factory.created[1].closed is False


def test_close_is_idempotent(socket_factory, status) -> None:
    never_opened = DriveSession("10.0.0.7", 9003, status=status, socket_factory=socket_factory)
    never_opened.close()
    never_opened.close()

    with DriveSession("10.0.0.7", 9003, status=status, socket_factory=socket_factory) as session:
        assert session.is_open is True
    session.close()

    assert socket_factory.created[0].closed is True
    assert session.send(STOP_FRAME) is False


def test_frame_reaches_loopback_receiver(status) -> None:
    receiver = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    receiver.bind(("127.0.0.1", 0))
    receiver.settimeout(2.0)
    port = receiver.getsockname()[1]

    session = DriveSession("127.0.0.1", port, local_port=0, status=status)
    try:
        session.open()
        assert session.send(b"\x01\x01\x40\x05\x10") is True
        data, _ = receiver.recvfrom(64)
    finally:
        session.close()
        receiver.close()

    assert data == b"\x01\x01\x40\x05\x10"
    assert status.messages == []


def test_port_range_is_checked(status) -> None:
    with pytest.raises(ValueError, match="remote_port"):
        DriveSession("10.0.0.7", 0, status=status)
    with pytest.raises(ValueError, match="local_port"):
        DriveSession("10.0.0.7", 9003, local_port=70000, status=status)


def test_local_address_reports_bound_port(status) -> None:
    session = DriveSession("127.0.0.1", 9003, local_port=0, status=status)
    assert session.local_address is None

    session.open()
    try:
        host, port = session.local_address
    finally:
        session.close()

    assert host == "0.0.0.0"
    assert port != 0
    assert session.local_address is None


def test_setup_errors_are_counted(socket_factory, status) -> None:
    session = DriveSession("not-an-address", 9003, status=status, socket_factory=socket_factory)

    for _ in range(2):
        with pytest.raises(SetupError):
            session.open()

    assert session.stats.setup_errors == 2
    assert session.stats.send_errors == 0
