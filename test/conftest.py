import threading

import pytest

from tilt_drive_server.udp_drive_comms.session import SessionStats


class RecordingStatus:
    def __init__(self) -> None:
        self.messages = []

    @property
    def last(self):
        return self.messages[-1] if self.messages else None

    def report(self, message: str) -> None:
        self.messages.append(message)


class FakeSocket:
    def __init__(self, bind_error=None) -> None:
        self.bind_error = bind_error
        self.bound = None
        self.blocking = True
        self.closed = False
        self.sent = []
        self.send_result = None
        self.send_error = None

    def setblocking(self, flag: bool) -> None:
        self.blocking = flag

    def bind(self, address) -> None:
        if self.bind_error is not None:
            raise self.bind_error
        self.bound = address

    def getsockname(self):
        return self.bound

    def sendto(self, data: bytes, address) -> int:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((bytes(data), address))
        return len(data) if self.send_result is None else self.send_result

    def close(self) -> None:
        self.closed = True


class SocketFactory:
    def __init__(self, **socket_kwargs) -> None:
        self.socket_kwargs = socket_kwargs
        self.created = []

    def __call__(self, *args):
        sock = FakeSocket(**self.socket_kwargs)
        self.created.append(sock)
        return sock


class FakeSession:
    def __init__(self, send_ok: bool = True) -> None:
        self.send_ok = send_ok
        self.is_open = True
        self.endpoint = ("10.0.0.7", 9003)
        self.status = RecordingStatus()
        self.frames = []
        self.stats = SessionStats()
        self.open_error = None
        self.open_hook = None
        self.opens = 0
        self.closes = 0
        self._lock = threading.Lock()

    def open(self) -> None:
        self.opens += 1
        if self.open_hook is not None:
            self.open_hook()
        if self.open_error is not None:
            self.is_open = False
            raise self.open_error
        self.is_open = True

    def close(self) -> None:
        self.closes += 1
        self.is_open = False

    def send(self, frame: bytes) -> bool:
        with self._lock:
            self.frames.append(bytes(frame))
        return self.send_ok


@pytest.fixture
def status() -> RecordingStatus:
    return RecordingStatus()


@pytest.fixture
def socket_factory() -> SocketFactory:
    return SocketFactory()


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def make_socket_factory():
    return SocketFactory


@pytest.fixture
def make_fake_session():
    return FakeSession
