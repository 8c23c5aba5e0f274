from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional

from .controller import DriveController, DriveState, MotorCommand
from .mixing import DEFAULT_MIX_LAW, get_mixer
from .protocol import describe_frame, encode_motor_frame
from .session import DEFAULT_PORT, DEFAULT_REMOTE_HOST, DriveSession, SetupError
from .status import StatusSink


logger = logging.getLogger(__name__)

DEFAULT_TX_HZ = 10.0


@dataclass(slots=True)
class DriveStats:
    tx_frames_ok: int = 0
    tx_errors: int = 0
    tx_skipped: int = 0
    stop_frames: int = 0


class DriveClient:
    def __init__(
        self,
        remote_host: str = DEFAULT_REMOTE_HOST,
        remote_port: int = DEFAULT_PORT,
        local_port: Optional[int] = None,
        tx_hz: float = DEFAULT_TX_HZ,
        mix_law: str = DEFAULT_MIX_LAW,
        status: Optional[StatusSink] = None,
        session: Optional[DriveSession] = None,
    ) -> None:
        if tx_hz <= 0:
            raise ValueError("tx_hz must be > 0")

        self.tx_hz = float(tx_hz)
        self.tx_period_s = 1.0 / self.tx_hz
        self.mix_law = mix_law
        self._mixer = get_mixer(mix_law)

        if session is None:
            session = DriveSession(
                remote_host=remote_host,
                remote_port=remote_port,
                local_port=local_port,
                status=status,
            )
        self.session = session

        # guards the controller and every write to the socket
        self._lock = threading.Lock()
        self._controller = DriveController()
        self._last_sample: Optional[tuple[float, float]] = None

        self._stats = DriveStats()

        self._stop_event = threading.Event()
        self._tx_thread: Optional[threading.Thread] = None

        self._open = False
        self._log_enabled = False

    def open(self) -> None:
        if self._open:
            return

        try:
            self.session.open()
        except SetupError as exc:
            # already reported, sends stay no-ops until the next open
            logger.debug("drive session disabled: %s", exc)

        self.stop()

        self._stop_event.clear()
        self._tx_thread = threading.Thread(target=self._tx_loop, name="udp-drive-tx", daemon=True)
        self._tx_thread.start()
        self._open = True

    def close(self) -> None:
        if not self._open:
            return

        self.stop()
        self._stop_event.set()
        if self._tx_thread is not None:
            self._tx_thread.join(timeout=1.5)
            self._tx_thread = None

        with self._lock:
            self.session.close()

        self._open = False

    def reopen(self) -> None:
        with self._lock:
            try:
                self.session.open()
            except SetupError as exc:
                logger.debug("drive session disabled: %s", exc)

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._controller.is_running

    @property
    def state(self) -> DriveState:
        with self._lock:
            return self._controller.state

    def start(self) -> None:
        with self._lock:
            self._controller.start()
        logger.info("drive running")

    def stop(self) -> None:
        with self._lock:
            command = self._controller.stop()
            if self._send_locked(command):
                self._stats.stop_frames += 1
        logger.info("drive stopped")

    def on_sample(self, x: float, y: float) -> MotorCommand:
        command = self._mixer(x, y)
        with self._lock:
            self._last_sample = (float(x), float(y))
            self._controller.motor = command
        return command

    def set_motor(self, left: int, right: int) -> MotorCommand:
        with self._lock:
            return self._controller.set_motor(int(left), int(right))

    def tick(self) -> bool:
        with self._lock:
            if not self._controller.is_running:
                self._stats.tx_skipped += 1
                return False
            return self._send_locked(self._controller.motor)

    def set_log_enabled(self, enabled: bool) -> None:
        self._log_enabled = bool(enabled)

    def get_motor_command(self) -> MotorCommand:
        with self._lock:
            motor = self._controller.motor
            return MotorCommand(motor.left, motor.right)

    def get_command_state(self) -> dict:
        with self._lock:
            state = self._controller.to_dict()
            state["sample"] = list(self._last_sample) if self._last_sample is not None else None
            state["mix_law"] = self.mix_law
            return state

    def get_stats(self) -> DriveStats:
        with self._lock:
            return DriveStats(
                tx_frames_ok=self._stats.tx_frames_ok,
                tx_errors=self._stats.tx_errors,
                tx_skipped=self._stats.tx_skipped,
                stop_frames=self._stats.stop_frames,
            )

    def _send_locked(self, command: MotorCommand) -> bool:
        if not self.session.is_open:
            self._stats.tx_skipped += 1
            return False

        frame = encode_motor_frame(command)
        if self.session.send(frame):
            self._stats.tx_frames_ok += 1
            if self._log_enabled:
                logger.info("[TX] %s (%s)", frame.hex(" "), describe_frame(frame))
            return True

        self._stats.tx_errors += 1
        return False

    def _tx_loop(self) -> None:
        next_tick = time.monotonic()
        while not self._stop_event.is_set():
            next_tick += self.tx_period_s
            wait_s = max(0.0, next_tick - time.monotonic())
            if self._stop_event.wait(wait_s):
                break
            self.tick()
