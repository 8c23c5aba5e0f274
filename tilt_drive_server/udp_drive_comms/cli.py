from __future__ import annotations

import argparse
import json
import logging
import threading
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .mixing import DEFAULT_MIX_LAW, MIX_LAWS
from .session import DEFAULT_PORT, DEFAULT_REMOTE_HOST
from .status import LoggingStatus
from .transport import DEFAULT_TX_HZ, DriveClient


HELP_TEXT = """Commands:
  help
  status
  start
  stop
  tilt <x> <y>
  motor <left> <right>
  reopen
  watch on|off
  log on|off
  quit
"""


class SessionLogger:
    def __init__(self, path: Optional[str]) -> None:
        self._path = Path(path).expanduser() if path else None
        self._file = None
        if self._path is not None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._file = self._path.open("a", encoding="utf-8")

    def write(self, event: str, command: str, state: Optional[dict], extra: Optional[dict] = None) -> None:
        if self._file is None:
            return
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": event,
            "command": command,
            "state": state,
            "extra": extra or {},
        }
        self._file.write(json.dumps(payload, ensure_ascii=True) + "\n")
        self._file.flush()

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None


def _parse_on_off(raw: str) -> bool:
    if raw == "on":
        return True
    if raw == "off":
        return False
    raise ValueError("expected 'on' or 'off'")


def _format_state(client: DriveClient) -> str:
    state = client.get_command_state()
    sample = state["sample"]
    sample_text = "N/A" if sample is None else f"x={sample[0]:.5f} y={sample[1]:.5f}"
    return (
        f"state={state['state']} "
        f"left={state['left']} right={state['right']} "
        f"sample: {sample_text} "
        f"law={state['mix_law']}"
    )


def _watch_loop(client: DriveClient, stop_event: threading.Event, enabled_ref: dict, period_s: float) -> None:
    while not stop_event.is_set():
        if enabled_ref.get("watch", False):
            print(_format_state(client))
        stop_event.wait(period_s)


def execute_command(client: DriveClient, raw: str, watch_state: dict) -> str:
    """Run one console command and return the text to print.

    Raises ValueError for malformed input.
    """
    parts = raw.split()
    cmd = parts[0].lower()

    if cmd == "help":
        return HELP_TEXT.rstrip("\n")

    if cmd == "status":
        stats = client.get_stats()
        session = client.session
        endpoint = "N/A" if session.endpoint is None else f"{session.endpoint[0]}:{session.endpoint[1]}"
        last_status = getattr(session.status, "last", None)
        return "\n".join(
            [
                _format_state(client),
                (
                    f"session: open={int(session.is_open)} dst={endpoint} "
                    f"setup_err={session.stats.setup_errors} send_err={session.stats.send_errors}"
                ),
                (
                    "stats: "
                    f"tx_ok={stats.tx_frames_ok} tx_err={stats.tx_errors} "
                    f"tx_skip={stats.tx_skipped} stops={stats.stop_frames}"
                ),
                f"last status: {last_status or 'N/A'}",
            ]
        )

    if cmd == "start":
        client.start()
        return "running"

    if cmd == "stop":
        client.stop()
        return "stopped"

    if cmd == "tilt":
        if len(parts) != 3:
            raise ValueError("usage: tilt <x> <y>")
        command = client.on_sample(float(parts[1]), float(parts[2]))
        return f"left={command.left} right={command.right}"

    if cmd == "motor":
        if len(parts) != 3:
            raise ValueError("usage: motor <left> <right>")
        command = client.set_motor(int(parts[1]), int(parts[2]))
        return f"left={command.left} right={command.right}"

    if cmd == "reopen":
        client.reopen()
        return f"session open={int(client.session.is_open)}"

    if cmd == "watch":
        if len(parts) != 2:
            raise ValueError("usage: watch on|off")
        watch_state["watch"] = _parse_on_off(parts[1].lower())
        return f"watch={'on' if watch_state['watch'] else 'off'}"

    if cmd == "log":
        if len(parts) != 2:
            raise ValueError("usage: log on|off")
        enabled = _parse_on_off(parts[1].lower())
        client.set_log_enabled(enabled)
        return f"log={'on' if enabled else 'off'}"

    raise ValueError("unknown command, try: help")


def run_cli(args: argparse.Namespace) -> int:
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s:     %(name)s - %(message)s",
    )

    client = DriveClient(
        remote_host=args.host,
        remote_port=args.port,
        local_port=args.local_port,
        tx_hz=args.tx_hz,
        mix_law=args.law,
        status=LoggingStatus(),
    )
    logger = SessionLogger(args.log_file)

    watch_state = {"watch": False}
    watch_stop = threading.Event()
    watch_thread = threading.Thread(
        target=_watch_loop,
        args=(client, watch_stop, watch_state, 1.0 / max(0.1, float(args.watch_hz))),
        daemon=True,
        name="udp-drive-watch",
    )

    try:
        client.open()
        watch_thread.start()
        print("UDP drive ready. Type 'help' for commands.")

        while True:
            try:
                raw = input("drive> ").strip()
            except EOFError:
                raw = "quit"

            if not raw:
                continue

            if raw.split()[0].lower() == "quit":
                print("exiting...")
                logger.write(event="command", command=raw, state=client.get_command_state())
                break

            try:
                print(execute_command(client, raw, watch_state))
            except ValueError as exc:
                print(f"error: {exc}")
                continue

            logger.write(
                event="command",
                command=raw,
                state=client.get_command_state(),
                extra={"stats": asdict(client.get_stats())},
            )

    except KeyboardInterrupt:
        print("\ninterrupted by user")

    finally:
        watch_stop.set()
        if watch_thread.is_alive():
            watch_thread.join(timeout=1.0)
        client.close()
        logger.close()

    return 0


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="UDP differential drive client")
    parser.add_argument("--host", default=DEFAULT_REMOTE_HOST, help=f"Drive unit IPv4 address (default: {DEFAULT_REMOTE_HOST})")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"Drive unit UDP port (default: {DEFAULT_PORT})")
    parser.add_argument(
        "--local-port",
        type=int,
        default=None,
        help="Local UDP port to bind (default: same as --port)",
    )
    parser.add_argument("--tx-hz", type=float, default=DEFAULT_TX_HZ, help=f"Frame resend rate (default: {DEFAULT_TX_HZ:g})")
    parser.add_argument("--law", choices=sorted(MIX_LAWS), default=DEFAULT_MIX_LAW, help="Tilt to motor mixing law")
    parser.add_argument(
        "--watch-hz",
        type=float,
        default=2.0,
        help="State print rate when watch=on (default: 2)",
    )
    parser.add_argument("--log-file", default=None, help="Optional JSONL session log path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser
