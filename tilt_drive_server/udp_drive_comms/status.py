from __future__ import annotations

import logging
from typing import Optional, Protocol


logger = logging.getLogger(__name__)


class StatusSink(Protocol):
    """Where setup and send failures are reported for display."""

    def report(self, message: str) -> None:
        ...


class LoggingStatus:
    def __init__(self, log: logging.Logger = logger) -> None:
        self._log = log
        self.last: Optional[str] = None
        self.count = 0

    def report(self, message: str) -> None:
        self.last = message
        self.count += 1
        self._log.warning(message)
