from __future__ import annotations

import logging
from typing import Callable

NotifySink = Callable[[str, str], None]

SUCCESS_MESSAGE = "connected to campus network"


class Notifier:
    """User-facing messages. The default sink only logs; a desktop sink can be injected."""

    def __init__(self, sink: NotifySink | None = None):
        self.logger = logging.getLogger("daemon.notify")
        self.sink = sink

    def _emit(self, level: str, message: str) -> None:
        if self.sink is not None:
            try:
                self.sink(level, message)
            except Exception as exc:
                self.logger.warning("notify sink failed: %s", exc)
            return
        self.logger.log(logging.WARNING if level == "error" else logging.INFO, "%s", message)

    def success(self, message: str = SUCCESS_MESSAGE) -> None:
        self._emit("info", message)

    def failure(self, message: str) -> None:
        self._emit("error", f"login failed: {message}" if message else "login failed")
