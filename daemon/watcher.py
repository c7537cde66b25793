from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from watchfiles import Change, awatch

from daemon.persist import PersistenceError, load_state
from daemon.state import SharedState


class ConfigWatcher:
    """Reloads SharedState when the config file is rewritten by someone else.

    Watches the file's parent directory and only reacts to added/modified
    events for the exact config path. Events are debounced by ``awatch`` so a
    burst of writes results in a single read of the finished file.
    """

    def __init__(self, state: SharedState, interval: float = 1.0, force_polling: bool | None = None):
        self.logger = logging.getLogger("daemon.watcher")
        self.state = state
        self.path = state.config_path
        self.interval = interval
        self.force_polling = force_polling

    def _is_config_write(self, change: Change, path: str) -> bool:
        return change != Change.deleted and Path(path).resolve() == self.path.resolve()

    async def reload(self) -> bool:
        """Returns True when the in-memory document was replaced."""
        if not self.path.exists():
            self.logger.info("config %s removed, keeping current state", self.path)
            return False
        try:
            document = await asyncio.to_thread(load_state, self.path)
        except PersistenceError as exc:
            self.logger.warning("config reload skipped, keeping current state: %s", exc)
            return False
        changed = await self.state.replace(document)
        if changed:
            self.logger.info("config reloaded from %s", self.path)
        return changed

    async def run(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.logger.info("watching %s", self.path)
        async for _ in awatch(
            self.path.parent,
            watch_filter=self._is_config_write,
            debounce=max(1, int(self.interval * 1000)),
            step=50,
            stop_event=self.state.stop_event,
            recursive=False,
            force_polling=self.force_polling,
        ):
            await self.reload()
        self.logger.info("config watcher exit")
