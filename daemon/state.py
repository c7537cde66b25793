from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
from pathlib import Path

from daemon.persist import PersistedState, save_state
from portal.models import Credentials


class SharedState:
    """The one place where LoginLoop, ControlServer and ConfigWatcher meet.

    The document is an immutable ``PersistedState`` swapped wholesale by
    writers under ``_lock``; readers just take the current reference, so any
    number of them proceed while a writer is in progress. Writers never hold
    the lock across network I/O.
    """

    def __init__(self, document: PersistedState, config_path: str | Path):
        self.logger = logging.getLogger("daemon.state")
        self.config_path = Path(config_path)
        self._document = document
        self._dirty = False
        self._lock = asyncio.Lock()
        self._stopped = asyncio.Event()

    def snapshot(self) -> PersistedState:
        return self._document

    def credentials(self) -> Credentials | None:
        return self._document.credentials

    def cached_urls(self) -> tuple[str | None, str | None]:
        doc = self._document
        return doc.last_login_url, doc.logout_url_base

    @property
    def dirty(self) -> bool:
        return self._dirty

    async def set_credentials(self, credentials: Credentials) -> None:
        async with self._lock:
            self._document = dataclasses.replace(self._document, credentials=credentials)
            self._dirty = True

    async def update_cached_urls(self, last_login_url: str | None, logout_url_base: str | None) -> None:
        async with self._lock:
            self._document = dataclasses.replace(
                self._document,
                last_login_url=last_login_url,
                logout_url_base=logout_url_base,
            )
            self._dirty = True

    async def replace(self, document: PersistedState) -> bool:
        """Swap in a document read from disk. Returns False when nothing changed."""
        async with self._lock:
            if document == self._document:
                return False
            self._document = document
            # Mirrors the file already, nothing to write back.
            self._dirty = False
            return True

    async def persist(self) -> None:
        async with self._lock:
            await asyncio.to_thread(save_state, self.config_path, self._document)
            self._dirty = False

    def is_running(self) -> bool:
        return not self._stopped.is_set()

    @property
    def stop_event(self) -> asyncio.Event:
        return self._stopped

    def stop(self) -> bool:
        """Flip running to False. Only the first call has any effect."""
        if self._stopped.is_set():
            return False
        self._stopped.set()
        self.logger.info("stop requested")
        return True

    async def wait_stopped(self) -> None:
        await self._stopped.wait()

    async def sleep(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; wakes early on stop. Returns is_running()."""
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stopped.wait(), timeout=seconds)
        return self.is_running()
