from __future__ import annotations

import logging
import time
from typing import Any

import aiohttp

from daemon.notify import Notifier
from daemon.persist import PersistenceError
from daemon.state import SharedState
from portal import auth
from portal.errors import (
    AlreadyAuthenticated,
    AuthenticationFailedError,
    MalformedResponseError,
    PortalError,
)
from portal.models import Credentials, LoginResult
from portal.probe import is_captive


def new_portal_session(settings: dict[str, Any]) -> aiohttp.ClientSession:
    return aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=float(settings["http_timeout"])))


class LoginLoop:
    def __init__(
        self,
        state: SharedState,
        settings: dict[str, Any],
        notifier: Notifier | None = None,
    ):
        self.logger = logging.getLogger("daemon.login")
        self.state = state
        self.settings = settings
        self.notifier = notifier or Notifier()
        self.poll_interval = float(settings["poll_interval"])
        self.failure_backoff = float(settings["failure_backoff"])
        self.error_backoff = float(settings["error_backoff"])
        self._failing = False
        self._status: dict[str, Any] = {
            "captive": None,
            "last_result": None,
            "last_error": "",
            "last_attempt_at": 0.0,
        }

    def status(self) -> dict[str, Any]:
        return dict(self._status)

    def _probe_target(self) -> tuple[str, int, float]:
        return (
            str(self.settings["probe_host"]),
            int(self.settings["probe_port"]),
            float(self.settings["probe_timeout"]),
        )

    def _record(self, result: str, error: str = "") -> None:
        self._status["last_result"] = result
        self._status["last_error"] = error
        self._status["last_attempt_at"] = time.time()

    async def login_once(
        self,
        session: aiohttp.ClientSession,
        credentials: Credentials,
        probe: bool = False,
    ) -> LoginResult:
        """Run the portal protocol and store the resolved URLs.

        Shared by the loop and the control plane's manual trigger; the state
        lock is only taken after all network I/O is done.
        """
        result = await auth.login(
            session,
            credentials,
            gateway_url=str(self.settings["gateway_url"]),
            probe=self._probe_target() if probe else None,
        )
        await self.state.update_cached_urls(result.entry.entry_url, result.endpoints.logout_root_host)
        try:
            await self.state.persist()
        except PersistenceError as exc:
            self.logger.error("saving login result failed: %s", exc)
        self._failing = False
        self._record("success")
        return result

    async def step(self, session: aiohttp.ClientSession) -> float:
        """One poll. Returns how long to sleep before the next one."""
        captive = await is_captive(
            session,
            str(self.settings["gateway_url"]),
            str(self.settings["captive_marker"]),
            timeout=float(self.settings["probe_timeout"]),
        )
        self._status["captive"] = captive
        if not captive:
            return self.poll_interval
        credentials = self.state.credentials()
        if credentials is None:
            return self.poll_interval

        try:
            await self.login_once(session, credentials)
        except AlreadyAuthenticated:
            self._record("already_authenticated")
            return self.poll_interval
        except AuthenticationFailedError as exc:
            self._record("auth_failed", exc.msg)
            if not self._failing:
                self.notifier.failure(exc.msg)
            self._failing = True
            self.logger.warning("portal rejected login user=%s msg=%s", credentials.id, exc.msg)
            return self.failure_backoff
        except MalformedResponseError as exc:
            self._record("error", str(exc))
            self.logger.warning("portal response malformed: %s payload=%s", exc, exc.payload_excerpt())
            return self.error_backoff
        except PortalError as exc:
            self._record("error", str(exc))
            self.logger.warning("portal login attempt failed: %s", exc)
            return self.error_backoff

        if self.settings.get("notify_success", True):
            self.notifier.success()
        return self.poll_interval

    async def run(self) -> None:
        self.logger.info("login loop started")
        async with new_portal_session(self.settings) as session:
            while self.state.is_running():
                delay = await self.step(session)
                if not await self.state.sleep(delay):
                    break
        self.logger.info("login loop exit")
