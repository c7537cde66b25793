from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import aiohttp
from aiohttp import web

from daemon.persist import PersistenceError
from daemon.state import SharedState
from portal.errors import AlreadyAuthenticated, PortalError
from portal.logout import DEFAULT_LOGOUT_BASE, logout
from portal.models import Credentials, LoginResult

LoginTrigger = Callable[[aiohttp.ClientSession, Credentials, bool], Awaitable[LoginResult]]


def _error(msg: str, status: int = 400) -> web.Response:
    return web.json_response({"ok": False, "msg": msg}, status=status)


class ControlServer:
    """Loopback HTTP control plane used by the terminal front end."""

    def __init__(
        self,
        state: SharedState,
        settings: dict[str, Any],
        on_login: LoginTrigger,
        get_status: Callable[[], dict[str, Any]] | None = None,
    ):
        self.logger = logging.getLogger("daemon.control")
        self.state = state
        self.settings = settings
        self.on_login = on_login
        self.get_status = get_status
        self.app = web.Application(middlewares=[self._error_envelope])
        self.runner: web.AppRunner | None = None
        self.site: web.TCPSite | None = None
        self.session: aiohttp.ClientSession | None = None
        self._setup_routes()

    def _setup_routes(self) -> None:
        self.app.router.add_get("/", self.index)
        self.app.router.add_get("/user", self.api_user_get)
        self.app.router.add_post("/user", self.api_user_set)
        self.app.router.add_get("/login", self.api_login)
        self.app.router.add_get("/logout", self.api_logout)
        self.app.router.add_get("/exit", self.api_exit)
        self.app.router.add_get("/status", self.api_status)
        self.app.on_cleanup.append(self._close_session)

    @web.middleware
    async def _error_envelope(self, request: web.Request, handler: Callable[[web.Request], Awaitable[web.StreamResponse]]):
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except Exception:
            self.logger.exception("control handler failed path=%s", request.path)
            return _error("internal error", status=500)

    def _portal_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=float(self.settings["http_timeout"]))
            self.session = aiohttp.ClientSession(timeout=timeout)
        return self.session

    async def _close_session(self, _: web.Application) -> None:
        if self.session is not None:
            await self.session.close()
            self.session = None

    async def index(self, _: web.Request) -> web.Response:
        return web.Response(text="htu-net-login daemon is running")

    async def api_user_get(self, _: web.Request) -> web.Response:
        credentials = self.state.credentials()
        return web.json_response(credentials.to_dict() if credentials else {})

    async def api_user_set(self, request: web.Request) -> web.Response:
        try:
            data = await request.json()
        except ValueError:
            return _error("request body is not valid JSON")
        try:
            credentials = Credentials.from_dict(data)
        except ValueError as exc:
            return _error(str(exc))
        await self.state.set_credentials(credentials)
        try:
            await self.state.persist()
        except PersistenceError as exc:
            self.logger.error("saving credentials failed: %s", exc)
            return _error("credentials updated but could not be saved")
        self.logger.info("credentials updated user=%s carrier=%s", credentials.id, credentials.carrier.value)
        return web.json_response({"ok": True, "msg": "success"})

    async def api_login(self, _: web.Request) -> web.Response:
        credentials = self.state.credentials()
        if credentials is None:
            return _error("no credentials configured")
        try:
            result = await self.on_login(self._portal_session(), credentials, True)
        except AlreadyAuthenticated:
            return web.json_response({"ok": True, "msg": "already authenticated"})
        except PortalError as exc:
            self.logger.warning("manual login failed: %s", exc)
            return _error(str(exc))
        return web.json_response({"ok": True, "msg": "success", "lastLoginUrl": result.entry.entry_url})

    async def api_logout(self, _: web.Request) -> web.Response:
        _, logout_base = self.state.cached_urls()
        base = logout_base or str(self.settings.get("logout_default_base") or DEFAULT_LOGOUT_BASE)
        try:
            await logout(self._portal_session(), base)
        except PortalError as exc:
            self.logger.warning("logout failed base=%s: %s", base, exc)
            return _error(str(exc))
        self.logger.info("logged out base=%s", base)
        return web.json_response({"ok": True, "msg": "success"})

    async def api_exit(self, _: web.Request) -> web.Response:
        self.state.stop()
        return web.json_response({"ok": True, "msg": "stopping"})

    async def api_status(self, _: web.Request) -> web.Response:
        last_login_url, logout_base = self.state.cached_urls()
        payload: dict[str, Any] = {
            "ok": True,
            "running": self.state.is_running(),
            "lastLoginUrl": last_login_url,
            "logoutUrlBase": logout_base,
        }
        if self.get_status:
            payload.update(self.get_status())
        return web.json_response(payload)

    async def start(self) -> None:
        bind = str(self.settings.get("control_bind", "127.0.0.1"))
        port = int(self.settings.get("control_port", 11451))
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        self.site = web.TCPSite(self.runner, bind, port)
        await self.site.start()
        self.logger.info("control server listening on http://%s:%s", bind, port)

    async def stop(self) -> None:
        if self.runner:
            await self.runner.cleanup()
            self.runner = None
            self.site = None

    async def run(self) -> None:
        await self.start()
        try:
            await self.state.wait_stopped()
            # Let the /exit response reach the client before the socket closes.
            await asyncio.sleep(0.1)
        finally:
            await self.stop()
        self.logger.info("control server exit")
