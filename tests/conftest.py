from __future__ import annotations

from typing import Any

import pytest
from aiohttp import web

from common.config import load_settings

ENTRY_QUERY = "wlanuserip=10.8.0.2&nasip=10.1.1.1&ssid=htu%20wifi"


class FakePortal:
    """In-process stand-in for the campus gateway, portal and auth API."""

    def __init__(self) -> None:
        self.gateway_body: str | None = None
        self.entry_body: str | None = None
        self.script_body: str | None = None
        self.primary_response: Any = {"code": 1, "msg": "ok"}
        self.quick_response: Any = {"code": "0", "message": "ok"}
        self.logout_response: Any = {"result": 1}
        self.primary_forms: list[dict[str, str]] = []
        self.quick_queries: list[list[tuple[str, str]]] = []
        self.logout_calls = 0
        self.app = web.Application()
        self.app.router.add_get("/gateway", self.gateway)
        self.app.router.add_get("/eportal/index.jsp", self.entry)
        self.app.router.add_get("/eportal/js/common.js", self.script)
        self.app.router.add_post("/api/auth", self.primary)
        self.app.router.add_get("/quickauth.do", self.quick)
        self.app.router.add_post("/loginOut", self.logout)

    @staticmethod
    def _origin(request: web.Request) -> str:
        return f"http://{request.host}"

    @staticmethod
    def _json_or_text(payload: Any) -> web.Response:
        if isinstance(payload, str):
            return web.Response(text=payload, content_type="text/html")
        return web.json_response(payload)

    async def gateway(self, request: web.Request) -> web.Response:
        if self.gateway_body is not None:
            return web.Response(text=self.gateway_body, content_type="text/html")
        url = f"{self._origin(request)}/eportal/index.jsp?{ENTRY_QUERY}"
        return web.Response(text=f'<script>location.replace("{url}")</script>\n', content_type="text/html")

    async def entry(self, _: web.Request) -> web.Response:
        body = self.entry_body
        if body is None:
            body = (
                "<html><head>\n"
                '<script type="text/javascript" src="/eportal/js/jquery.min.js"></script>\n'
                '<script type="text/javascript" src="/eportal/js/common.js?v=20240101"></script>\n'
                "</head><body></body></html>"
            )
        return web.Response(text=body, content_type="text/html")

    async def script(self, request: web.Request) -> web.Response:
        body = self.script_body
        if body is None:
            body = (
                "var portalVersion = 3;\n"
                f"var authApiUrl = '{self._origin(request)}/api/auth';\n"
                'var authSchoolCodes = "10467";\n'
            )
        return web.Response(text=body, content_type="application/javascript")

    async def primary(self, request: web.Request) -> web.Response:
        form = await request.post()
        self.primary_forms.append({k: str(v) for k, v in form.items()})
        return self._json_or_text(self.primary_response)

    async def quick(self, request: web.Request) -> web.Response:
        self.quick_queries.append(list(request.query.items()))
        return self._json_or_text(self.quick_response)

    async def logout(self, _: web.Request) -> web.Response:
        self.logout_calls += 1
        return self._json_or_text(self.logout_response)


@pytest.fixture
def fake_portal() -> FakePortal:
    return FakePortal()


@pytest.fixture
def settings(tmp_path) -> dict[str, Any]:
    return load_settings(
        None,
        {
            "config_path": str(tmp_path / "htu-net" / "config.json"),
            "captive_marker": 'location.replace("http://127.0.0.1',
            "poll_interval": 0.05,
            "failure_backoff": 0.05,
            "error_backoff": 0.05,
            "watch_interval": 0.05,
            "probe_timeout": 1.0,
            "http_timeout": 5.0,
            "control_port": 11451,
        },
    )
