"""Captive-portal resolution and two-phase authentication.

Sequence: external probe -> gateway redirect page -> entry page ->
common.js -> primary auth (POST) -> quick auth (GET). Each step either
returns the input for the next one or raises a ``PortalError`` subclass;
nothing retries here.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any
from urllib.parse import urlencode

import aiohttp
from yarl import URL

from portal.errors import (
    AlreadyAuthenticated,
    AuthenticationFailedError,
    MalformedResponseError,
    TransportError,
    describe,
)
from portal.models import AuthEndpoints, Credentials, LoginResult, PortalEntry
from portal.parse import find_script_src, parse_auth_endpoints, parse_entry_page
from portal.probe import probe_external

logger = logging.getLogger("portal.auth")

DEFAULT_GATEWAY_URL = "http://192.168.0.1"


async def _fetch_text(session: aiohttp.ClientSession, url: str | URL) -> str:
    try:
        async with session.get(url) as resp:
            return await resp.text(errors="replace")
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        raise TransportError(f"GET {url} failed: {describe(exc)}") from exc


def _decode_json_object(text: str) -> dict[str, Any]:
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise MalformedResponseError("response is not JSON", text) from exc
    if not isinstance(data, dict):
        raise MalformedResponseError("response is not a JSON object", text)
    return data


async def fetch_entry(
    session: aiohttp.ClientSession,
    gateway_url: str = DEFAULT_GATEWAY_URL,
    probe: tuple[str, int, float] | None = None,
) -> PortalEntry:
    if probe is not None:
        host, port, timeout = probe
        if await probe_external(host, port, timeout):
            raise AlreadyAuthenticated(f"{host}:{port} is reachable")
    html = await _fetch_text(session, gateway_url)
    entry = parse_entry_page(html)
    logger.debug("portal entry url=%s root=%s", entry.entry_url, entry.origin_root)
    return entry


async def fetch_endpoints(session: aiohttp.ClientSession, entry: PortalEntry) -> AuthEndpoints:
    html = await _fetch_text(session, entry.entry_url)
    script_src = find_script_src(html)
    logger.debug("portal script src=%s", script_src)
    js_code = await _fetch_text(session, entry.origin_root + script_src)
    return parse_auth_endpoints(js_code)


async def submit_primary(
    session: aiohttp.ClientSession,
    endpoints: AuthEndpoints,
    credentials: Credentials,
) -> None:
    form = {
        "campusCode": endpoints.campus_code,
        "username": credentials.id,
        "password": credentials.password,
        "operatorSuffix": credentials.carrier.token,
    }
    try:
        async with session.post(endpoints.auth_submit_url, data=form) as resp:
            text = await resp.text(errors="replace")
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        raise TransportError(f"primary auth failed: {describe(exc)}") from exc
    data = _decode_json_object(text)
    if "code" not in data:
        raise MalformedResponseError("primary auth response has no code", data)
    code = data["code"]
    if isinstance(code, bool) or not isinstance(code, int) or code != 1:
        raise AuthenticationFailedError(str(data.get("msg") or ""))


def quick_auth_url(entry: PortalEntry, credentials: Credentials) -> str:
    pairs = list(entry.prefilled_args)
    pairs.append(("userid", credentials.login_id))
    pairs.append(("passwd", credentials.password))
    return entry.origin_root + "/quickauth.do?" + urlencode(pairs)


async def submit_quick(
    session: aiohttp.ClientSession,
    entry: PortalEntry,
    credentials: Credentials,
) -> None:
    # Already form-encoded; keep yarl from re-quoting it.
    text = await _fetch_text(session, URL(quick_auth_url(entry, credentials), encoded=True))
    data = _decode_json_object(text)
    if "code" not in data:
        raise MalformedResponseError("quick auth response has no code", data)
    if data["code"] != "0":
        raise AuthenticationFailedError(str(data.get("message") or ""))


async def login(
    session: aiohttp.ClientSession,
    credentials: Credentials,
    gateway_url: str = DEFAULT_GATEWAY_URL,
    probe: tuple[str, int, float] | None = None,
) -> LoginResult:
    entry = await fetch_entry(session, gateway_url, probe=probe)
    endpoints = await fetch_endpoints(session, entry)
    await submit_primary(session, endpoints, credentials)
    await submit_quick(session, entry, credentials)
    logger.info("portal login ok user=%s", credentials.id)
    return LoginResult(entry=entry, endpoints=endpoints)
