from __future__ import annotations

import asyncio
import json

import aiohttp

from portal.errors import LogoutError, MalformedResponseError, TransportError, describe

DEFAULT_LOGOUT_BASE = "http://10.101.2.205"


async def logout(session: aiohttp.ClientSession, base_url: str = DEFAULT_LOGOUT_BASE) -> None:
    url = base_url.rstrip("/") + "/loginOut"
    try:
        async with session.post(url) as resp:
            text = await resp.text(errors="replace")
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        raise TransportError(f"logout failed: {describe(exc)}") from exc
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise MalformedResponseError("logout response is not JSON", text) from exc
    result = data.get("result") if isinstance(data, dict) else None
    if isinstance(result, bool) or result != 1:
        raise LogoutError(data)
