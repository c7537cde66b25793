from __future__ import annotations

import asyncio
import contextlib
import logging

import aiohttp

logger = logging.getLogger("portal.probe")


async def probe_external(host: str, port: int = 80, timeout: float = 2.0) -> bool:
    """Open a raw TCP connection and read one byte of an HTTP answer.

    Expected to fail (or time out) while the captive portal intercepts traffic.
    """
    writer: asyncio.StreamWriter | None = None
    try:
        reader, writer = await asyncio.wait_for(asyncio.open_connection(host=host, port=port), timeout=timeout)
        writer.write(b"GET / HTTP/1.0\r\n\r\n")
        await asyncio.wait_for(writer.drain(), timeout=timeout)
        await asyncio.wait_for(reader.readexactly(1), timeout=timeout)
        return True
    except (OSError, asyncio.TimeoutError, asyncio.IncompleteReadError) as exc:
        logger.debug("external probe %s:%s failed: %s", host, port, exc)
        return False
    finally:
        if writer is not None:
            writer.close()
            with contextlib.suppress(Exception):
                await writer.wait_closed()


async def is_captive(
    session: aiohttp.ClientSession,
    gateway_url: str,
    marker: str,
    timeout: float = 2.0,
) -> bool:
    try:
        async with session.get(gateway_url, timeout=aiohttp.ClientTimeout(total=timeout)) as resp:
            body = await resp.text(errors="replace")
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        logger.debug("gateway %s unreachable: %s", gateway_url, exc)
        return False
    return marker in body
