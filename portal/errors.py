from __future__ import annotations

from typing import Any

PAYLOAD_LOG_LIMIT = 500


class PortalError(Exception):
    pass


class TransportError(PortalError):
    """DNS, connect or timeout failure. Always retryable."""


class MalformedResponseError(PortalError):
    """The portal answered, but not in the shape we scrape for."""

    def __init__(self, what: str, payload: Any = None):
        super().__init__(f"invalid response: {what}")
        self.what = what
        self.payload = payload

    def payload_excerpt(self) -> str:
        text = self.payload if isinstance(self.payload, str) else repr(self.payload)
        if len(text) > PAYLOAD_LOG_LIMIT:
            return text[:PAYLOAD_LOG_LIMIT] + "..."
        return text


class AuthenticationFailedError(PortalError):
    def __init__(self, msg: str = ""):
        super().__init__(f"authentication failed: {msg}" if msg else "authentication failed")
        self.msg = msg


class LogoutError(PortalError):
    def __init__(self, payload: Any = None):
        super().__init__(f"logout rejected: {payload!r}")
        self.payload = payload


class AlreadyAuthenticated(Exception):
    """Raised by the external probe when the internet is already reachable.

    Not a failure: callers treat it as "nothing to do".
    """


def describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__
