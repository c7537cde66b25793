"""Scraping helpers for the portal's redirect page and its common.js.

Everything here is pure: text in, typed value or ``MalformedResponseError``
out. Markup drift on the portal side should only ever require changes here.
"""

from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlsplit

from portal.errors import MalformedResponseError
from portal.models import AuthEndpoints, PortalEntry

SCRIPT_SRC_PATTERN = re.compile(
    r"""<script\b[^>]*?\bsrc\s*=\s*"([^"]*?js/common\.js)[^"]*"[^>]*>""",
    re.IGNORECASE | re.DOTALL,
)


def origin_root(url: str) -> str:
    """Return scheme://host[:port] of ``url``, i.e. everything before the path."""
    marker = url.find("://")
    if marker < 0:
        raise MalformedResponseError("url has no scheme", url)
    start = marker + 3
    end = len(url)
    for sep in ("/", "?", "#"):
        idx = url.find(sep, start)
        if 0 <= idx < end:
            end = idx
    if end == start:
        raise MalformedResponseError("url has no host", url)
    return url[:end]


def strip_port(root: str) -> str:
    scheme, sep, host = root.partition("://")
    if host.startswith("["):
        # IPv6 literal: only a port after the closing bracket counts.
        close = host.find("]")
        return f"{scheme}{sep}{host[:close + 1]}" if close >= 0 else root
    return f"{scheme}{sep}{host.split(':', 1)[0]}"


def parse_entry_page(html: str) -> PortalEntry:
    start = html.find('"')
    if start < 0:
        raise MalformedResponseError("gateway page has no quoted redirect url", html)
    end = html.find('"', start + 1)
    if end < 0:
        raise MalformedResponseError("gateway page redirect url is not terminated", html)
    url = html[start + 1:end]
    if "?" not in url:
        raise MalformedResponseError("redirect url has no query string", html)
    root = origin_root(url)
    query = urlsplit(url).query
    return PortalEntry(
        entry_url=url,
        origin_root=root,
        prefilled_args=parse_qsl(query, keep_blank_values=True),
    )


def find_script_src(html: str) -> str:
    match = SCRIPT_SRC_PATTERN.search(html)
    if not match:
        raise MalformedResponseError("entry page does not reference js/common.js", html)
    return match.group(1)


def get_variable_value(js_code: str, name: str) -> str | None:
    pattern = re.compile(rf"\b{re.escape(name)}\s*=(?!=)([^;]*);")
    match = pattern.search(js_code)
    if not match:
        return None
    value = match.group(1).strip()
    if len(value) >= 2 and value[0] in "'\"" and value[-1] == value[0]:
        return value[1:-1]
    return None


def parse_auth_endpoints(js_code: str) -> AuthEndpoints:
    auth_url = get_variable_value(js_code, "authApiUrl")
    if auth_url is None:
        raise MalformedResponseError("authApiUrl not found in script", js_code)
    school_codes = get_variable_value(js_code, "authSchoolCodes")
    if school_codes is None:
        raise MalformedResponseError("authSchoolCodes not found in script", js_code)
    return AuthEndpoints(
        auth_submit_url=auth_url,
        logout_root_host=strip_port(origin_root(auth_url)),
        campus_code=school_codes,
    )
