import asyncio
import socket

import aiohttp
import pytest
from aiohttp import test_utils

from portal import auth
from portal.errors import (
    AlreadyAuthenticated,
    AuthenticationFailedError,
    LogoutError,
    MalformedResponseError,
    TransportError,
)
from portal.logout import logout
from portal.models import Carrier, Credentials
from portal.probe import is_captive, probe_external

CREDS = Credentials(id="2021001", password="p@ss word", carrier=Carrier.MOBILE)


def _closed_port() -> int:
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def run_with_portal(fake_portal, scenario):
    async def main():
        async with test_utils.TestServer(fake_portal.app) as server:
            async with aiohttp.ClientSession() as session:
                return await scenario(server, session)

    return asyncio.run(main())


def test_full_login_success(fake_portal):
    async def scenario(server, session):
        return await auth.login(session, CREDS, gateway_url=str(server.make_url("/gateway")))

    result = run_with_portal(fake_portal, scenario)
    assert result.entry.entry_url.endswith("/eportal/index.jsp?wlanuserip=10.8.0.2&nasip=10.1.1.1&ssid=htu%20wifi")
    assert result.endpoints.campus_code == "10467"
    assert result.endpoints.logout_root_host == "http://127.0.0.1"
    assert fake_portal.primary_forms == [
        {"campusCode": "10467", "username": "2021001", "password": "p@ss word", "operatorSuffix": "@yd"}
    ]
    assert fake_portal.quick_queries == [
        [
            ("wlanuserip", "10.8.0.2"),
            ("nasip", "10.1.1.1"),
            ("ssid", "htu wifi"),
            ("userid", "2021001@yd"),
            ("passwd", "p@ss word"),
        ]
    ]


def test_primary_rejection_carries_msg_and_skips_quick_auth(fake_portal):
    fake_portal.primary_response = {"code": 2, "msg": "bad pass"}

    async def scenario(server, session):
        with pytest.raises(AuthenticationFailedError) as info:
            await auth.login(session, CREDS, gateway_url=str(server.make_url("/gateway")))
        return info.value

    err = run_with_portal(fake_portal, scenario)
    assert err.msg == "bad pass"
    assert fake_portal.quick_queries == []


def test_primary_without_msg_defaults_to_empty(fake_portal):
    fake_portal.primary_response = {"code": 0}

    async def scenario(server, session):
        with pytest.raises(AuthenticationFailedError) as info:
            await auth.login(session, CREDS, gateway_url=str(server.make_url("/gateway")))
        return info.value

    assert run_with_portal(fake_portal, scenario).msg == ""


@pytest.mark.parametrize("response", [{"msg": "no code"}, "<html>oops</html>", [1, 2]])
def test_primary_without_code_is_malformed(fake_portal, response):
    fake_portal.primary_response = response

    async def scenario(server, session):
        with pytest.raises(MalformedResponseError):
            await auth.login(session, CREDS, gateway_url=str(server.make_url("/gateway")))

    run_with_portal(fake_portal, scenario)
    assert fake_portal.quick_queries == []


def test_quick_auth_rejection_carries_message(fake_portal):
    fake_portal.quick_response = {"code": "1", "message": "x"}

    async def scenario(server, session):
        with pytest.raises(AuthenticationFailedError) as info:
            await auth.login(session, CREDS, gateway_url=str(server.make_url("/gateway")))
        return info.value

    assert run_with_portal(fake_portal, scenario).msg == "x"


def test_quick_auth_without_code_is_malformed(fake_portal):
    fake_portal.quick_response = {"message": "?"}

    async def scenario(server, session):
        with pytest.raises(MalformedResponseError):
            await auth.login(session, CREDS, gateway_url=str(server.make_url("/gateway")))

    run_with_portal(fake_portal, scenario)


def test_missing_script_reference_is_malformed(fake_portal):
    fake_portal.entry_body = "<html><script src='/other.js'></script></html>"

    async def scenario(server, session):
        with pytest.raises(MalformedResponseError):
            await auth.login(session, CREDS, gateway_url=str(server.make_url("/gateway")))

    run_with_portal(fake_portal, scenario)
    assert fake_portal.primary_forms == []


def test_unreachable_gateway_is_transport_error():
    async def main():
        async with aiohttp.ClientSession() as session:
            with pytest.raises(TransportError):
                await auth.fetch_entry(session, f"http://127.0.0.1:{_closed_port()}/")

    asyncio.run(main())


def test_reachable_external_host_short_circuits(fake_portal):
    async def scenario(server, session):
        with pytest.raises(AlreadyAuthenticated):
            await auth.fetch_entry(
                session,
                str(server.make_url("/gateway")),
                probe=("127.0.0.1", server.port, 1.0),
            )

    run_with_portal(fake_portal, scenario)


def test_probe_external_fails_on_closed_port():
    assert asyncio.run(probe_external("127.0.0.1", _closed_port(), timeout=1.0)) is False


def test_is_captive_matches_marker(fake_portal):
    async def scenario(server, session):
        gateway = str(server.make_url("/gateway"))
        return (
            await is_captive(session, gateway, 'location.replace("http://127.0.0.1'),
            await is_captive(session, gateway, 'location.replace("http://10.'),
            await is_captive(session, f"http://127.0.0.1:{_closed_port()}/", "anything"),
        )

    assert run_with_portal(fake_portal, scenario) == (True, False, False)


def test_logout_success_and_rejection(fake_portal):
    async def scenario(server, session):
        base = str(server.make_url("/")).rstrip("/")
        await logout(session, base)
        fake_portal.logout_response = {"result": 0, "msg": "not online"}
        with pytest.raises(LogoutError):
            await logout(session, base)
        fake_portal.logout_response = "not json"
        with pytest.raises(MalformedResponseError):
            await logout(session, base)

    run_with_portal(fake_portal, scenario)
    assert fake_portal.logout_calls == 3
