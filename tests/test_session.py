# tests/test_session.py

from __future__ import annotations

import json
import os
import stat
from dataclasses import replace

import pytest

from tasklink.auth.models import UserRole
from tasklink.auth.session import SessionStore
from tasklink.core.errors import NETWORK_ERROR_MESSAGE, ErrorKind, GatewayResponse
from tasklink.storage.local_gateways import LocalAuthGateway


class DownAuthGateway:
    async def login(self, email, password):
        return GatewayResponse.failure(ErrorKind.TRANSPORT)

    async def register(self, email, password):
        raise RuntimeError("boom")


@pytest.fixture()
def session(store, settings) -> SessionStore:
    return SessionStore(LocalAuthGateway(store), session_path=settings.session_path)


@pytest.mark.asyncio
async def test_register_logs_in_and_persists(session, settings) -> None:
    res = await session.register(" Boss@Example.com ", "pw")

    assert res.success
    assert session.is_authenticated
    assert session.user.email == "boss@example.com"
    assert session.auth_headers() == {"Authorization": f"Bearer {session.token}"}

    saved = json.loads(settings.session_path.read_text("utf-8"))
    assert saved["token"] == session.token
    assert saved["user"]["email"] == "boss@example.com"
    if os.name == "posix":
        assert stat.S_IMODE(settings.session_path.stat().st_mode) == 0o600


@pytest.mark.asyncio
async def test_restore_picks_up_persisted_session(session, store, settings) -> None:
    await session.register("boss@example.com", "pw")

    fresh = SessionStore(LocalAuthGateway(store), session_path=settings.session_path)

    assert fresh.restore() is True
    assert fresh.user == session.user
    assert fresh.token == session.token


def test_restore_ignores_garbage(store, settings) -> None:
    settings.session_path.write_text("[1, 2]", "utf-8")

    fresh = SessionStore(LocalAuthGateway(store), session_path=settings.session_path)

    assert fresh.restore() is False
    assert fresh.user is None


@pytest.mark.asyncio
async def test_login_with_wrong_password_reports_server_message(session) -> None:
    await session.register("boss@example.com", "pw")
    session.logout()

    res = await session.login("boss@example.com", "nope")

    assert res.success is False
    assert res.error == "Invalid credentials"
    assert session.user is None


@pytest.mark.asyncio
async def test_missing_credentials_are_rejected_locally(session) -> None:
    res = await session.login("", "pw")

    assert res.error == "Email and password are required"


@pytest.mark.asyncio
async def test_unreachable_backend_maps_to_network_message(settings) -> None:
    session = SessionStore(DownAuthGateway(), session_path=settings.session_path)

    assert (await session.login("a@b.c", "pw")).error == NETWORK_ERROR_MESSAGE
    assert (await session.register("a@b.c", "pw")).error == NETWORK_ERROR_MESSAGE
    assert not settings.session_path.exists()


@pytest.mark.asyncio
async def test_logout_clears_everything_and_notifies(session, settings) -> None:
    await session.register("boss@example.com", "pw")
    calls: list[str] = []
    session.add_logout_listener(lambda: calls.append("first"))
    session.add_logout_listener(lambda: 1 / 0)
    session.add_logout_listener(lambda: calls.append("last"))

    session.logout()

    assert session.user is None
    assert session.token is None
    assert session.auth_headers() == {}
    assert not settings.session_path.exists()
    assert calls == ["first", "last"]


@pytest.mark.asyncio
async def test_replace_user_keeps_token(session, settings) -> None:
    await session.register("boss@example.com", "pw")
    token = session.token

    session.replace_user(replace(session.user, role=UserRole.ADMIN))

    assert session.token == token
    saved = json.loads(settings.session_path.read_text("utf-8"))
    assert saved["user"]["role"] == "admin"
