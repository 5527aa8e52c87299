# src/tasklink/auth/session.py

from __future__ import annotations

import contextlib
import json
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..core.errors import NETWORK_ERROR_MESSAGE, ErrorKind
from ..core.ports import AuthGateway, AuthPayload
from .models import User, normalize_email

logger = logging.getLogger(__name__)

LogoutListener = Callable[[], None]


@dataclass(slots=True, frozen=True)
class AuthResult:
    success: bool
    error: str | None = None


def _load_json(path: Path) -> dict[str, Any]:
    val = json.loads(path.read_text("utf-8"))
    if isinstance(val, dict):
        return val
    raise ValueError("Expected JSON object")


def _atomic_write_json(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False), "utf-8")
    os.replace(tmp, path)
    with contextlib.suppress(Exception):
        # The token is a credential; keep the file private on disk.
        os.chmod(path, 0o600)


class SessionStore:
    """
    Authenticated identity + credential token, from login to logout.

    - the only writer of the session; everything else reads `user` / `auth_headers()`
    - persisted to a small JSON file so a restart does not require logging in again
    - logout() clears memory and disk, then notifies listeners (task list teardown)
    """

    def __init__(self, gateway: AuthGateway, *, session_path: str | Path | None = None) -> None:
        self._gateway = gateway
        self._path = Path(session_path) if session_path else None
        self._token: str | None = None
        self._user: User | None = None
        self._logout_listeners: list[LogoutListener] = []

    # ---- read side ----

    @property
    def user(self) -> User | None:
        return self._user

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None and bool(self._token)

    def auth_headers(self) -> dict[str, str]:
        if not self._token:
            return {}
        return {"Authorization": f"Bearer {self._token}"}

    def add_logout_listener(self, listener: LogoutListener) -> None:
        self._logout_listeners.append(listener)

    # ---- lifecycle ----

    def restore(self) -> bool:
        """Load a persisted session (best-effort). Returns True if a session was restored."""
        if self._path is None or not self._path.exists():
            return False
        try:
            data = _load_json(self._path)
            token = data.get("token")
            raw_user = data.get("user")
            if not token or not isinstance(raw_user, dict) or not raw_user.get("email"):
                logger.warning("Ignoring incomplete session file %s", self._path)
                return False
            self._token = str(token)
            self._user = User.from_dict(raw_user)
        except Exception:
            logger.exception("Failed to restore session from %s", self._path)
            return False
        logger.info("Session restored for %s", self._user.email)
        return True

    async def login(self, email: str, password: str) -> AuthResult:
        return await self._authenticate("login", email, password)

    async def register(self, email: str, password: str) -> AuthResult:
        return await self._authenticate("register", email, password)

    async def _authenticate(self, action: str, email: str, password: str) -> AuthResult:
        email = normalize_email(email)
        if not email or not password:
            return AuthResult(success=False, error="Email and password are required")

        call = self._gateway.login if action == "login" else self._gateway.register
        try:
            resp = await call(email, password)
        except Exception:
            logger.exception("%s crashed for %s", action, email)
            return AuthResult(success=False, error=NETWORK_ERROR_MESSAGE)

        if not resp.ok or resp.data is None:
            err = resp.error
            if err is None or err.kind in (ErrorKind.TRANSPORT, ErrorKind.PROTOCOL):
                return AuthResult(success=False, error=NETWORK_ERROR_MESSAGE)
            logger.info("%s rejected for %s: %s", action, email, err.message)
            return AuthResult(success=False, error=err.message)

        self._set_session(resp.data)
        logger.info("%s ok for %s (role=%s)", action, resp.data.user.email, resp.data.user.role.value)
        return AuthResult(success=True)

    def _set_session(self, payload: AuthPayload) -> None:
        self._token = payload.token
        self._user = payload.user
        self._persist()

    def replace_user(self, user: User) -> None:
        """Refresh the cached identity (e.g. after a role change); token is kept."""
        if self._user is None or self._user.email != user.email:
            return
        self._user = user
        self._persist()

    def _persist(self) -> None:
        if self._path is None or self._user is None or not self._token:
            return
        try:
            _atomic_write_json(self._path, {"token": self._token, "user": self._user.to_dict()})
        except Exception:
            logger.exception("Failed to persist session to %s", self._path)

    def logout(self) -> None:
        email = self._user.email if self._user else None
        self._token = None
        self._user = None
        if self._path is not None:
            try:
                self._path.unlink(missing_ok=True)
            except OSError:
                logger.exception("Failed to remove session file %s", self._path)

        for listener in list(self._logout_listeners):
            try:
                listener()
            except Exception:
                logger.exception("Logout listener failed")
        logger.info("Logged out %s", email or "(no session)")
