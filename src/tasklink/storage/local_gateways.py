# src/tasklink/storage/local_gateways.py

"""
Local-only deployment mode: the same gateway ports as the REST store, backed by SQLite.

Differences from API mode:
- owner/assignee filtering happens here, client-side (the server does it in API mode)
- task ids are client-generated, timestamp-derived strings
- images are copied into a media directory that is served under media_base_url
"""

from __future__ import annotations

import logging
import secrets
import shutil
import sqlite3
import time
import uuid
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from werkzeug.security import check_password_hash, generate_password_hash

from ..auth.models import User, UserRole, normalize_email
from ..core.errors import ErrorKind, GatewayResponse
from ..core.ports import AuthPayload, IdentitySource
from ..tasks.task_models import MUTABLE_TASK_FIELDS, Task, TaskStatus
from ..tasks.uploader import local_path
from .local_store import LocalStore

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class LocalTaskGateway:
    def __init__(self, store: LocalStore, identity: IdentitySource) -> None:
        self._store = store
        self._identity = identity
        self._last_id = 0

    def _actor(self) -> User | None:
        return self._identity.user

    def _next_id(self) -> str:
        # Millisecond timestamp, bumped when two tasks are created within the same ms.
        candidate = int(time.time() * 1000)
        if candidate <= self._last_id:
            candidate = self._last_id + 1
        self._last_id = candidate
        return str(candidate)

    async def list_tasks(self) -> GatewayResponse[list[Task]]:
        actor = self._actor()
        if actor is None:
            return GatewayResponse.failure(ErrorKind.APPLICATION, "Not authenticated")
        try:
            tasks = self._store.load_tasks()
        except sqlite3.Error:
            logger.exception("load_tasks failed")
            return GatewayResponse.failure(ErrorKind.TRANSPORT)
        return GatewayResponse.success([t for t in tasks if t.involves(actor.id)])

    async def create_task(self, draft: dict[str, Any]) -> GatewayResponse[Task]:
        actor = self._actor()
        if actor is None:
            return GatewayResponse.failure(ErrorKind.APPLICATION, "Not authenticated")

        now = _now_iso()
        values = {k: v for k, v in draft.items() if k in MUTABLE_TASK_FIELDS}
        values["status"] = TaskStatus.from_wire(values.get("status"))
        task = Task(id=self._next_id(), owner=actor.id, created_at=now, updated_at=now, **values)
        try:
            self._store.upsert_task(task)
        except sqlite3.Error:
            logger.exception("create task failed")
            return GatewayResponse.failure(ErrorKind.TRANSPORT)
        return GatewayResponse.success(task)

    async def update_task(self, task_id: str, changes: dict[str, Any]) -> GatewayResponse[Task]:
        actor = self._actor()
        if actor is None:
            return GatewayResponse.failure(ErrorKind.APPLICATION, "Not authenticated")
        try:
            current = self._store.get_task(task_id)
            if current is None or not current.involves(actor.id):
                return GatewayResponse.failure(ErrorKind.APPLICATION, "Task not found")

            values = {k: v for k, v in changes.items() if k in MUTABLE_TASK_FIELDS}
            if "status" in values:
                values["status"] = TaskStatus.from_wire(values["status"])
            updated = replace(current, updated_at=_now_iso(), **values)
            self._store.upsert_task(updated)
        except sqlite3.Error:
            logger.exception("update task failed id=%s", task_id)
            return GatewayResponse.failure(ErrorKind.TRANSPORT)
        return GatewayResponse.success(updated)

    async def delete_task(self, task_id: str) -> GatewayResponse[None]:
        actor = self._actor()
        if actor is None:
            return GatewayResponse.failure(ErrorKind.APPLICATION, "Not authenticated")
        try:
            current = self._store.get_task(task_id)
            if current is None or current.owner != actor.id:
                return GatewayResponse.failure(ErrorKind.APPLICATION, "Task not found")
            self._store.delete_task(task_id)
        except sqlite3.Error:
            logger.exception("delete task failed id=%s", task_id)
            return GatewayResponse.failure(ErrorKind.TRANSPORT)
        return GatewayResponse.success(None)


class LocalImageGateway:
    def __init__(self, media_dir: str | Path, media_base_url: str) -> None:
        self._media_dir = Path(media_dir)
        self._base_url = media_base_url.rstrip("/")

    async def upload_image(self, local_ref: str) -> GatewayResponse[str]:
        src = local_path(local_ref)
        if not src.is_file():
            return GatewayResponse.failure(ErrorKind.NOT_FOUND, f"Image not readable: {src.name}")

        # Unique name per upload: the same source file uploaded twice yields two URLs.
        name = f"{uuid.uuid4().hex}{src.suffix.lower()}"
        try:
            self._media_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(src, self._media_dir / name)
        except OSError as e:
            logger.warning("Failed to store image %s: %s", src, e)
            return GatewayResponse.failure(ErrorKind.APPLICATION, "Failed to upload")
        return GatewayResponse.success(f"{self._base_url}/{name}")


class LocalAuthGateway:
    """
    Credential check against the local users table.

    The first account registered on an empty store becomes superadmin, so a fresh
    installation always has someone able to manage roles and locations.
    """

    def __init__(self, store: LocalStore) -> None:
        self._store = store

    async def register(self, email: str, password: str) -> GatewayResponse[AuthPayload]:
        email = normalize_email(email)
        if not email or not password:
            return GatewayResponse.failure(ErrorKind.APPLICATION, "Email and password are required")
        try:
            if self._store.get_user(email) is not None:
                return GatewayResponse.failure(ErrorKind.APPLICATION, "User already exists")
            role = UserRole.SUPERADMIN if not self._store.load_users() else UserRole.COLLABORATOR
            user = User(id=email, email=email, role=role)
            self._store.add_user(user, password_hash=generate_password_hash(password))
        except sqlite3.Error:
            logger.exception("register failed email=%s", email)
            return GatewayResponse.failure(ErrorKind.TRANSPORT)
        logger.info("Registered local user email=%s role=%s", email, role.value)
        return GatewayResponse.success(AuthPayload(token=secrets.token_urlsafe(32), user=user))

    async def login(self, email: str, password: str) -> GatewayResponse[AuthPayload]:
        email = normalize_email(email)
        try:
            stored = self._store.get_user(email)
        except sqlite3.Error:
            logger.exception("login lookup failed email=%s", email)
            return GatewayResponse.failure(ErrorKind.TRANSPORT)
        if stored is None or not check_password_hash(stored.password_hash, password):
            return GatewayResponse.failure(ErrorKind.APPLICATION, "Invalid credentials")
        return GatewayResponse.success(AuthPayload(token=secrets.token_urlsafe(32), user=stored.user))
