# src/tasklink/remote/gateways.py

"""
API-mode gateways: the REST contract on one side, canonical types on the other.

    POST   /auth/login     {email, password}  -> {token, user: {id, email}}
    POST   /auth/register  {email, password}  -> same as login
    GET    /todos                             -> Task[]   (server filters owner/assignee)
    POST   /todos          {title, location, photoUri?, ...}
    PATCH  /todos/:id      {...partial...}
    DELETE /todos/:id
    POST   <upload_path>   multipart "file"   -> "<durable url>"
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from typing import Any

from ..auth.models import User, UserRole, normalize_email
from ..core.errors import ErrorKind, GatewayResponse
from ..core.ports import AuthPayload
from ..tasks.task_models import Task
from ..tasks.uploader import local_path
from .client import ApiClient
from .mapping import changes_to_wire, task_from_wire, tasks_from_wire

logger = logging.getLogger(__name__)


class HttpTaskGateway:
    def __init__(self, api: ApiClient) -> None:
        self._api = api

    async def list_tasks(self) -> GatewayResponse[list[Task]]:
        resp = await self._api.request("GET", "/todos")
        if not resp.ok:
            return GatewayResponse(ok=False, error=resp.error)
        try:
            return GatewayResponse.success(tasks_from_wire(resp.data))
        except ValueError:
            logger.warning("GET /todos returned an unexpected payload", exc_info=True)
            return GatewayResponse.failure(ErrorKind.PROTOCOL)

    async def create_task(self, draft: dict[str, Any]) -> GatewayResponse[Task]:
        resp = await self._api.request("POST", "/todos", json=changes_to_wire(draft, for_create=True))
        return self._single(resp, "POST /todos")

    async def update_task(self, task_id: str, changes: dict[str, Any]) -> GatewayResponse[Task]:
        resp = await self._api.request("PATCH", f"/todos/{task_id}", json=changes_to_wire(changes))
        return self._single(resp, f"PATCH /todos/{task_id}")

    async def delete_task(self, task_id: str) -> GatewayResponse[None]:
        resp = await self._api.request("DELETE", f"/todos/{task_id}")
        if not resp.ok:
            return GatewayResponse(ok=False, error=resp.error)
        return GatewayResponse.success(None)

    @staticmethod
    def _single(resp: GatewayResponse[Any], what: str) -> GatewayResponse[Task]:
        if not resp.ok:
            return GatewayResponse(ok=False, error=resp.error)
        try:
            return GatewayResponse.success(task_from_wire(resp.data))
        except ValueError:
            logger.warning("%s returned an unexpected payload", what, exc_info=True)
            return GatewayResponse.failure(ErrorKind.PROTOCOL)


class HttpImageGateway:
    def __init__(self, api: ApiClient, *, upload_path: str = "/images") -> None:
        self._api = api
        self._upload_path = "/" + upload_path.lstrip("/")

    async def upload_image(self, local_ref: str) -> GatewayResponse[str]:
        path = local_path(local_ref)
        try:
            content = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            logger.warning("Cannot read image %s: %s", path, e)
            return GatewayResponse.failure(ErrorKind.NOT_FOUND, f"Image not readable: {path.name}")

        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        resp = await self._api.request(
            "POST",
            self._upload_path,
            files={"file": (path.name, content, content_type)},
        )
        if not resp.ok:
            return GatewayResponse(ok=False, error=resp.error)
        if not isinstance(resp.data, str) or not resp.data.strip():
            return GatewayResponse.failure(ErrorKind.PROTOCOL)
        return GatewayResponse.success(resp.data.strip())


class HttpAuthGateway:
    def __init__(self, api: ApiClient) -> None:
        self._api = api

    async def login(self, email: str, password: str) -> GatewayResponse[AuthPayload]:
        return await self._auth("/auth/login", email, password)

    async def register(self, email: str, password: str) -> GatewayResponse[AuthPayload]:
        return await self._auth("/auth/register", email, password)

    async def _auth(self, path: str, email: str, password: str) -> GatewayResponse[AuthPayload]:
        email = normalize_email(email)
        resp = await self._api.request("POST", path, json={"email": email, "password": password}, auth=False)
        if not resp.ok:
            return GatewayResponse(ok=False, error=resp.error)

        data = resp.data if isinstance(resp.data, dict) else {}
        token = data.get("token")
        raw_user = data.get("user") if isinstance(data.get("user"), dict) else {}
        user_id = raw_user.get("id")
        if not token or not user_id:
            logger.warning("%s succeeded without token/user id", path)
            return GatewayResponse.failure(ErrorKind.PROTOCOL)

        # The API does not always return a role; default to the least privileged one.
        user = User(
            id=str(user_id),
            email=normalize_email(str(raw_user.get("email") or email)),
            role=UserRole.from_wire(raw_user.get("role")),
        )
        return GatewayResponse.success(AuthPayload(token=str(token), user=user))
