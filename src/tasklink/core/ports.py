# src/tasklink/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The synchronizer, uploader and session store depend on Protocols instead of concrete
implementations. Both deployment modes plug in here:
- API mode: httpx-backed gateways (remote/gateways.py)
- local mode: SQLite-backed gateways (storage/local_gateways.py)
"""

from dataclasses import dataclass
from typing import Any, Protocol

from ..auth.models import User, UserRole
from ..tasks.task_models import Task
from .errors import GatewayResponse


@dataclass(slots=True, frozen=True)
class AuthPayload:
    token: str
    user: User


class TaskGateway(Protocol):
    """
    Remote source of truth for tasks, already speaking the canonical Task shape.

    Every method returns a GatewayResponse and never raises for remote failures.
    """

    async def list_tasks(self) -> GatewayResponse[list[Task]]: ...

    async def create_task(self, draft: dict[str, Any]) -> GatewayResponse[Task]: ...

    async def update_task(self, task_id: str, changes: dict[str, Any]) -> GatewayResponse[Task]: ...

    async def delete_task(self, task_id: str) -> GatewayResponse[None]: ...


class ImageGateway(Protocol):
    """Turns a local image reference into a durable URL."""

    async def upload_image(self, local_ref: str) -> GatewayResponse[str]: ...


class AuthGateway(Protocol):
    async def login(self, email: str, password: str) -> GatewayResponse[AuthPayload]: ...

    async def register(self, email: str, password: str) -> GatewayResponse[AuthPayload]: ...


class IdentitySource(Protocol):
    """Who is acting right now (implemented by SessionStore)."""

    @property
    def user(self) -> User | None: ...


class RoleLookup(Protocol):
    """Resolve another user's role (task owners). None when unknown."""

    def role_of(self, user_id: str) -> UserRole | None: ...
