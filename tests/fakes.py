# tests/fakes.py

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, replace
from typing import Any

from tasklink.auth.models import User, UserRole
from tasklink.core.errors import ErrorKind, GatewayResponse
from tasklink.tasks.task_models import MUTABLE_TASK_FIELDS, Task, TaskStatus

CREATED_AT = "2026-01-01T00:00:00+00:00"

COLLAB = User(id="c@example.com", email="c@example.com", role=UserRole.COLLABORATOR)
ADMIN = User(id="a@example.com", email="a@example.com", role=UserRole.ADMIN)
SUPER = User(id="s@example.com", email="s@example.com", role=UserRole.SUPERADMIN)


@dataclass
class FakeIdentity:
    """Stands in for SessionStore wherever only `user` is read."""

    user: User | None = None


class FakeRoles:
    def __init__(self, roles: dict[str, UserRole] | None = None) -> None:
        self.roles = dict(roles or {})

    def role_of(self, user_id: str) -> UserRole | None:
        return self.roles.get(user_id)


class FakeTaskGateway:
    """
    In-memory remote store used by synchronizer tests.

    Knobs:
    - scripted: responses handed out (FIFO) instead of touching the server state
    - blockers: events (FIFO, one per call) a call waits on before answering, so tests
      decide the order in which concurrent responses arrive
    - server: the store's own view, updated when an unscripted call succeeds
    """

    def __init__(self, tasks: list[Task] | None = None, *, owner: str = "c@example.com") -> None:
        self.server: dict[str, Task] = {t.id: t for t in tasks or []}
        self.owner = owner
        self.scripted: list[GatewayResponse[Any]] = []
        self.blockers: list[asyncio.Event] = []
        self.calls: list[tuple[str, Any]] = []
        self._ids = itertools.count(100)

    def fail_next(self, kind: ErrorKind, message: str | None = None) -> None:
        self.scripted.append(GatewayResponse.failure(kind, message))

    async def _enter(self, name: str, payload: Any) -> GatewayResponse[Any] | None:
        self.calls.append((name, payload))
        scripted = self.scripted.pop(0) if self.scripted else None
        if self.blockers:
            await self.blockers.pop(0).wait()
        return scripted

    async def list_tasks(self) -> GatewayResponse[list[Task]]:
        scripted = await self._enter("list", None)
        if scripted is not None:
            return scripted
        return GatewayResponse.success(list(self.server.values()))

    async def create_task(self, draft: dict[str, Any]) -> GatewayResponse[Task]:
        scripted = await self._enter("create", dict(draft))
        if scripted is not None:
            return scripted
        task = Task(
            id=f"srv-{next(self._ids)}",
            owner=self.owner,
            created_at=CREATED_AT,
            updated_at=CREATED_AT,
            **{k: v for k, v in draft.items() if k in MUTABLE_TASK_FIELDS},
        )
        self.server[task.id] = task
        return GatewayResponse.success(task)

    async def update_task(self, task_id: str, changes: dict[str, Any]) -> GatewayResponse[Task]:
        scripted = await self._enter("update", (task_id, dict(changes)))
        if scripted is not None:
            return scripted
        current = self.server.get(task_id)
        if current is None:
            return GatewayResponse.failure(ErrorKind.APPLICATION, "Task not found")
        updated = replace(current, **changes)
        self.server[task_id] = updated
        return GatewayResponse.success(updated)

    async def delete_task(self, task_id: str) -> GatewayResponse[None]:
        scripted = await self._enter("delete", task_id)
        if scripted is not None:
            return scripted
        if self.server.pop(task_id, None) is None:
            return GatewayResponse.failure(ErrorKind.APPLICATION, "Task not found")
        return GatewayResponse.success(None)


class FakeImageGateway:
    """Hands out a fresh URL per upload; can be told to fail or to crash."""

    def __init__(self) -> None:
        self.uploaded: list[str] = []
        self.fail_with: GatewayResponse[str] | None = None
        self.crash: Exception | None = None
        self._n = itertools.count(1)

    async def upload_image(self, local_ref: str) -> GatewayResponse[str]:
        if self.crash is not None:
            raise self.crash
        if self.fail_with is not None:
            return self.fail_with
        self.uploaded.append(local_ref)
        return GatewayResponse.success(f"https://cdn.example.com/img/{next(self._n)}.jpg")


def make_task(task_id: str = "t1", **overrides: Any) -> Task:
    values: dict[str, Any] = {
        "id": task_id,
        "owner": "c@example.com",
        "title": f"Task {task_id}",
        "status": TaskStatus.PENDING,
        "created_at": CREATED_AT,
        "updated_at": CREATED_AT,
    }
    values.update(overrides)
    return Task(**values)


async def settle(rounds: int = 5) -> None:
    """Let freshly created asyncio tasks run up to their next suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)
