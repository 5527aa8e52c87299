# src/tasklink/tasks/synchronizer.py

from __future__ import annotations

"""
Task Synchronizer.

Owns the client's view of server truth (`tasks`) and reconciles it with the remote store:
- list/refresh replace the local set; on failure the last-known-good set is kept
- create waits for the server and appends the confirmed record (server id, timestamps)
- update/delete are optimistic and roll back the touched record on any remote failure
- images that are not yet durable are uploaded before the record is written

Concurrency: one asyncio loop; the set only changes between awaits. Operations on
different records interleave freely. Operations on the same record are not serialized:
the response that arrives last decides the final state (last-write-wins). A failing
update only rolls back while its own optimistic value is still in place: a newer change,
a confirmed server version or a deletion of that record is never undone.

clear() (logout) starts a new generation; responses to calls issued before it are
dropped instead of being written into the emptied set.

Every operation returns a SyncResult; none raises for remote or permission failures.
"""

import logging
from dataclasses import replace
from typing import Any

from ..core.errors import SESSION_ENDED_MESSAGE, ErrorKind, SyncError, SyncResult
from ..core.ports import IdentitySource, TaskGateway
from ..policy.access import AccessPolicy
from .task_models import IMAGE_FIELDS, MUTABLE_TASK_FIELDS, Task, TaskLocation, TaskStatus
from .transaction import OptimisticTransaction
from .uploader import AssetUploader, is_durable

logger = logging.getLogger(__name__)


class TaskSynchronizer:
    def __init__(
        self,
        gateway: TaskGateway,
        uploader: AssetUploader,
        *,
        identity: IdentitySource | None = None,
        policy: AccessPolicy | None = None,
    ) -> None:
        self._gateway = gateway
        self._uploader = uploader
        self._identity = identity
        self._policy = policy

        self._tasks: list[Task] = []
        self._loads_in_flight = 0
        self._generation = 0
        self.last_error: SyncError | None = None

    # ---- read side ----

    @property
    def tasks(self) -> list[Task]:
        """Snapshot of the local set (mutate only through the operations below)."""
        return list(self._tasks)

    @property
    def is_loading(self) -> bool:
        return self._loads_in_flight > 0

    def get(self, task_id: str) -> Task | None:
        return next((t for t in self._tasks if t.id == task_id), None)

    def clear(self) -> None:
        """Teardown on logout; answers to calls still in flight are dropped."""
        self._generation += 1
        self._tasks.clear()
        self.last_error = None

    @property
    def _actor(self):
        return self._identity.user if self._identity is not None else None

    def _stale(self, generation: int) -> SyncResult | None:
        if generation == self._generation:
            return None
        logger.info("Dropping a response issued before the task set was cleared")
        return SyncResult.failed(SyncError.permission_denied(SESSION_ENDED_MESSAGE))

    # ---- list / refresh ----

    async def list(self) -> SyncResult:
        generation = self._generation
        self._loads_in_flight += 1
        try:
            resp = await self._gateway.list_tasks()
        except Exception:
            logger.exception("list_tasks crashed")
            resp = None
        finally:
            self._loads_in_flight -= 1

        if (stale := self._stale(generation)) is not None:
            return stale

        if resp is None or not resp.ok:
            error = resp.error if resp is not None and resp.error else SyncError.network()
            self.last_error = error
            logger.warning("Loading tasks failed (%s); keeping %d cached tasks", error.kind, len(self._tasks))
            return SyncResult.failed(error)

        # Later-arriving responses overwrite earlier ones.
        self._tasks[:] = list(resp.data or [])
        self.last_error = None
        logger.info("Loaded %d tasks", len(self._tasks))
        return SyncResult(ok=True)

    async def refresh(self) -> SyncResult:
        return await self.list()

    # ---- create ----

    async def create(
        self,
        title: str,
        location: TaskLocation | None = None,
        image: str | None = None,
        *,
        description: str | None = None,
        assigned_to: str | None = None,
        note: str | None = None,
        completion_image: str | None = None,
    ) -> SyncResult:
        if not title or not title.strip():
            raise ValueError("title is required")

        draft: dict[str, Any] = {
            "title": title.strip(),
            "location": location,
            "description": description,
            "assigned_to": assigned_to,
            "image": image,
            "note": note,
            "completion_image": completion_image,
            "status": TaskStatus.PENDING,
        }
        draft = {k: v for k, v in draft.items() if v is not None}

        denied = self._check_create(set(draft))
        if denied is not None:
            return SyncResult.failed(denied)

        generation = self._generation
        upload_errors = await self._promote_images(draft)

        try:
            resp = await self._gateway.create_task(draft)
        except Exception:
            logger.exception("create_task crashed")
            return SyncResult(ok=False, error=SyncError.network(), upload_errors=upload_errors)

        if not resp.ok or resp.data is None:
            error = resp.error or SyncError.network()
            logger.warning("Create rejected (%s): %s", error.kind, error.message)
            return SyncResult(ok=False, error=error, upload_errors=upload_errors)

        if (stale := self._stale(generation)) is not None:
            return stale
        self._tasks.append(resp.data)
        logger.info("Task created id=%s", resp.data.id)
        return SyncResult(ok=True, task=resp.data, upload_errors=upload_errors)

    # ---- update ----

    async def update(self, task_id: str, fields: dict[str, Any]) -> SyncResult:
        unknown = set(fields) - MUTABLE_TASK_FIELDS
        if unknown:
            raise ValueError(f"not updatable task fields: {', '.join(sorted(unknown))}")
        changes = dict(fields)
        if "title" in changes:
            title = changes["title"]
            if not isinstance(title, str) or not title.strip():
                raise ValueError("title is required")
            changes["title"] = title.strip()

        current = self.get(task_id)
        if current is None:
            return SyncResult.failed(SyncError.not_found())
        if not changes:
            return SyncResult(ok=True, task=current)

        denied = self._check_update(current, set(changes))
        if denied is not None:
            return SyncResult.failed(denied)

        if "status" in changes:
            changes["status"] = TaskStatus.from_wire(changes["status"])
        generation = self._generation
        upload_errors = await self._promote_images(changes)
        if not changes:
            # Only images were sent and none of them could be uploaded.
            error = SyncError(kind=ErrorKind.APPLICATION, message="Image upload failed")
            return SyncResult(ok=False, task=current, error=error, upload_errors=upload_errors)

        # The upload may have suspended us; the record can be gone by now.
        tx = OptimisticTransaction(self._tasks, task_id)
        if tx.before is None:
            return SyncResult(ok=False, error=SyncError.not_found(), upload_errors=upload_errors)
        optimistic = tx.apply(lambda t: replace(t, **changes))

        try:
            resp = await self._gateway.update_task(task_id, changes)
        except Exception:
            logger.exception("update_task crashed id=%s", task_id)
            resp = None

        if (stale := self._stale(generation)) is not None:
            return stale

        if resp is None or not resp.ok:
            tx.rollback()
            error = resp.error if resp is not None and resp.error else SyncError.network()
            logger.warning("Update of task %s failed (%s); rolled back", task_id, error.kind)
            return SyncResult(ok=False, error=error, upload_errors=upload_errors)

        tx.commit(resp.data)
        return SyncResult(ok=True, task=resp.data or optimistic, upload_errors=upload_errors)

    async def toggle_completion(self, task_id: str) -> SyncResult:
        current = self.get(task_id)
        if current is None:
            logger.debug("toggle_completion: no task id=%s", task_id)
            return SyncResult.failed(SyncError.not_found())
        return await self.update(task_id, {"status": current.status.toggled()})

    # ---- delete ----

    async def delete(self, task_id: str) -> SyncResult:
        current = self.get(task_id)
        if current is None:
            return SyncResult.failed(SyncError.not_found())

        if self._policy is not None and not self._policy.can_delete(self._actor, current):
            return SyncResult.failed(SyncError.permission_denied("Only the owner can delete a task"))

        generation = self._generation
        tx = OptimisticTransaction(self._tasks, task_id)
        tx.remove()

        try:
            resp = await self._gateway.delete_task(task_id)
        except Exception:
            logger.exception("delete_task crashed id=%s", task_id)
            resp = None

        if (stale := self._stale(generation)) is not None:
            return stale

        if resp is None or not resp.ok:
            tx.rollback()
            error = resp.error if resp is not None and resp.error else SyncError.network()
            logger.warning("Delete of task %s failed (%s); restored", task_id, error.kind)
            return SyncResult.failed(error)

        tx.commit()
        logger.info("Task deleted id=%s", task_id)
        return SyncResult(ok=True, task=current)

    # ---- helpers ----

    def _check_create(self, names: set[str]) -> SyncError | None:
        if self._policy is None:
            return None
        return self._policy.check_create(self._actor, names)

    def _check_update(self, task: Task, names: set[str]) -> SyncError | None:
        if self._policy is None:
            return None
        return self._policy.check_update(self._actor, task, names)

    async def _promote_images(self, values: dict[str, Any]) -> list[str]:
        """
        Replace local image refs in `values` with durable URLs, in place.

        A failed upload drops that field (the write goes ahead without it) and the
        failure is reported back to the caller.
        """
        errors: list[str] = []
        for name in IMAGE_FIELDS:
            ref = values.get(name)
            if not ref or is_durable(ref):
                continue
            result = await self._uploader.upload(ref)
            if result.success and result.url:
                values[name] = result.url
            else:
                values.pop(name)
                errors.append(f"{name}: {result.error or 'Failed to upload'}")
        return errors
