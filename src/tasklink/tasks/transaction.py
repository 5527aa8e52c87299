# src/tasklink/tasks/transaction.py

from __future__ import annotations

import logging
from collections.abc import Callable

from .task_models import Task

logger = logging.getLogger(__name__)


class OptimisticTransaction:
    """
    Pre-image of one record, captured before an optimistic local change.

    Only the touched record is snapshotted, so rolling back never undoes concurrent edits
    to other records. Task is frozen, so the pre-image cannot drift while the remote call
    is in flight.

    Rollback only touches a record this transaction still owns:
    - after apply(): the record must still be the exact object apply() stored; a newer
      change (or a confirmed server version) in between is left alone, and a record that
      has disappeared stays gone
    - after remove(): the pre-image is re-inserted at its old index unless something put
      the record back already

    Usage:
        tx = OptimisticTransaction(tasks, task_id)
        tx.apply(lambda t: replace(t, title="x"))   # or tx.remove()
        ...
        tx.rollback()                               # on any failure
    """

    def __init__(self, tasks: list[Task], task_id: str) -> None:
        self._tasks = tasks
        self._task_id = task_id
        self._index = next((i for i, t in enumerate(tasks) if t.id == task_id), None)
        self._before = tasks[self._index] if self._index is not None else None
        self._applied: Task | None = None
        self._removed = False
        self._done = False

    @property
    def before(self) -> Task | None:
        return self._before

    def apply(self, change: Callable[[Task], Task]) -> Task:
        if self._before is None:
            raise LookupError(f"task {self._task_id} is not in the local set")
        after = change(self._before)
        self._replace(after)
        self._applied = after
        return after

    def remove(self) -> None:
        if self._before is None:
            raise LookupError(f"task {self._task_id} is not in the local set")
        self._tasks[:] = [t for t in self._tasks if t.id != self._task_id]
        self._removed = True

    def commit(self, confirmed: Task | None = None) -> None:
        """Accept the change; optionally swap in the server's version of the record."""
        if self._done:
            return
        self._done = True
        if confirmed is not None:
            self._replace(confirmed)

    def rollback(self) -> None:
        if self._done or self._before is None:
            return
        self._done = True

        current = self._current()
        if self._removed:
            if current is not None:
                logger.debug("Rollback skipped, task id=%s is back already", self._task_id)
                return
            index = min(self._index or 0, len(self._tasks))
            self._tasks.insert(index, self._before)
        elif self._applied is not None:
            if current is not self._applied:
                # Deleted, refreshed or overwritten by a newer change since apply().
                logger.debug("Rollback skipped, task id=%s changed since", self._task_id)
                return
            self._replace(self._before)
        logger.debug("Rolled back task id=%s", self._task_id)

    def _current(self) -> Task | None:
        return next((t for t in self._tasks if t.id == self._task_id), None)

    def _replace(self, task: Task) -> None:
        for i, t in enumerate(self._tasks):
            if t.id == self._task_id:
                self._tasks[i] = task
                return
