# src/tasklink/policy/access.py

"""
Access Policy Evaluator.

One declarative table decides which task fields an acting user may write. Screens and
commands render from its output; nothing else re-derives permissions.

Rules, most specific first:
1. restricted admin: actor is admin, task owner is superadmin, actor is the assignee
   -> only the completion fields (note, completion_image)
2. owner editing (not read-only) -> everything except server-assigned id/created_at;
   assigned_to only for admin/superadmin owners
3. anything else is a read-only view -> only the completion fields
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

from ..auth.models import User, UserRole
from ..core.errors import SyncError
from ..core.ports import RoleLookup
from ..tasks.task_models import Task

logger = logging.getLogger(__name__)


class TaskField(StrEnum):
    ID = "id"
    CREATED_AT = "created_at"
    TITLE = "title"
    DESCRIPTION = "description"
    LOCATION = "location"
    IMAGE = "image"
    ASSIGNED_TO = "assigned_to"
    STATUS = "status"
    NOTE = "note"
    COMPLETION_IMAGE = "completion_image"


class Relation(StrEnum):
    OWNER = "owner"
    ASSIGNEE = "assignee"
    NONE = "none"


ALL_FIELDS: frozenset[TaskField] = frozenset(TaskField)
SERVER_FIELDS: frozenset[TaskField] = frozenset({TaskField.ID, TaskField.CREATED_AT})
COMPLETION_FIELDS: frozenset[TaskField] = frozenset({TaskField.NOTE, TaskField.COMPLETION_IMAGE})


@dataclass(slots=True, frozen=True)
class FieldAccess:
    readable: frozenset[TaskField]
    writable: frozenset[TaskField]

    def can_write(self, field: TaskField | str) -> bool:
        return TaskField(field) in self.writable

    @property
    def read_only(self) -> bool:
        return not (self.writable - COMPLETION_FIELDS)


def evaluate(
    role: UserRole,
    relation: Relation,
    owner_role: UserRole | None,
    *,
    read_only: bool = False,
) -> FieldAccess:
    if (
        role is UserRole.ADMIN
        and owner_role is UserRole.SUPERADMIN
        and relation is Relation.ASSIGNEE
    ):
        return FieldAccess(readable=ALL_FIELDS, writable=COMPLETION_FIELDS)

    if relation is Relation.OWNER and not read_only:
        writable = ALL_FIELDS - SERVER_FIELDS
        if not role.is_privileged:
            writable = writable - {TaskField.ASSIGNED_TO}
        return FieldAccess(readable=ALL_FIELDS, writable=writable)

    return FieldAccess(readable=ALL_FIELDS, writable=COMPLETION_FIELDS)


def relation_of(user_id: str | None, task: Task) -> Relation:
    if user_id and user_id == task.owner:
        return Relation.OWNER
    if user_id and user_id == task.assigned_to:
        return Relation.ASSIGNEE
    return Relation.NONE


def is_visible(user_id: str | None, task: Task) -> bool:
    return relation_of(user_id, task) is not Relation.NONE


# ---- role promotion ----


def next_role(role: UserRole) -> UserRole | None:
    if role is UserRole.COLLABORATOR:
        return UserRole.ADMIN
    if role is UserRole.ADMIN:
        return UserRole.SUPERADMIN
    return None


def can_request_promotion(user: User) -> bool:
    return next_role(user.role) is not None and not user.pending_promotion


def can_set_role(actor: User | None) -> bool:
    return actor is not None and actor.role is UserRole.SUPERADMIN


def can_manage_locations(actor: User | None) -> bool:
    return actor is not None and actor.role is UserRole.SUPERADMIN


class AccessPolicy:
    """
    Binds the pure rule table to the acting user and a way to look up task owners' roles.

    Owner roles the lookup cannot resolve are treated as collaborator, which never
    triggers the restricted-admin rule.
    """

    def __init__(self, roles: RoleLookup | None = None) -> None:
        self._roles = roles

    def owner_role(self, actor: User, task: Task) -> UserRole:
        if task.owner == actor.id:
            return actor.role
        role = None
        if self._roles is not None:
            try:
                role = self._roles.role_of(task.owner)
            except Exception:
                logger.exception("Role lookup failed for owner=%s", task.owner)
        return role or UserRole.COLLABORATOR

    def access_for(self, actor: User, task: Task, *, read_only: bool = False) -> FieldAccess:
        return evaluate(
            actor.role,
            relation_of(actor.id, task),
            self.owner_role(actor, task),
            read_only=read_only,
        )

    def check_update(self, actor: User | None, task: Task, field_names: set[str]) -> SyncError | None:
        if actor is None:
            return SyncError.permission_denied("Not authenticated")
        access = self.access_for(actor, task)
        denied = sorted(name for name in field_names if not access.can_write(name))
        if denied:
            logger.info(
                "Update denied user=%s task=%s fields=%s", actor.email, task.id, ",".join(denied)
            )
            return SyncError.permission_denied(f"Not allowed to edit: {', '.join(denied)}")
        return None

    def check_create(self, actor: User | None, field_names: set[str]) -> SyncError | None:
        if actor is None:
            return SyncError.permission_denied("Not authenticated")
        # The creator becomes the owner, so the owner row of the table applies.
        if TaskField.ASSIGNED_TO.value in field_names and not actor.role.is_privileged:
            return SyncError.permission_denied("Only admins can assign tasks")
        return None

    def can_delete(self, actor: User | None, task: Task) -> bool:
        return actor is not None and relation_of(actor.id, task) is Relation.OWNER
