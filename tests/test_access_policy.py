# tests/test_access_policy.py

from __future__ import annotations

from dataclasses import replace

import pytest

from tasklink.auth.models import UserRole
from tasklink.core.errors import ErrorKind
from tasklink.policy.access import (
    ALL_FIELDS,
    COMPLETION_FIELDS,
    AccessPolicy,
    Relation,
    TaskField,
    can_manage_locations,
    can_request_promotion,
    can_set_role,
    evaluate,
    is_visible,
    next_role,
    relation_of,
)

from .fakes import ADMIN, COLLAB, SUPER, FakeRoles, make_task

OWNER_FIELDS = ALL_FIELDS - {TaskField.ID, TaskField.CREATED_AT}


def test_restricted_admin_gets_exactly_completion_fields() -> None:
    access = evaluate(UserRole.ADMIN, Relation.ASSIGNEE, UserRole.SUPERADMIN)

    assert access.writable == {TaskField.NOTE, TaskField.COMPLETION_IMAGE}
    assert access.readable == ALL_FIELDS
    assert access.read_only is True


def test_restricted_admin_rule_wins_even_without_read_only_flag() -> None:
    access = evaluate(UserRole.ADMIN, Relation.ASSIGNEE, UserRole.SUPERADMIN, read_only=False)

    assert access.writable == COMPLETION_FIELDS


@pytest.mark.parametrize("role", [UserRole.ADMIN, UserRole.SUPERADMIN])
def test_privileged_owner_edits_everything_but_server_fields(role: UserRole) -> None:
    access = evaluate(role, Relation.OWNER, role)

    assert access.writable == OWNER_FIELDS
    assert not access.can_write(TaskField.ID)
    assert not access.can_write("created_at")


def test_collaborator_owner_cannot_assign() -> None:
    access = evaluate(UserRole.COLLABORATOR, Relation.OWNER, UserRole.COLLABORATOR)

    assert access.writable == OWNER_FIELDS - {TaskField.ASSIGNED_TO}
    assert access.can_write("status")


def test_owner_in_read_only_view_gets_completion_fields() -> None:
    access = evaluate(UserRole.SUPERADMIN, Relation.OWNER, UserRole.SUPERADMIN, read_only=True)

    assert access.writable == COMPLETION_FIELDS


@pytest.mark.parametrize(
    "role, relation, owner_role",
    [
        (UserRole.COLLABORATOR, Relation.ASSIGNEE, UserRole.ADMIN),
        (UserRole.ADMIN, Relation.ASSIGNEE, UserRole.COLLABORATOR),
        (UserRole.ADMIN, Relation.NONE, UserRole.SUPERADMIN),
        (UserRole.SUPERADMIN, Relation.NONE, UserRole.COLLABORATOR),
    ],
)
def test_non_owners_get_read_only_view(role, relation, owner_role) -> None:
    access = evaluate(role, relation, owner_role)

    assert access.writable == COMPLETION_FIELDS
    assert access.read_only is True


def test_relation_and_visibility() -> None:
    task = make_task(owner=COLLAB.id, assigned_to=ADMIN.id)

    assert relation_of(COLLAB.id, task) is Relation.OWNER
    assert relation_of(ADMIN.id, task) is Relation.ASSIGNEE
    assert relation_of(SUPER.id, task) is Relation.NONE
    assert relation_of(None, task) is Relation.NONE
    assert is_visible(ADMIN.id, task)
    assert not is_visible(SUPER.id, task)


def test_collaborator_task_seen_by_admin_stays_read_only_after_assignment() -> None:
    policy = AccessPolicy(roles=FakeRoles({COLLAB.id: UserRole.COLLABORATOR}))
    task = make_task(owner=COLLAB.id)

    assert policy.access_for(ADMIN, task).writable == COMPLETION_FIELDS

    assigned = replace(task, assigned_to=ADMIN.id)
    assert policy.access_for(ADMIN, assigned).writable == COMPLETION_FIELDS
    assert policy.access_for(COLLAB, assigned).writable == OWNER_FIELDS - {TaskField.ASSIGNED_TO}


def test_unknown_owner_role_falls_back_to_collaborator() -> None:
    policy = AccessPolicy(roles=None)
    task = make_task(owner=SUPER.id, assigned_to=ADMIN.id)

    assert policy.owner_role(ADMIN, task) is UserRole.COLLABORATOR
    assert policy.access_for(ADMIN, task).writable == COMPLETION_FIELDS


def test_broken_role_lookup_does_not_propagate() -> None:
    class Broken:
        def role_of(self, user_id):
            raise RuntimeError("db locked")

    policy = AccessPolicy(roles=Broken())

    assert policy.owner_role(ADMIN, make_task(owner=SUPER.id)) is UserRole.COLLABORATOR


def test_check_update_lists_denied_fields() -> None:
    policy = AccessPolicy(roles=FakeRoles({SUPER.id: UserRole.SUPERADMIN}))
    task = make_task(owner=SUPER.id, assigned_to=ADMIN.id)

    err = policy.check_update(ADMIN, task, {"title", "note", "status"})

    assert err.kind is ErrorKind.PERMISSION_DENIED
    assert err.message == "Not allowed to edit: status, title"
    assert policy.check_update(ADMIN, task, {"note", "completion_image"}) is None


def test_anonymous_actor_is_denied() -> None:
    policy = AccessPolicy()

    assert policy.check_update(None, make_task(), {"note"}).kind is ErrorKind.PERMISSION_DENIED
    assert policy.check_create(None, {"title"}).kind is ErrorKind.PERMISSION_DENIED
    assert policy.can_delete(None, make_task()) is False


def test_check_create_assignment_needs_privileged_role() -> None:
    policy = AccessPolicy()

    assert policy.check_create(COLLAB, {"title", "assigned_to"}) is not None
    assert policy.check_create(COLLAB, {"title", "image"}) is None
    assert policy.check_create(ADMIN, {"title", "assigned_to"}) is None


def test_only_owner_can_delete() -> None:
    policy = AccessPolicy()
    task = make_task(owner=COLLAB.id, assigned_to=ADMIN.id)

    assert policy.can_delete(COLLAB, task)
    assert not policy.can_delete(ADMIN, task)
    assert not policy.can_delete(SUPER, task)


def test_promotion_ladder() -> None:
    assert next_role(UserRole.COLLABORATOR) is UserRole.ADMIN
    assert next_role(UserRole.ADMIN) is UserRole.SUPERADMIN
    assert next_role(UserRole.SUPERADMIN) is None

    assert can_request_promotion(COLLAB)
    assert not can_request_promotion(replace(COLLAB, pending_promotion=True))
    assert not can_request_promotion(SUPER)


def test_superadmin_only_operations() -> None:
    assert can_set_role(SUPER)
    assert not can_set_role(ADMIN)
    assert not can_set_role(None)
    assert can_manage_locations(SUPER)
    assert not can_manage_locations(COLLAB)
