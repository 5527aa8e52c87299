# src/tasklink/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    """
    Task completion state.

    Notes:
    - the remote store historically sent a boolean `completed`; from_wire accepts both.
    """

    PENDING = "pending"
    COMPLETED = "completed"

    @classmethod
    def from_wire(cls, raw: Any) -> TaskStatus:
        if isinstance(raw, bool):
            return cls.COMPLETED if raw else cls.PENDING
        if not raw:
            return cls.PENDING
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.PENDING

    def toggled(self) -> TaskStatus:
        return TaskStatus.PENDING if self is TaskStatus.COMPLETED else TaskStatus.COMPLETED


@dataclass(slots=True, frozen=True)
class PlaceName:
    """Free-form place, resolvable to a deeplink through the location registry."""

    name: str


@dataclass(slots=True, frozen=True)
class GeoPoint:
    latitude: float
    longitude: float


TaskLocation = PlaceName | GeoPoint


@dataclass(slots=True, frozen=True)
class Task:
    id: str
    owner: str
    title: str
    status: TaskStatus = TaskStatus.PENDING

    description: str | None = None
    assigned_to: str | None = None
    location: TaskLocation | None = None
    image: str | None = None

    # filled in by whoever completes the task
    note: str | None = None
    completion_image: str | None = None

    created_at: str | None = None
    updated_at: str | None = None

    @property
    def completed(self) -> bool:
        return self.status is TaskStatus.COMPLETED

    def involves(self, user_id: str | None) -> bool:
        if not user_id:
            return False
        return user_id == self.owner or user_id == self.assigned_to


# Attributes a client may send in a partial update (server owns the rest).
MUTABLE_TASK_FIELDS: frozenset[str] = frozenset(
    {
        "title",
        "description",
        "assigned_to",
        "location",
        "image",
        "status",
        "note",
        "completion_image",
    }
)

IMAGE_FIELDS: tuple[str, ...] = ("image", "completion_image")

TASK_ATTRIBUTES: tuple[str, ...] = tuple(f.name for f in fields(Task))


@dataclass(slots=True, frozen=True)
class NamedLocation:
    id: str
    name: str
    maps_url: str | None = None
