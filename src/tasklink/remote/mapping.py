# src/tasklink/remote/mapping.py

"""
Adapter between the canonical Task and the remote store's JSON shape.

The remote store grew two task shapes over time:
- API shape:  {completed: bool, location: {latitude, longitude}, photoUri}
- rich shape: {status: "pending"|"completed", location: "<place>", description,
               assignedTo, note, completionImageUri}

Reads accept either shape. Writes send the rich keys plus `completed`, so older servers
keep working. Nothing outside this module sees camelCase keys.
"""

from __future__ import annotations

import logging
from typing import Any

from ..tasks.task_models import GeoPoint, PlaceName, Task, TaskLocation, TaskStatus

logger = logging.getLogger(__name__)

# canonical attribute -> wire key
_WIRE_KEYS: dict[str, str] = {
    "title": "title",
    "description": "description",
    "assigned_to": "assignedTo",
    "location": "location",
    "image": "photoUri",
    "note": "note",
    "completion_image": "completionImageUri",
}


def location_to_wire(location: TaskLocation | None) -> Any:
    if location is None:
        return None
    if isinstance(location, GeoPoint):
        return {"latitude": location.latitude, "longitude": location.longitude}
    return location.name


def location_from_wire(raw: Any) -> TaskLocation | None:
    if isinstance(raw, dict):
        lat = raw.get("latitude", raw.get("lat"))
        lng = raw.get("longitude", raw.get("lng"))
        if lat is None or lng is None:
            return None
        try:
            return GeoPoint(latitude=float(lat), longitude=float(lng))
        except (TypeError, ValueError):
            logger.debug("Unparseable coordinates in task location: %r", raw)
            return None
    if isinstance(raw, str) and raw.strip():
        return PlaceName(raw.strip())
    return None


def changes_to_wire(changes: dict[str, Any], *, for_create: bool = False) -> dict[str, Any]:
    """Map a canonical partial update (or create draft) to the request body."""
    body: dict[str, Any] = {}
    for name, value in changes.items():
        if name == "status":
            status = TaskStatus.from_wire(value)
            body["status"] = status.value
            body["completed"] = status is TaskStatus.COMPLETED
            continue
        if name == "location":
            body["location"] = location_to_wire(value)
            continue
        key = _WIRE_KEYS.get(name)
        if key is None:
            # owner/id/timestamps are server-assigned.
            continue
        body[key] = value

    if for_create:
        # Create treats a missing key as "not set"; nulls only mean "clear" in a PATCH.
        body = {k: v for k, v in body.items() if v is not None}
    return body


def _opt_str(raw: Any) -> str | None:
    if raw is None:
        return None
    s = str(raw)
    return s if s.strip() else None


def task_from_wire(raw: dict[str, Any]) -> Task:
    """
    Parse one task object from a response body.

    Raises ValueError for objects that are not tasks at all (no id); callers treat that as
    a protocol failure.
    """
    if not isinstance(raw, dict):
        raise ValueError(f"task payload must be an object, got {type(raw).__name__}")

    task_id = raw.get("id")
    if task_id is None or str(task_id).strip() == "":
        raise ValueError("task payload has no id")

    if "status" in raw and raw.get("status") is not None:
        status = TaskStatus.from_wire(raw.get("status"))
    else:
        status = TaskStatus.from_wire(bool(raw.get("completed", False)))

    owner = raw.get("userId") or raw.get("owner") or raw.get("ownerEmail") or ""

    return Task(
        id=str(task_id),
        owner=str(owner),
        title=str(raw.get("title") or ""),
        status=status,
        description=_opt_str(raw.get("description")),
        assigned_to=_opt_str(raw.get("assignedTo")),
        location=location_from_wire(raw.get("location")),
        image=_opt_str(raw.get("photoUri") or raw.get("imageUri")),
        note=_opt_str(raw.get("note")),
        completion_image=_opt_str(raw.get("completionImageUri")),
        created_at=_opt_str(raw.get("createdAt")),
        updated_at=_opt_str(raw.get("updatedAt")),
    )


def tasks_from_wire(raw: Any) -> list[Task]:
    if not isinstance(raw, list):
        raise ValueError(f"task list payload must be an array, got {type(raw).__name__}")
    return [task_from_wire(item) for item in raw]
