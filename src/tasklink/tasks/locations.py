# src/tasklink/tasks/locations.py

from __future__ import annotations

import logging
import sqlite3
import time

from ..core.errors import ErrorKind, SyncError, SyncResult
from ..core.ports import IdentitySource
from ..policy.access import can_manage_locations
from ..storage.local_store import LocalStore
from .task_models import NamedLocation, PlaceName, Task

logger = logging.getLogger(__name__)


class LocationRegistry:
    """
    Named places managed by superadmins.

    Tasks refer to them weakly, by name: removing a location never touches tasks, it only
    stops their place name from resolving to a map link.
    """

    def __init__(self, store: LocalStore, identity: IdentitySource) -> None:
        self._store = store
        self._identity = identity
        self._locations: list[NamedLocation] = []

    @property
    def locations(self) -> list[NamedLocation]:
        return list(self._locations)

    def load(self) -> None:
        try:
            self._locations = self._store.load_locations()
        except sqlite3.Error:
            logger.exception("Failed to load locations; starting empty")
            self._locations = []

    def add(self, name: str, maps_url: str | None = None) -> SyncResult:
        if not can_manage_locations(self._identity.user):
            return SyncResult.failed(SyncError.permission_denied("Only a superadmin can manage locations"))

        name = (name or "").strip()
        if not name:
            return SyncResult.failed(SyncError(kind=ErrorKind.APPLICATION, message="Location name is required"))

        # Timestamp-derived id, bumped past ids already taken within the same millisecond.
        taken = {loc.id for loc in self._locations}
        loc_id = int(time.time() * 1000)
        while str(loc_id) in taken:
            loc_id += 1

        location = NamedLocation(
            id=str(loc_id),
            name=name,
            maps_url=(maps_url or "").strip() or None,
        )
        try:
            self._store.add_location(location)
        except sqlite3.Error:
            logger.exception("Failed to save location %s", name)
            return SyncResult.failed(SyncError.network())
        self._locations.append(location)
        logger.info("Location added id=%s name=%s", location.id, location.name)
        return SyncResult(ok=True)

    def remove(self, location_id: str) -> SyncResult:
        if not can_manage_locations(self._identity.user):
            return SyncResult.failed(SyncError.permission_denied("Only a superadmin can manage locations"))
        if not any(loc.id == location_id for loc in self._locations):
            return SyncResult.failed(SyncError(kind=ErrorKind.NOT_FOUND, message="Location not found"))
        try:
            self._store.remove_location(location_id)
        except sqlite3.Error:
            logger.exception("Failed to remove location id=%s", location_id)
            return SyncResult.failed(SyncError.network())
        self._locations = [loc for loc in self._locations if loc.id != location_id]
        return SyncResult(ok=True)

    def resolve_deeplink(self, name: str | None) -> str | None:
        wanted = (name or "").strip()
        if not wanted:
            return None
        for loc in self._locations:
            if loc.name == wanted:
                return loc.maps_url
        return None

    def deeplink_for(self, task: Task) -> str | None:
        if isinstance(task.location, PlaceName):
            return self.resolve_deeplink(task.location.name)
        return None
