# src/tasklink/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..auth.session import SessionStore
from ..auth.users import UserDirectory
from ..policy.access import AccessPolicy
from ..remote.client import ApiClient
from ..tasks.locations import LocationRegistry
from ..tasks.synchronizer import TaskSynchronizer
from ..tasks.uploader import AssetUploader


@dataclass
class AppState:
    """
    Process-scoped containers, built once by the composition root (cli/bootstrap.py).

    Each container has a single writer path: the session only changes through
    SessionStore, the task set only through TaskSynchronizer.
    """

    settings: Any

    session: SessionStore
    tasks: TaskSynchronizer
    policy: AccessPolicy
    uploader: AssetUploader

    # local mode only
    users: UserDirectory | None = None
    locations: LocationRegistry | None = None

    # API mode only
    api: ApiClient | None = None
