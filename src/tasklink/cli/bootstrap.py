# src/tasklink/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the gateways of the configured deployment mode (api / local) into AppState,
- restores a persisted session and loads the initial task list.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ..auth.session import SessionStore
from ..auth.users import UserDirectory
from ..config import MODE_LOCAL, get_settings
from ..core.state import AppState
from ..policy.access import AccessPolicy
from ..remote.client import ApiClient
from ..remote.gateways import HttpAuthGateway, HttpImageGateway, HttpTaskGateway
from ..storage.local_gateways import LocalAuthGateway, LocalImageGateway, LocalTaskGateway
from ..storage.local_store import LocalStore
from ..tasks.locations import LocationRegistry
from ..tasks.synchronizer import TaskSynchronizer
from ..tasks.uploader import AssetUploader

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    Path(settings.data_dir).mkdir(parents=True, exist_ok=True)
    Path(settings.session_path).parent.mkdir(parents=True, exist_ok=True)
    if getattr(settings, "mode", None) == MODE_LOCAL:
        Path(settings.db_path).parent.mkdir(parents=True, exist_ok=True)
        Path(settings.media_dir).mkdir(parents=True, exist_ok=True)


def _build_local_state(settings) -> AppState:
    store = LocalStore(settings.db_path)
    session = SessionStore(LocalAuthGateway(store), session_path=settings.session_path)
    uploader = AssetUploader(LocalImageGateway(settings.media_dir, settings.media_base_url))
    users = UserDirectory(store, session, uploader)
    policy = AccessPolicy(roles=users)
    tasks = TaskSynchronizer(LocalTaskGateway(store, session), uploader, identity=session, policy=policy)
    locations = LocationRegistry(store, session)
    return AppState(
        settings=settings,
        session=session,
        tasks=tasks,
        policy=policy,
        uploader=uploader,
        users=users,
        locations=locations,
    )


def _build_api_state(settings) -> AppState:
    api = ApiClient(settings.api_url, timeout_seconds=settings.request_timeout_seconds)
    session = SessionStore(HttpAuthGateway(api), session_path=settings.session_path)
    api.set_headers_provider(session.auth_headers)
    uploader = AssetUploader(HttpImageGateway(api, upload_path=settings.upload_path))
    # The REST store does not expose other users' roles.
    policy = AccessPolicy(roles=None)
    tasks = TaskSynchronizer(HttpTaskGateway(api), uploader, identity=session, policy=policy)
    return AppState(
        settings=settings,
        session=session,
        tasks=tasks,
        policy=policy,
        uploader=uploader,
        api=api,
    )


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if getattr(settings, "mode", None) == MODE_LOCAL:
        state = _build_local_state(settings)
    else:
        state = _build_api_state(settings)

    # logout clears everything the session scoped
    state.session.add_logout_listener(state.tasks.clear)
    logger.info("State ready (mode=%s)", getattr(settings, "mode", "api"))
    return state


async def start_session(state: AppState) -> None:
    """
    Process start: restore the persisted session, then load each collection.

    Loads are independent: a failure in one leaves the others usable.
    """
    if state.locations is not None:
        state.locations.load()

    if not state.session.restore():
        return

    # Local mode: the stored account may have changed (role, promotion) since the last run.
    if state.users is not None and state.session.user is not None:
        fresh = state.users.get(state.session.user.email)
        if fresh is None:
            logger.warning("Session user no longer exists; logging out")
            state.session.logout()
            return
        state.session.replace_user(fresh)

    result = await state.tasks.list()
    if not result.ok and result.error is not None:
        logger.warning("Initial task load failed: %s", result.error.message)


async def shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    if state.api is not None:
        try:
            await state.api.aclose()
        except Exception:
            logger.debug("HTTP client close failed.", exc_info=True)
