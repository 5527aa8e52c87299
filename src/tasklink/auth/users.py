# src/tasklink/auth/users.py

from __future__ import annotations

import logging
import sqlite3
from dataclasses import replace

from ..core.errors import ErrorKind, SyncError, SyncResult
from ..policy.access import can_request_promotion, can_set_role, next_role
from ..storage.local_store import LocalStore
from ..tasks.uploader import AssetUploader
from .models import User, UserRole, normalize_email
from .session import SessionStore

logger = logging.getLogger(__name__)


class UserDirectory:
    """
    Local-mode user administration (users keyed by email).

    - self-service: promotion requests, profile image
    - superadmin only: direct role changes (which clear the pending request)

    Also serves as the RoleLookup for the access policy (task owner roles).
    """

    def __init__(self, store: LocalStore, session: SessionStore, uploader: AssetUploader | None = None) -> None:
        self._store = store
        self._session = session
        self._uploader = uploader

    def list_users(self) -> list[User]:
        try:
            return [stored.user for stored in self._store.load_users().values()]
        except sqlite3.Error:
            logger.exception("load_users failed")
            return []

    def get(self, email: str) -> User | None:
        stored = self._store.get_user(email)
        return stored.user if stored else None

    def role_of(self, user_id: str) -> UserRole | None:
        # Local user ids are emails.
        try:
            user = self.get(user_id)
        except sqlite3.Error:
            logger.exception("role lookup failed user=%s", user_id)
            return None
        return user.role if user else None

    def _save(self, user: User) -> None:
        self._store.save_user(user)
        self._session.replace_user(user)

    def request_promotion(self) -> SyncResult:
        """collaborator -> admin, admin -> superadmin; one pending request at a time."""
        actor = self._session.user
        if actor is None:
            return SyncResult.failed(SyncError.permission_denied("Not authenticated"))

        try:
            user = self.get(actor.email) or actor
            if not can_request_promotion(user):
                if user.pending_promotion:
                    return SyncResult.failed(SyncError.permission_denied("A promotion request is already pending"))
                return SyncResult.failed(SyncError.permission_denied("No higher role to request"))
            self._save(replace(user, pending_promotion=True))
        except sqlite3.Error:
            logger.exception("request_promotion failed user=%s", actor.email)
            return SyncResult.failed(SyncError.network())

        logger.info("Promotion requested by %s (%s -> %s)", user.email, user.role.value, next_role(user.role))
        return SyncResult(ok=True)

    def pending_requests(self) -> list[User]:
        return [u for u in self.list_users() if u.pending_promotion]

    def set_role(self, email: str, role: UserRole) -> SyncResult:
        actor = self._session.user
        if not can_set_role(actor):
            return SyncResult.failed(SyncError.permission_denied("Only a superadmin can change roles"))

        try:
            target = self.get(email)
            if target is None:
                return SyncResult.failed(SyncError(kind=ErrorKind.NOT_FOUND, message="User not found"))
            self._save(replace(target, role=role, pending_promotion=False))
        except sqlite3.Error:
            logger.exception("set_role failed email=%s", email)
            return SyncResult.failed(SyncError.network())

        logger.info("Role of %s set to %s by %s", target.email, role.value, actor.email if actor else "-")
        return SyncResult(ok=True)

    async def set_profile_image(self, image_ref: str | None) -> SyncResult:
        actor = self._session.user
        if actor is None:
            return SyncResult.failed(SyncError.permission_denied("Not authenticated"))

        url = None
        if image_ref:
            if self._uploader is None:
                return SyncResult.failed(SyncError(kind=ErrorKind.APPLICATION, message="Uploads are not configured"))
            result = await self._uploader.ensure_durable(image_ref)
            if not result.success:
                return SyncResult(
                    ok=False,
                    error=SyncError(kind=ErrorKind.APPLICATION, message="Image upload failed"),
                    upload_errors=[f"profile_image: {result.error}"],
                )
            url = result.url

        try:
            user = self.get(normalize_email(actor.email)) or actor
            self._save(replace(user, profile_image=url))
        except sqlite3.Error:
            logger.exception("set_profile_image failed user=%s", actor.email)
            return SyncResult.failed(SyncError.network())
        return SyncResult(ok=True)
