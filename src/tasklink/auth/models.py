# src/tasklink/auth/models.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class UserRole(StrEnum):
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    COLLABORATOR = "collaborator"

    @classmethod
    def from_wire(cls, raw: Any) -> UserRole:
        if not raw:
            return cls.COLLABORATOR
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.COLLABORATOR

    @property
    def rank(self) -> int:
        return _RANKS[self]

    @property
    def is_privileged(self) -> bool:
        return self in (UserRole.ADMIN, UserRole.SUPERADMIN)


_RANKS = {
    UserRole.COLLABORATOR: 0,
    UserRole.ADMIN: 1,
    UserRole.SUPERADMIN: 2,
}


@dataclass(slots=True, frozen=True)
class User:
    # Server id in API mode; the email itself in local mode.
    id: str
    email: str
    role: UserRole = UserRole.COLLABORATOR
    pending_promotion: bool = False
    profile_image: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role.value,
            "pending_promotion": self.pending_promotion,
            "profile_image": self.profile_image,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> User:
        email = str(raw.get("email") or "").strip().lower()
        return cls(
            id=str(raw.get("id") or email),
            email=email,
            role=UserRole.from_wire(raw.get("role")),
            pending_promotion=bool(raw.get("pending_promotion", False)),
            profile_image=raw.get("profile_image") or None,
        )


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()
