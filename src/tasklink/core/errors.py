# src/tasklink/core/errors.py

"""
Failure taxonomy shared by the remote boundary and the synchronizer.

Nothing in the core raises these to callers: failures travel as values
(GatewayResponse / SyncResult / UploadResult) so the UI layer can render them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Generic, TypeVar

T = TypeVar("T")

NETWORK_ERROR_MESSAGE = "Network error or timeout"
GENERIC_FAILURE_MESSAGE = "Request failed"
PERMISSION_DENIED_MESSAGE = "You are not allowed to do that"
NOT_FOUND_MESSAGE = "Task not found"
SESSION_ENDED_MESSAGE = "Session ended before the request completed"


class ErrorKind(StrEnum):
    TRANSPORT = "transport"  # timeout, DNS, abort: no response obtained
    PROTOCOL = "protocol"  # response received, but not the expected envelope
    APPLICATION = "application"  # well-formed envelope with success=false
    PERMISSION_DENIED = "permission_denied"  # computed locally, never sent
    NOT_FOUND = "not_found"  # local lookup miss

    @property
    def is_remote(self) -> bool:
        return self in (ErrorKind.TRANSPORT, ErrorKind.PROTOCOL, ErrorKind.APPLICATION)


@dataclass(slots=True, frozen=True)
class SyncError:
    kind: ErrorKind
    message: str

    @classmethod
    def network(cls, kind: ErrorKind = ErrorKind.TRANSPORT) -> SyncError:
        return cls(kind=kind, message=NETWORK_ERROR_MESSAGE)

    @classmethod
    def permission_denied(cls, message: str = PERMISSION_DENIED_MESSAGE) -> SyncError:
        return cls(kind=ErrorKind.PERMISSION_DENIED, message=message)

    @classmethod
    def not_found(cls, message: str = NOT_FOUND_MESSAGE) -> SyncError:
        return cls(kind=ErrorKind.NOT_FOUND, message=message)


def error_message_from(raw: Any, default: str = GENERIC_FAILURE_MESSAGE) -> str:
    """
    Turn a server-supplied `error` value into a human message.

    Servers send either a plain string or an object with `message`/`error`.
    """
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    if isinstance(raw, dict):
        for key in ("message", "error"):
            val = raw.get(key)
            if val:
                return str(val)
    return default


@dataclass(slots=True)
class GatewayResponse(Generic[T]):
    """Normalized outcome of one remote (or local-store) call."""

    ok: bool
    data: T | None = None
    error: SyncError | None = None

    @classmethod
    def success(cls, data: T | None = None) -> GatewayResponse[T]:
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str | None = None) -> GatewayResponse[T]:
        if kind in (ErrorKind.TRANSPORT, ErrorKind.PROTOCOL):
            return cls(ok=False, error=SyncError.network(kind))
        return cls(ok=False, error=SyncError(kind=kind, message=message or GENERIC_FAILURE_MESSAGE))


@dataclass(slots=True)
class SyncResult:
    """What every synchronizer operation hands back to its caller."""

    ok: bool
    task: Any = None
    error: SyncError | None = None
    upload_errors: list[str] = field(default_factory=list)

    @classmethod
    def failed(cls, error: SyncError) -> SyncResult:
        return cls(ok=False, error=error)
