# src/tasklink/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import cast

from ..auth.models import UserRole
from ..core.errors import SyncResult
from ..core.state import AppState
from ..policy.access import TaskField
from ..tasks.task_models import GeoPoint, PlaceName, Task, TaskLocation, TaskStatus

CommandEmitter = Callable[[str], None]
CommandReply = str | Awaitable[str]
CommandHandler2 = Callable[[AppState, list[str]], CommandReply]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], CommandReply]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        Handlers may be plain functions or coroutines.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except Exception:
            nparams = 3

        if nparams >= 3:
            reply = cast(CommandHandler3, handler)(state, args, emit)
        else:
            reply = cast(CommandHandler2, handler)(state, args)

        if inspect.isawaitable(reply):
            reply = await reply
        return cast(str, reply)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- formatting helpers ----


def _describe_result(result: SyncResult, ok_text: str) -> str:
    lines = [ok_text if result.ok else f"Failed: {result.error.message if result.error else 'unknown error'}"]
    for err in result.upload_errors:
        lines.append(f"  image not uploaded ({err})")
    return "\n".join(lines)


def _format_location(location: TaskLocation | None) -> str:
    if location is None:
        return "-"
    if isinstance(location, GeoPoint):
        return f"{location.latitude:.5f},{location.longitude:.5f}"
    return location.name


def parse_location(raw: str) -> TaskLocation | None:
    """'lat,lng' becomes a GeoPoint; any other non-empty text is a place name."""
    raw = (raw or "").strip()
    if not raw:
        return None
    lat_s, sep, lng_s = raw.partition(",")
    if sep:
        try:
            return GeoPoint(latitude=float(lat_s), longitude=float(lng_s))
        except ValueError:
            pass
    return PlaceName(raw)


def _format_task(state: AppState, task: Task) -> str:
    mark = "x" if task.completed else " "
    parts = [f"[{mark}] {task.id}  {task.title}"]
    parts.append(f"      at: {_format_location(task.location)}")
    if state.locations is not None:
        link = state.locations.deeplink_for(task)
        if link:
            parts.append(f"      map: {link}")
    parts.append(f"      owner: {task.owner}" + (f"  assigned: {task.assigned_to}" if task.assigned_to else ""))
    if task.note:
        parts.append(f"      note: {task.note}")
    return "\n".join(parts)


def _split_pipe(args: list[str]) -> list[str]:
    return [p.strip() for p in " ".join(args).split("|")]


def _require_login(state: AppState) -> str | None:
    if not state.session.is_authenticated:
        return "Not logged in. Use /login <email> <password>."
    return None


# ---- session ----


async def cmd_login(state: AppState, args: list[str]) -> str:
    if len(args) != 2:
        return "Usage: /login <email> <password>"
    result = await state.session.login(args[0], args[1])
    if not result.success:
        return f"Login failed: {result.error}"
    loaded = await state.tasks.list()
    suffix = "" if loaded.ok else f" (tasks not loaded: {loaded.error.message if loaded.error else '?'})"
    return f"Logged in as {args[0]}.{suffix}"


async def cmd_register(state: AppState, args: list[str]) -> str:
    if len(args) != 2:
        return "Usage: /register <email> <password>"
    result = await state.session.register(args[0], args[1])
    if not result.success:
        return f"Registration failed: {result.error}"
    await state.tasks.list()
    return f"Registered and logged in as {args[0]}."


def cmd_logout(state: AppState, args: list[str]) -> str:
    state.session.logout()
    return "Logged out."


def cmd_whoami(state: AppState, args: list[str]) -> str:
    user = state.session.user
    if user is None:
        return "Not logged in."
    pending = " (promotion pending)" if user.pending_promotion else ""
    return f"{user.email} role={user.role.value}{pending}"


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    settings = state.settings
    last = state.tasks.last_error
    return (
        "Status:\n"
        f"  Mode: {getattr(settings, 'mode', 'api')}\n"
        f"  User: {state.session.user.email if state.session.user else '-'}\n"
        f"  Tasks cached: {len(state.tasks.tasks)}\n"
        f"  Last load error: {last.message if last else '-'}"
    )


# ---- tasks ----


def cmd_tasks(state: AppState, args: list[str]) -> str:
    if (msg := _require_login(state)) is not None:
        return msg
    tasks = state.tasks.tasks
    if not tasks:
        return "No tasks."
    return "\n".join(_format_task(state, t) for t in tasks)


async def cmd_refresh(state: AppState, args: list[str]) -> str:
    if (msg := _require_login(state)) is not None:
        return msg
    result = await state.tasks.refresh()
    if not result.ok:
        return f"Refresh failed: {result.error.message if result.error else '?'} (showing cached tasks)"
    return f"{len(state.tasks.tasks)} tasks."


async def cmd_add(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /add <title> | <place or lat,lng> | <image path>
    """
    if (msg := _require_login(state)) is not None:
        return msg
    parts = _split_pipe(args) + ["", ""]
    title, place, image = parts[0], parts[1], parts[2]
    if not title:
        return "Usage: /add <title> | <place or lat,lng> | <image path>"
    if image and emit:
        with contextlib.suppress(Exception):
            emit("Uploading image...")
    result = await state.tasks.create(title, parse_location(place), image or None)
    return _describe_result(result, f"Created task {result.task.id if result.task else ''}".strip())


_EDITABLE = {f.value for f in TaskField} - {TaskField.ID.value, TaskField.CREATED_AT.value}


async def cmd_edit(state: AppState, args: list[str]) -> str:
    """
    /edit <id> <field> <value...>
    """
    if (msg := _require_login(state)) is not None:
        return msg
    if len(args) < 2:
        return f"Usage: /edit <id> <field> <value>  (fields: {', '.join(sorted(_EDITABLE))})"
    task_id, field = args[0], args[1].lower()
    if field not in _EDITABLE:
        return f"Unknown field: {field}"
    raw = " ".join(args[2:]).strip()
    value: object = raw or None
    if field == "title" and not raw:
        return "Title cannot be empty."
    if field == "status":
        try:
            value = TaskStatus(raw.lower())
        except ValueError:
            return f"Unknown status: {raw or '(empty)'} (use {' or '.join(s.value for s in TaskStatus)})"
    if field == "location":
        value = parse_location(raw)
    result = await state.tasks.update(task_id, {field: value})
    return _describe_result(result, f"Updated {field} of {task_id}.")


async def cmd_done(state: AppState, args: list[str]) -> str:
    if (msg := _require_login(state)) is not None:
        return msg
    if len(args) != 1:
        return "Usage: /done <id>"
    result = await state.tasks.toggle_completion(args[0])
    return _describe_result(result, f"Toggled {args[0]}.")


async def cmd_rm(state: AppState, args: list[str]) -> str:
    if (msg := _require_login(state)) is not None:
        return msg
    if len(args) != 1:
        return "Usage: /rm <id>"
    result = await state.tasks.delete(args[0])
    return _describe_result(result, f"Deleted {args[0]}.")


def cmd_access(state: AppState, args: list[str]) -> str:
    user = state.session.user
    if user is None:
        return "Not logged in."
    if len(args) != 1:
        return "Usage: /access <id>"
    task = state.tasks.get(args[0])
    if task is None:
        return f"No task {args[0]}."
    access = state.policy.access_for(user, task)
    writable = ", ".join(sorted(f.value for f in access.writable)) or "(none)"
    return f"Writable fields: {writable}"


# ---- users (local mode) ----


def cmd_promote(state: AppState, args: list[str]) -> str:
    if state.users is None:
        return "Role management is only available in local mode."
    result = state.users.request_promotion()
    return _describe_result(result, "Promotion requested.")


def cmd_role(state: AppState, args: list[str]) -> str:
    if state.users is None:
        return "Role management is only available in local mode."
    if len(args) != 2:
        return "Usage: /role <email> <superadmin|admin|collaborator>"
    try:
        role = UserRole(args[1].lower())
    except ValueError:
        return f"Unknown role: {args[1]}"
    result = state.users.set_role(args[0], role)
    return _describe_result(result, f"{args[0]} is now {role.value}.")


def cmd_users(state: AppState, args: list[str]) -> str:
    if state.users is None:
        return "User list is only available in local mode."
    users = state.users.list_users()
    if not users:
        return "No users."
    return "\n".join(
        f"{u.email}  {u.role.value}{'  (promotion pending)' if u.pending_promotion else ''}" for u in users
    )


async def cmd_avatar(state: AppState, args: list[str]) -> str:
    if state.users is None:
        return "Profile images are only available in local mode."
    result = await state.users.set_profile_image(" ".join(args).strip() or None)
    return _describe_result(result, "Profile image updated.")


def cmd_loc(state: AppState, args: list[str]) -> str:
    """
    /loc            -> list
    /loc add <name> | <maps url>
    /loc rm <id>
    """
    if state.locations is None:
        return "Locations are only available in local mode."
    if not args:
        locs = state.locations.locations
        if not locs:
            return "No locations."
        return "\n".join(f"{loc.id}  {loc.name}  {loc.maps_url or ''}".rstrip() for loc in locs)

    sub = args[0].lower()
    if sub == "add":
        parts = _split_pipe(args[1:]) + [""]
        result = state.locations.add(parts[0], parts[1] or None)
        return _describe_result(result, f"Location added: {parts[0]}")
    if sub == "rm" and len(args) == 2:
        result = state.locations.remove(args[1])
        return _describe_result(result, f"Location removed: {args[1]}")
    return "Usage: /loc | /loc add <name> | <maps url> | /loc rm <id>"


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show mode, user and cache state.")
registry.register("register", cmd_register, help_text="Create an account: /register <email> <password>.")
registry.register("login", cmd_login, help_text="Log in: /login <email> <password>.")
registry.register("logout", cmd_logout, help_text="Log out and clear cached tasks.")
registry.register("whoami", cmd_whoami, help_text="Show the current user and role.")
registry.register("tasks", cmd_tasks, help_text="List cached tasks.", aliases=["ls"])
registry.register("refresh", cmd_refresh, help_text="Reload tasks from the store.")
registry.register("add", cmd_add, help_text="Create a task: /add <title> | <place or lat,lng> | <image>.")
registry.register("edit", cmd_edit, help_text="Edit one field: /edit <id> <field> <value>.")
registry.register("done", cmd_done, help_text="Toggle completion: /done <id>.")
registry.register("rm", cmd_rm, help_text="Delete a task you own: /rm <id>.")
registry.register("access", cmd_access, help_text="Show which fields you may edit: /access <id>.")
registry.register("promote", cmd_promote, help_text="Request the next role (local mode).")
registry.register("role", cmd_role, help_text="Set a user's role (superadmin, local mode).")
registry.register("users", cmd_users, help_text="List users (local mode).")
registry.register("avatar", cmd_avatar, help_text="Set your profile image: /avatar <path or url>.")
registry.register("loc", cmd_loc, help_text="Manage named locations (superadmin, local mode).")
