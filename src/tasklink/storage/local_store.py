# src/tasklink/storage/local_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..auth.models import User, UserRole, normalize_email
from ..tasks.task_models import GeoPoint, NamedLocation, PlaceName, Task, TaskLocation, TaskStatus

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class StoredUser:
    user: User
    password_hash: str  # werkzeug hash string (method$salt$digest)


class LocalStore:
    """
    SQLite persistence for the local-only deployment mode.

    Three independent collections, mirroring what the app keeps on the device:
    - users keyed by email (credentials live only here)
    - tasks
    - named locations

    The schema is migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "tasklink.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("LocalStore ready db=%s", self._db_path)

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    email TEXT PRIMARY KEY,
                    id TEXT NOT NULL,
                    password_hash TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'collaborator'
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    owner TEXT NOT NULL,
                    title TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending'
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS locations (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL
                )
                """
            )

            def add_col(table: str, name: str, decl: str) -> None:
                cur.execute(f"PRAGMA table_info({table})")
                cols = {row["name"] for row in cur.fetchall()}
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE {table} ADD COLUMN {name} {decl}")
                logger.info("LocalStore migration: added column %s.%s", table, name)

            add_col("users", "pending_promotion", "INTEGER NOT NULL DEFAULT 0")
            add_col("users", "profile_image", "TEXT")

            cur.execute("PRAGMA table_info(users)")
            if "password_salt" in {row["name"] for row in cur.fetchall()}:
                # Older stores kept a separate NOT NULL salt column; the hash string now
                # carries its own salt, so rebuild the table without it.
                cur.execute("ALTER TABLE users RENAME TO users_legacy")
                cur.execute(
                    """
                    CREATE TABLE users (
                        email TEXT PRIMARY KEY,
                        id TEXT NOT NULL,
                        password_hash TEXT NOT NULL,
                        role TEXT NOT NULL DEFAULT 'collaborator',
                        pending_promotion INTEGER NOT NULL DEFAULT 0,
                        profile_image TEXT
                    )
                    """
                )
                cur.execute(
                    """
                    INSERT INTO users(email, id, password_hash, role, pending_promotion, profile_image)
                    SELECT email, id, password_hash, role, pending_promotion, profile_image FROM users_legacy
                    """
                )
                cur.execute("DROP TABLE users_legacy")
                logger.info("LocalStore migration: dropped column users.password_salt")

            add_col("tasks", "description", "TEXT")
            add_col("tasks", "assigned_to", "TEXT")
            add_col("tasks", "location_name", "TEXT")
            add_col("tasks", "latitude", "REAL")
            add_col("tasks", "longitude", "REAL")
            add_col("tasks", "image", "TEXT")
            add_col("tasks", "note", "TEXT")
            add_col("tasks", "completion_image", "TEXT")
            add_col("tasks", "created_at", "TEXT")
            add_col("tasks", "updated_at", "TEXT")

            add_col("locations", "maps_url", "TEXT")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_participants ON tasks(owner, assigned_to)")

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> StoredUser:
        return StoredUser(
            user=User(
                id=str(row["id"]),
                email=str(row["email"]),
                role=UserRole.from_wire(row["role"]),
                pending_promotion=bool(row["pending_promotion"]),
                profile_image=row["profile_image"],
            ),
            password_hash=str(row["password_hash"]),
        )

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        location: TaskLocation | None = None
        if row["latitude"] is not None and row["longitude"] is not None:
            location = GeoPoint(latitude=float(row["latitude"]), longitude=float(row["longitude"]))
        elif row["location_name"]:
            location = PlaceName(str(row["location_name"]))

        return Task(
            id=str(row["id"]),
            owner=str(row["owner"]),
            title=str(row["title"] or ""),
            status=TaskStatus.from_wire(row["status"]),
            description=row["description"],
            assigned_to=row["assigned_to"],
            location=location,
            image=row["image"],
            note=row["note"],
            completion_image=row["completion_image"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _task_columns(task: Task) -> dict[str, Any]:
        loc = task.location
        return {
            "id": task.id,
            "owner": task.owner,
            "title": task.title,
            "status": task.status.value,
            "description": task.description,
            "assigned_to": task.assigned_to,
            "location_name": loc.name if isinstance(loc, PlaceName) else None,
            "latitude": loc.latitude if isinstance(loc, GeoPoint) else None,
            "longitude": loc.longitude if isinstance(loc, GeoPoint) else None,
            "image": task.image,
            "note": task.note,
            "completion_image": task.completion_image,
            "created_at": task.created_at,
            "updated_at": task.updated_at,
        }

    # ---- users ----

    def load_users(self) -> dict[str, StoredUser]:
        conn = self._get_conn()
        try:
            rows = conn.execute("SELECT * FROM users ORDER BY email ASC").fetchall()
            return {str(r["email"]): self._row_to_user(r) for r in rows}
        finally:
            conn.close()

    def get_user(self, email: str) -> StoredUser | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM users WHERE email = ?", (normalize_email(email),)).fetchone()
            return self._row_to_user(row) if row else None
        finally:
            conn.close()

    def add_user(self, user: User, *, password_hash: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO users(email, id, password_hash, role, pending_promotion, profile_image)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    user.email,
                    user.id,
                    password_hash,
                    user.role.value,
                    int(user.pending_promotion),
                    user.profile_image,
                ),
            )
            conn.commit()
            logger.debug("User added email=%s role=%s", user.email, user.role.value)
        finally:
            conn.close()

    def save_user(self, user: User) -> None:
        """Persist role / promotion flag / profile image (credentials untouched)."""
        conn = self._get_conn()
        try:
            conn.execute(
                "UPDATE users SET role = ?, pending_promotion = ?, profile_image = ? WHERE email = ?",
                (user.role.value, int(user.pending_promotion), user.profile_image, user.email),
            )
            conn.commit()
        finally:
            conn.close()

    # ---- tasks ----

    def load_tasks(self) -> list[Task]:
        conn = self._get_conn()
        try:
            rows = conn.execute("SELECT * FROM tasks ORDER BY created_at ASC, id ASC").fetchall()
            return [self._row_to_task(r) for r in rows]
        finally:
            conn.close()

    def get_task(self, task_id: str) -> Task | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (str(task_id),)).fetchone()
            return self._row_to_task(row) if row else None
        finally:
            conn.close()

    def upsert_task(self, task: Task) -> None:
        cols = self._task_columns(task)
        names = ", ".join(cols)
        placeholders = ", ".join("?" for _ in cols)
        conn = self._get_conn()
        try:
            conn.execute(
                f"INSERT OR REPLACE INTO tasks({names}) VALUES ({placeholders})",
                tuple(cols.values()),
            )
            conn.commit()
            logger.debug("Task saved id=%s owner=%s status=%s", task.id, task.owner, task.status.value)
        finally:
            conn.close()

    def delete_task(self, task_id: str) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM tasks WHERE id = ?", (str(task_id),))
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    # ---- locations ----

    def load_locations(self) -> list[NamedLocation]:
        conn = self._get_conn()
        try:
            rows = conn.execute("SELECT * FROM locations ORDER BY rowid ASC").fetchall()
            return [
                NamedLocation(id=str(r["id"]), name=str(r["name"]), maps_url=r["maps_url"] or None)
                for r in rows
            ]
        finally:
            conn.close()

    def add_location(self, location: NamedLocation) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                "INSERT INTO locations(id, name, maps_url) VALUES (?, ?, ?)",
                (location.id, location.name, location.maps_url),
            )
            conn.commit()
        finally:
            conn.close()

    def remove_location(self, location_id: str) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM locations WHERE id = ?", (str(location_id),))
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()
