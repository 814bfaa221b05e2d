"""SQLite-backed persistence for users and messages."""
from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from passlib.context import CryptContext

from .errors import ConflictError
from .models import Message, MessageAuthor, User


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "chatroom.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    # Fixed precision keeps the stored strings lexically ordered.
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def _verify_password(password: str, hashed: str) -> bool:
    try:
        return _pwd_context.verify(password, hashed)
    except ValueError:
        return False


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


_MESSAGE_SELECT = """
    SELECT m.id, m.content, m.user_id, m.created_at, m.updated_at, m.deleted_at,
           u.first_name AS author_first_name, u.last_name AS author_last_name
      FROM messages AS m
      JOIN users AS u ON u.id = m.user_id
"""


class Database:
    """Simple wrapper around SQLite for persisting users and messages."""

    def __init__(self, path: Path, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        _ensure_directory(path)
        self._path = path
        self._clock = clock or _current_timestamp

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _now(self) -> datetime:
        return self._clock()

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT NOT NULL UNIQUE,
                    first_name TEXT NOT NULL,
                    last_name TEXT NOT NULL,
                    password_hash TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    content TEXT NOT NULL,
                    user_id INTEGER NOT NULL REFERENCES users(id),
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    deleted_at TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_messages_user_id ON messages(user_id);
                CREATE INDEX IF NOT EXISTS idx_messages_created_at ON messages(created_at);
                """
            )

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(
        self,
        email: str,
        first_name: str,
        last_name: str,
        password: str,
    ) -> User:
        """Create a new user; the UNIQUE email column is the final arbiter."""

        if not password:
            raise ValueError("Password must not be empty")

        created_at = self._now()
        serialized = _serialize_datetime(created_at)
        normalized_email = email.strip().lower()
        normalized_first = first_name.strip().lower()
        normalized_last = last_name.strip().lower()
        password_hash = _hash_password(password)

        with self._connect() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO users (email, first_name, last_name, password_hash, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        normalized_email,
                        normalized_first,
                        normalized_last,
                        password_hash,
                        serialized,
                        serialized,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise ConflictError("A user with that email already exists") from exc

            user_id = cursor.lastrowid

        return User(
            id=int(user_id),
            email=normalized_email,
            first_name=normalized_first,
            last_name=normalized_last,
            created_at=created_at,
        )

    def get_user(self, user_id: int) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (email.strip().lower(),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def count_users_with_email(self, email: str) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS total FROM users WHERE email = ?",
                (email.strip().lower(),),
            ).fetchone()
        return int(row["total"])

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (email.strip().lower(),),
            ).fetchone()
        if row is None:
            return None
        stored_hash = row["password_hash"]
        if not stored_hash or not _verify_password(password, stored_hash):
            return None
        return self._row_to_user(row)

    # ------------------------------------------------------------------
    # Message management
    # ------------------------------------------------------------------
    def create_message(self, user_id: int, content: str) -> Message:
        serialized = _serialize_datetime(self._now())
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO messages (content, user_id, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (content, user_id, serialized, serialized),
            )
            message_id = cursor.lastrowid

        message = self.get_message(int(message_id))
        if message is None:
            raise RuntimeError("Failed to load message after creation")
        return message

    def get_message(self, message_id: int, *, include_deleted: bool = False) -> Optional[Message]:
        query = f"{_MESSAGE_SELECT} WHERE m.id = ?"
        if not include_deleted:
            query += " AND m.deleted_at IS NULL"
        with self._connect() as conn:
            row = conn.execute(query, (message_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_message(row)

    def list_messages(self, *, query: Optional[str] = None) -> List[Message]:
        """Return live messages newest-first, optionally filtered by a substring."""

        sql = f"{_MESSAGE_SELECT} WHERE m.deleted_at IS NULL"
        params: List[object] = []
        if query:
            sql += " AND m.content LIKE ? ESCAPE '\\'"
            params.append(f"%{_escape_like(query)}%")
        sql += " ORDER BY m.created_at DESC, m.id DESC"

        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_message(row) for row in rows]

    def update_message_content(self, message_id: int, user_id: int, content: str) -> Optional[Message]:
        """Replace the content of a live message owned by ``user_id``."""

        serialized = _serialize_datetime(self._now())
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE messages
                   SET content = ?, updated_at = ?
                 WHERE id = ? AND user_id = ? AND deleted_at IS NULL
                """,
                (content, serialized, message_id, user_id),
            )
            if cursor.rowcount == 0:
                return None

        return self.get_message(message_id)

    def soft_delete_message(self, message_id: int, user_id: int) -> bool:
        serialized = _serialize_datetime(self._now())
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE messages
                   SET deleted_at = ?
                 WHERE id = ? AND user_id = ? AND deleted_at IS NULL
                """,
                (serialized, message_id, user_id),
            )
            return cursor.rowcount > 0

    def last_message_change(self) -> Optional[datetime]:
        """Latest created/updated/deleted timestamp across every message row."""

        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT MAX(created_at) AS latest_created,
                       MAX(updated_at) AS latest_updated,
                       MAX(deleted_at) AS latest_deleted
                  FROM messages
                """
            ).fetchone()

        candidates = [
            _parse_datetime(str(value))
            for value in (row["latest_created"], row["latest_updated"], row["latest_deleted"])
            if value
        ]
        if not candidates:
            return None
        return max(candidates)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            email=str(row["email"]),
            first_name=str(row["first_name"]),
            last_name=str(row["last_name"]),
            created_at=_parse_datetime(str(row["created_at"])),
        )

    def _row_to_message(self, row: sqlite3.Row) -> Message:
        deleted_at = row["deleted_at"]
        return Message(
            id=int(row["id"]),
            content=str(row["content"]),
            user_id=int(row["user_id"]),
            created_at=_parse_datetime(str(row["created_at"])),
            updated_at=_parse_datetime(str(row["updated_at"])),
            deleted_at=_parse_datetime(str(deleted_at)) if deleted_at else None,
            author=MessageAuthor(
                id=int(row["user_id"]),
                first_name=str(row["author_first_name"]),
                last_name=str(row["author_last_name"]),
            ),
        )


__all__ = ["Database", "resolve_database_path"]
