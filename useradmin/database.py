"""SQLite-backed persistence for user accounts."""
from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

from passlib.context import CryptContext

from .models import User


ORDERABLE_COLUMNS = ("id", "name", "email", "created_at", "updated_at")
SEARCHABLE_COLUMNS = ("name", "email")


class UniquenessConflict(Exception):
    """Raised when a write violates a storage-level uniqueness constraint."""

    def __init__(self, field: str) -> None:
        super().__init__(f"A user with that {field} already exists")
        self.field = field


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "useradmin.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """Return a one-way hash of ``password`` suitable for storage."""

    return _pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    try:
        return _pwd_context.verify(password, hashed)
    except ValueError:
        return False


def _search_clause(search: Optional[str]) -> Tuple[str, List[object]]:
    term = (search or "").strip()
    if not term:
        return "", []
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    pattern = f"%{escaped}%"
    conditions = " OR ".join(f"{column} LIKE ? ESCAPE '\\'" for column in SEARCHABLE_COLUMNS)
    return f" WHERE ({conditions})", [pattern] * len(SEARCHABLE_COLUMNS)


class Database:
    """Simple wrapper around SQLite for persisting users."""

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path
        self._local = threading.local()

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        active = getattr(self._local, "conn", None)
        if active is not None:
            yield active
            return

        conn = self._open()
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Group every statement issued on this thread into one transaction.

        The transaction commits when the block exits normally and rolls back
        when it raises. Nested calls join the outer transaction.
        """

        if getattr(self._local, "conn", None) is not None:
            with self._connect() as conn:
                yield conn
            return

        conn = self._open()
        self._local.conn = conn
        try:
            with conn:
                yield conn
        finally:
            self._local.conn = None
            conn.close()

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE COLLATE NOCASE,
                    password TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                """
            )

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def insert_user(self, *, name: str, email: str, password: str) -> User:
        """Persist a new user.

        ``password`` must already be hashed; the storage layer writes it as-is.
        """

        created_at = _current_timestamp()
        serialized = _serialize_datetime(created_at)

        with self._connect() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO users (name, email, password, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (name, email, password, serialized, serialized),
                )
            except sqlite3.IntegrityError as exc:
                raise UniquenessConflict("email") from exc
            user_id = cursor.lastrowid

        return User(id=user_id, name=name, email=email, created_at=created_at, updated_at=created_at)

    def get_user(self, user_id: int) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def email_taken(self, email: str, *, ignore_id: Optional[int] = None) -> bool:
        """Return ``True`` if another user already owns ``email``."""

        query = "SELECT 1 FROM users WHERE email = ?"
        params: List[object] = [email.strip()]
        if ignore_id is not None:
            query += " AND id != ?"
            params.append(ignore_id)
        with self._connect() as conn:
            row = conn.execute(query, params).fetchone()
        return row is not None

    def update_user(self, user_id: int, **fields: object) -> Optional[User]:
        """Apply the supplied attributes to an existing user.

        Attributes that are not passed are left untouched. Returns ``None`` when
        the user does not exist.
        """

        allowed = ("name", "email", "password")
        updates: List[str] = []
        values: List[object] = []
        for column in allowed:
            if column not in fields:
                continue
            updates.append(f"{column} = ?")
            values.append(fields[column])

        if not updates:
            return self.get_user(user_id)

        updates.append("updated_at = ?")
        values.append(_serialize_datetime(_current_timestamp()))
        values.append(user_id)
        query = f"UPDATE users SET {', '.join(updates)} WHERE id = ?"

        with self._connect() as conn:
            try:
                cursor = conn.execute(query, values)
            except sqlite3.IntegrityError as exc:
                raise UniquenessConflict("email") from exc
            if cursor.rowcount == 0:
                return None

        return self.get_user(user_id)

    def delete_user(self, user_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
            return cursor.rowcount > 0

    def list_users(self) -> List[User]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY id").fetchall()
        return [self._row_to_user(row) for row in rows]

    def count_users(self, search: Optional[str] = None) -> int:
        clause, params = _search_clause(search)
        with self._connect() as conn:
            row = conn.execute(f"SELECT COUNT(*) AS total FROM users{clause}", params).fetchone()
        return int(row["total"])

    def query_users(
        self,
        *,
        search: Optional[str] = None,
        order: Sequence[Tuple[str, str]] = (),
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[User]:
        """Return a filtered, ordered page of users.

        ``order`` is a sequence of ``(column, direction)`` pairs; columns outside
        :data:`ORDERABLE_COLUMNS` are ignored.
        """

        clause, params = _search_clause(search)
        order_terms: List[str] = []
        for column, direction in order:
            if column not in ORDERABLE_COLUMNS:
                continue
            keyword = "DESC" if direction.lower() == "desc" else "ASC"
            order_terms.append(f"{column} {keyword}")
        if not order_terms:
            order_terms.append("id ASC")

        query = f"SELECT * FROM users{clause} ORDER BY {', '.join(order_terms)}"
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            params = [*params, limit, max(offset, 0)]
        elif offset > 0:
            query += " LIMIT -1 OFFSET ?"
            params = [*params, offset]

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_user(row) for row in rows]

    def verify_user_password(self, user_id: int, password: str) -> bool:
        """Return ``True`` if the supplied password matches the stored hash."""

        stored_hash = self.get_password_hash(user_id)
        if not stored_hash:
            return False
        return verify_password(password, stored_hash)

    def get_password_hash(self, user_id: int) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT password FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        return str(row["password"])

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            created_at=_parse_datetime(str(row["created_at"])),
            updated_at=_parse_datetime(str(row["updated_at"])),
        )


__all__ = [
    "Database",
    "ORDERABLE_COLUMNS",
    "UniquenessConflict",
    "hash_password",
    "resolve_database_path",
    "verify_password",
]
