"""UserService: DuckDB-backed user directory."""
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

import duckdb

from .schemas import User

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS users (
    id          VARCHAR PRIMARY KEY,
    fullname    VARCHAR NOT NULL,
    email       VARCHAR NOT NULL DEFAULT '',
    avatar      VARCHAR,
    created_at  TIMESTAMP NOT NULL
)
"""

_INDEX = "CREATE INDEX IF NOT EXISTS idx_users_fullname ON users(fullname)"


class UserService:
    """Singleton service for looking up users in DuckDB.

    Records are written by the account system; ``create_user`` exists for
    provisioning scripts and tests.
    """

    _instance: Optional["UserService"] = None
    _default_db_path: str = "users.duckdb"

    def __init__(self, db_path: Optional[str] = None) -> None:
        self._db_path = db_path or self._default_db_path
        self._conn = duckdb.connect(self._db_path)
        self._conn.execute(_CREATE_TABLE)
        self._conn.execute(_INDEX)
        logger.info("[UserService] Initialized with db=%s", self._db_path)

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "UserService":
        if cls._instance is None:
            cls._instance = cls(db_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Close and forget the singleton (for testing)."""
        if cls._instance is not None:
            cls._instance._conn.close()
        cls._instance = None

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    def create_user(
        self,
        fullname: str,
        email: str = "",
        avatar: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> User:
        user_id = user_id or str(uuid.uuid4())
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        self._conn.execute(
            "INSERT INTO users (id, fullname, email, avatar, created_at) VALUES (?, ?, ?, ?, ?)",
            [user_id, fullname, email, avatar, now],
        )
        return self.get_user(user_id)

    def get_user(self, user_id: str) -> Optional[User]:
        row = self._conn.execute(
            "SELECT * FROM users WHERE id = ?", [user_id]
        ).fetchone()
        return self._row_to_user(row) if row else None

    def get_users(self, user_ids: Iterable[str]) -> Dict[str, User]:
        """Batch lookup; unknown ids are simply absent from the result."""
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        rows = self._conn.execute(
            f"SELECT * FROM users WHERE id IN ({placeholders})", ids
        ).fetchall()
        users = [self._row_to_user(r) for r in rows]
        return {u.id: u for u in users}

    def list_contacts(self, exclude_user_id: str, limit: int = 500) -> List[User]:
        """Every user except *exclude_user_id*, ordered by full name."""
        rows = self._conn.execute(
            "SELECT * FROM users WHERE id <> ? ORDER BY fullname ASC LIMIT ?",
            [exclude_user_id, limit],
        ).fetchall()
        return [self._row_to_user(r) for r in rows]

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    _COLUMNS = ["id", "fullname", "email", "avatar", "created_at"]

    def _row_to_user(self, row) -> User:
        d = dict(zip(self._COLUMNS, row))
        return User(
            id=d["id"],
            fullname=d["fullname"],
            email=d["email"],
            avatar=d["avatar"],
            createdAt=d["created_at"].replace(tzinfo=timezone.utc),
        )
