"""MessageService: DuckDB-backed direct message storage.

The store is the only place a message is ever created. It also assigns
``created_at``, which is strictly increasing so that the timestamp can serve
as an unambiguous pagination cursor.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import duckdb

from .schemas import ChatSummary, ConversationPage, LastMessage, Message

logger = logging.getLogger(__name__)

# Default page size for conversation history
DEFAULT_PAGE_SIZE = 50

# Maximum page size to prevent abuse
MAX_PAGE_SIZE = 100

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS messages (
    id              VARCHAR PRIMARY KEY,
    sender_id       VARCHAR NOT NULL,
    receiver_id     VARCHAR NOT NULL,
    text            VARCHAR,
    image_url       VARCHAR,
    image_public_id VARCHAR,
    is_read         BOOLEAN NOT NULL DEFAULT FALSE,
    created_at      TIMESTAMP NOT NULL
)
"""

_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_messages_pair ON messages(sender_id, receiver_id)",
    "CREATE INDEX IF NOT EXISTS idx_messages_created ON messages(created_at)",
)


def _to_db_time(value: datetime) -> datetime:
    """Naive UTC, the form timestamps are stored in."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db_time(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc)


class MessageService:
    """Singleton service for storing and querying messages in DuckDB.

    All calls are synchronous; DuckDB is embedded and fast for this volume
    of data.
    """

    _instance: Optional["MessageService"] = None
    _default_db_path: str = "chat.duckdb"

    def __init__(self, db_path: Optional[str] = None) -> None:
        self._db_path = db_path or self._default_db_path
        self._conn = duckdb.connect(self._db_path)
        self._conn.execute(_CREATE_TABLE)
        for statement in _INDEXES:
            self._conn.execute(statement)
        latest = self._conn.execute("SELECT max(created_at) FROM messages").fetchone()
        self._last_created_at: Optional[datetime] = latest[0] if latest else None
        logger.info("[MessageService] Initialized with db=%s", self._db_path)

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "MessageService":
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
    # Writes
    # -----------------------------------------------------------------------

    def create_message(
        self,
        sender_id: str,
        receiver_id: str,
        text: Optional[str] = None,
        image_url: Optional[str] = None,
        image_public_id: Optional[str] = None,
    ) -> Message:
        """Persist a new unread message.

        Raises:
            ValueError: If both or neither of text and image are given.
        """
        message = Message(
            id=str(uuid.uuid4()),
            senderId=sender_id,
            receiverId=receiver_id,
            text=text or None,
            image=image_url or None,
            imagePublicId=image_public_id,
            read=False,
            createdAt=_from_db_time(self._next_timestamp()),
        )
        self._conn.execute(
            """
            INSERT INTO messages
              (id, sender_id, receiver_id, text, image_url, image_public_id,
               is_read, created_at)
            VALUES (?, ?, ?, ?, ?, ?, FALSE, ?)
            """,
            [
                message.id, sender_id, receiver_id, message.text, message.image,
                image_public_id, _to_db_time(message.createdAt),
            ],
        )
        return message

    def mark_read(self, reader_id: str, sender_id: str) -> int:
        """Flip every unread message from *sender_id* to *reader_id* to read.

        Returns:
            Number of messages that changed state. A second call returns 0.
        """
        rows = self._conn.execute(
            """
            UPDATE messages SET is_read = TRUE
            WHERE sender_id = ? AND receiver_id = ? AND is_read = FALSE
            RETURNING id
            """,
            [sender_id, reader_id],
        ).fetchall()
        return len(rows)

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    def get_message(self, message_id: str) -> Optional[Message]:
        row = self._conn.execute(
            "SELECT * FROM messages WHERE id = ?", [message_id]
        ).fetchone()
        return self._row_to_message(row) if row else None

    def page_conversation(
        self,
        user_a: str,
        user_b: str,
        before: Optional[datetime] = None,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> ConversationPage:
        """Return one page of history between two users.

        Selects the ``limit`` newest messages older than ``before`` (or the
        newest overall without a cursor) and returns them oldest first, so the
        caller can prepend the page to what it already shows.

        Args:
            user_a: One participant.
            user_b: The other participant.
            before: Cursor; only messages created strictly before it.
            limit: Page size, clamped to 1..MAX_PAGE_SIZE.

        Returns:
            ConversationPage whose ``nextCursor`` is the creation time of the
            oldest message in the page, or None for an empty page.
        """
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        query = """
            SELECT * FROM messages
            WHERE ((sender_id = ? AND receiver_id = ?)
                OR (sender_id = ? AND receiver_id = ?))
        """
        params: list = [user_a, user_b, user_b, user_a]
        if before is not None:
            query += " AND created_at < ?"
            params.append(_to_db_time(before))
        query += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)

        rows = self._conn.execute(query, params).fetchall()
        messages = [self._row_to_message(r) for r in reversed(rows)]
        return ConversationPage(
            messages=messages,
            hasMore=len(messages) == limit,
            nextCursor=messages[0].createdAt if messages else None,
        )

    def chat_partners(self, user_id: str, limit: int = 100) -> List[dict]:
        """Latest message and unread count per conversation partner.

        Returns:
            Dicts with ``partner_id``, ``last_message`` (LastMessage) and
            ``unread_count``, newest conversation first.
        """
        rows = self._conn.execute(
            """
            WITH mine AS (
                SELECT *,
                       CASE WHEN sender_id = ? THEN receiver_id ELSE sender_id END AS partner_id
                FROM messages
                WHERE sender_id = ? OR receiver_id = ?
            ),
            ranked AS (
                SELECT *,
                       row_number() OVER (PARTITION BY partner_id ORDER BY created_at DESC) AS rn,
                       CAST(sum(CASE WHEN receiver_id = ? AND is_read = FALSE THEN 1 ELSE 0 END)
                            OVER (PARTITION BY partner_id) AS BIGINT) AS unread_count
                FROM mine
            )
            SELECT partner_id, id, text, image_url, created_at, unread_count
            FROM ranked
            WHERE rn = 1
            ORDER BY created_at DESC
            LIMIT ?
            """,
            [user_id, user_id, user_id, user_id, limit],
        ).fetchall()
        return [
            {
                "partner_id": r[0],
                "last_message": LastMessage(
                    id=r[1], text=r[2], image=r[3], createdAt=_from_db_time(r[4])
                ),
                "unread_count": int(r[5]),
            }
            for r in rows
        ]

    def count_messages(self) -> int:
        return self._conn.execute("SELECT count(*) FROM messages").fetchone()[0]

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    _COLUMNS = [
        "id", "sender_id", "receiver_id", "text", "image_url",
        "image_public_id", "is_read", "created_at",
    ]

    def _next_timestamp(self) -> datetime:
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        if self._last_created_at is not None and now <= self._last_created_at:
            now = self._last_created_at + timedelta(microseconds=1)
        self._last_created_at = now
        return now

    def _row_to_message(self, row) -> Message:
        d = dict(zip(self._COLUMNS, row))
        return Message(
            id=d["id"],
            senderId=d["sender_id"],
            receiverId=d["receiver_id"],
            text=d["text"],
            image=d["image_url"],
            imagePublicId=d["image_public_id"],
            read=d["is_read"],
            createdAt=_from_db_time(d["created_at"]),
        )


def build_chat_summaries(partners: List[dict], users: dict) -> List[ChatSummary]:
    """Join partner rows with user records; partners without a record are dropped."""
    return [
        ChatSummary(
            user=users[p["partner_id"]],
            lastMessage=p["last_message"],
            unreadCount=p["unread_count"],
        )
        for p in partners
        if p["partner_id"] in users
    ]
