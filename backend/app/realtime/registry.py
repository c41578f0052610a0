"""Session registry: which users are connected, and through which sessions.

The registry is plain in-memory state owned by the process. No method
awaits, so the 0→1 and 1→0 transitions are exact without locks.
"""
import logging
from typing import Any, Dict, List, Optional, Set, Tuple

from .session import Session

logger = logging.getLogger(__name__)

# Default cap on concurrent sessions per user
DEFAULT_MAX_SESSIONS_PER_USER = 5


class TooManySessionsError(Exception):
    """The user already holds the maximum number of concurrent sessions."""

    def __init__(self, user_id: str, limit: int):
        super().__init__(f"Too many sessions for user {user_id} (limit {limit})")
        self.user_id = user_id
        self.limit = limit


class SessionRegistry:
    """Maps user ids to their live sessions.

    A user is online iff they hold at least one session. ``admit`` and
    ``remove`` report the online/offline transitions so the caller can
    announce each transition exactly once.
    """

    def __init__(self, max_sessions_per_user: int = DEFAULT_MAX_SESSIONS_PER_USER) -> None:
        self.max_sessions_per_user = max_sessions_per_user
        # user_id -> {session_id -> Session}
        self._sessions: Dict[str, Dict[str, Session]] = {}

    def admit(self, user_id: str, websocket: Any) -> Tuple[Session, bool]:
        """Register a new session for *user_id*.

        Returns:
            Tuple of (session, came_online); came_online is True only for the
            user's first live session.

        Raises:
            TooManySessionsError: If the user is already at the cap. Existing
                sessions are left untouched.
        """
        user_sessions = self._sessions.get(user_id, {})
        if len(user_sessions) >= self.max_sessions_per_user:
            logger.warning(
                f"[Registry] Rejecting session for {user_id}: "
                f"{len(user_sessions)}/{self.max_sessions_per_user} already open"
            )
            raise TooManySessionsError(user_id, self.max_sessions_per_user)

        session = Session(user_id=user_id, websocket=websocket)
        came_online = not user_sessions
        self._sessions.setdefault(user_id, {})[session.id] = session
        logger.info(
            f"[Registry] Admitted session {session.id} for {user_id} "
            f"({len(self._sessions[user_id])} open)"
        )
        return session, came_online

    def remove(self, session: Session) -> bool:
        """Forget a session.

        Returns:
            True if this was the user's last session (the user went offline).
            Removing an unknown session returns False.
        """
        user_sessions = self._sessions.get(session.user_id)
        if not user_sessions or session.id not in user_sessions:
            return False

        del user_sessions[session.id]
        if user_sessions:
            return False

        del self._sessions[session.user_id]
        logger.info(f"[Registry] User {session.user_id} has no open sessions")
        return True

    def get_session(self, session_id: str) -> Optional[Session]:
        for user_sessions in self._sessions.values():
            if session_id in user_sessions:
                return user_sessions[session_id]
        return None

    def sessions_for(self, user_id: str) -> List[Session]:
        """All live sessions of one user (empty if offline)."""
        return list(self._sessions.get(user_id, {}).values())

    def sessions_except_user(self, user_id: str) -> List[Session]:
        """All live sessions that do not belong to *user_id*."""
        return [
            session
            for uid, user_sessions in self._sessions.items()
            if uid != user_id
            for session in user_sessions.values()
        ]

    def session_count(self, user_id: str) -> int:
        return len(self._sessions.get(user_id, {}))

    def is_online(self, user_id: str) -> bool:
        return bool(self._sessions.get(user_id))

    def list_online(self) -> Set[str]:
        return set(self._sessions)

    def clear(self) -> None:
        """Drop every session (used at shutdown)."""
        self._sessions.clear()
