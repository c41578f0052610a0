"""Presence broadcaster: online/offline announcements."""
import logging

from .events import OnlineUsersEvent, UserOfflineEvent, UserOnlineEvent
from .registry import SessionRegistry
from .session import Session, fan_out

logger = logging.getLogger(__name__)


class PresenceBroadcaster:
    """Announces registry transitions to connected clients.

    The new session gets a point-in-time ``online_users`` snapshot; from then
    on it has to follow the ``user_online``/``user_offline`` deltas.
    """

    def __init__(self, registry: SessionRegistry) -> None:
        self.registry = registry

    async def announce_connect(self, session: Session, came_online: bool) -> None:
        await session.send(OnlineUsersEvent(users=sorted(self.registry.list_online())))
        if came_online:
            logger.info(f"[Presence] {session.user_id} is online")
            await fan_out(
                self.registry.sessions_except_user(session.user_id),
                UserOnlineEvent(userId=session.user_id),
            )

    async def announce_disconnect(self, session: Session, went_offline: bool) -> None:
        if went_offline:
            logger.info(f"[Presence] {session.user_id} is offline")
            await fan_out(
                self.registry.sessions_except_user(session.user_id),
                UserOfflineEvent(userId=session.user_id),
            )
