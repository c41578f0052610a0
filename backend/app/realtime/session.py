"""Live realtime sessions and best-effort fan-out."""
import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable, List

from .events import ServerEvent

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Session:
    """One live WebSocket connection belonging to one authenticated user.

    Attributes:
        user_id: Owner of the connection.
        websocket: The underlying connection; anything with an async
            ``send_json``.
        id: Backend-generated session identifier.
        connected_at: Unix timestamp of admission.
    """
    user_id: str
    websocket: Any
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    connected_at: float = field(default_factory=time.time)

    async def send(self, event: ServerEvent) -> bool:
        """Send one event, returning False instead of raising on failure."""
        try:
            await self.websocket.send_json(event.to_wire())
            return True
        except Exception as e:
            logger.debug(f"[Session] Failed to send {event.type} to session {self.id}: {e}")
            return False


async def fan_out(sessions: Iterable[Session], event: ServerEvent) -> int:
    """Send an event to several sessions concurrently.

    Sends to dead connections are logged and ignored; nothing is retried and
    no session is evicted here (disconnect handling does that).

    Returns:
        Number of sessions the event was handed to successfully.
    """
    targets: List[Session] = list(sessions)
    if not targets:
        return 0

    results = await asyncio.gather(
        *[session.send(event) for session in targets],
        return_exceptions=True
    )
    delivered = sum(1 for ok in results if ok is True)
    if delivered < len(targets):
        logger.info(
            f"[Session] {event.type} reached {delivered}/{len(targets)} sessions"
        )
    return delivered
