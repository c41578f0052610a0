"""Process-lifetime container for realtime state."""
import logging

from app.config import RealtimeSettings
from app.messages.service import MessageService

from .presence import PresenceBroadcaster
from .registry import SessionRegistry
from .relays import MessageRelay, ReadReceiptRelay
from .typing_state import TypingCoordinator

logger = logging.getLogger(__name__)


class RealtimeContext:
    """Owns the registry, typing timers, and relays for one server process.

    Created in the application lifespan and stored on ``app.state.realtime``;
    ``shutdown`` cancels every pending timer and forgets every session.
    Nothing here is shared across processes.
    """

    def __init__(self, store: MessageService, settings: RealtimeSettings) -> None:
        self.settings = settings
        self.registry = SessionRegistry(max_sessions_per_user=settings.max_sessions_per_user)
        self.presence = PresenceBroadcaster(self.registry)
        self.typing = TypingCoordinator(
            self.registry,
            timeout=settings.typing_timeout_seconds,
            max_signals=settings.typing_rate_limit,
            window=settings.typing_rate_window_seconds,
        )
        self.delivery = MessageRelay(self.registry)
        self.read_receipts = ReadReceiptRelay(self.registry, store)

    async def shutdown(self) -> None:
        pending = self.typing.pending_count()
        self.typing.shutdown()
        self.registry.clear()
        logger.info(f"[Realtime] Shut down ({pending} typing timers cancelled)")
