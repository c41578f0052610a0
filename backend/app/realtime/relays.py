"""Delivery and read-receipt relays.

Both relays are notifications layered on top of the message store: the
store is the source of truth, and a push that finds the target offline is
simply not delivered. Clients reconcile by refetching.
"""
import logging

from app.messages.schemas import Message
from app.messages.service import MessageService

from .events import MarkReadSuccessEvent, MessagesReadEvent, NewMessageEvent
from .registry import SessionRegistry
from .session import Session, fan_out

logger = logging.getLogger(__name__)


class MessageRelay:
    """Pushes already-persisted messages to the receiver's live sessions.

    Never creates a message; the REST send path is the only writer.
    """

    def __init__(self, registry: SessionRegistry) -> None:
        self.registry = registry

    async def relay(self, message: Message) -> int:
        """Fan ``new_message`` out to every session of the receiver.

        Returns:
            Number of sessions reached (0 when the receiver is offline).
        """
        sessions = self.registry.sessions_for(message.receiverId)
        if not sessions:
            logger.debug(
                f"[Relay] Receiver {message.receiverId} offline; message {message.id} not pushed"
            )
            return 0
        delivered = await fan_out(
            sessions, NewMessageEvent(message=message, from_=message.senderId)
        )
        logger.info(
            f"[Relay] new_message {message.id}: {message.senderId} -> {message.receiverId} "
            f"({delivered} sessions)"
        )
        return delivered


class ReadReceiptRelay:
    """Marks a conversation read and tells the sender."""

    def __init__(self, registry: SessionRegistry, store: MessageService) -> None:
        self.registry = registry
        self.store = store

    async def mark_read_for(self, reader_id: str, other_user_id: str) -> int:
        """Flip unread messages from *other_user_id* to *reader_id* and notify.

        ``messages_read`` goes to the other user's sessions even when nothing
        changed (count 0).

        Returns:
            Number of messages flipped.
        """
        count = self.store.mark_read(reader_id=reader_id, sender_id=other_user_id)
        await self.notify_read(reader_id, other_user_id, count)
        return count

    async def notify_read(self, reader_id: str, other_user_id: str, count: int) -> int:
        """Push ``messages_read`` to the other user's live sessions."""
        logger.info(f"[Receipts] {reader_id} read {count} messages from {other_user_id}")
        return await fan_out(
            self.registry.sessions_for(other_user_id),
            MessagesReadEvent(readBy=reader_id, count=count),
        )

    async def mark_read(self, session: Session, other_user_id: str) -> int:
        """Handle a ``mark_read`` request and acknowledge it to the requester."""
        count = await self.mark_read_for(session.user_id, other_user_id)
        await session.send(MarkReadSuccessEvent(senderId=other_user_id, count=count))
        return count
