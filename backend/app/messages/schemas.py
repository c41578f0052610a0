"""Pydantic schemas for direct messages.

This module defines the data models for one-to-one conversations:
- Message: A stored message (text or image), as returned by the API and
  pushed over the realtime layer
- SendMessageRequest: Body of POST /messages/send
- ConversationPage: One page of conversation history
- ChatSummary: One row of the chat partner list
"""
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from app.users.schemas import EntityId, User

# Accepted request size for message text, before markup is stripped.
MAX_TEXT_LENGTH = 5000


class Message(BaseModel):
    """One unit of conversation content.

    Exactly one of ``text`` and ``image`` is set. Everything except ``read``
    is fixed at creation.

    Attributes:
        id: Unique message identifier (UUID).
        senderId: User who sent the message.
        receiverId: User the message is addressed to.
        text: Plain text body (markup already stripped).
        image: Public URL of the image body.
        imagePublicId: Storage identifier of the image.
        read: Whether the receiver has read the message.
        createdAt: Store-assigned creation time, the pagination cursor.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique message ID")
    senderId: str = Field(..., description="User ID of the sender")
    receiverId: str = Field(..., description="User ID of the receiver")
    text: Optional[str] = Field(default=None, description="Plain-text content")
    image: Optional[str] = Field(default=None, description="Image URL")
    imagePublicId: Optional[str] = Field(default=None, description="Image storage ID")
    read: bool = Field(default=False, description="Read by the receiver")
    createdAt: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation time assigned by the store"
    )

    @model_validator(mode="after")
    def _exactly_one_body(self) -> "Message":
        if bool(self.text) == bool(self.image):
            raise ValueError("Message must contain either text or an image")
        return self


class SendMessageRequest(BaseModel):
    """Request body for sending a text message."""
    receiverId: EntityId
    text: str = Field(..., min_length=1, max_length=MAX_TEXT_LENGTH)


class ConversationPage(BaseModel):
    """One page of history between two users, oldest message first.

    ``hasMore`` is true when the page came back full; the caller learns that
    history is exhausted from a short or empty page on the next request.
    """
    messages: List[Message] = Field(default_factory=list)
    hasMore: bool = False
    nextCursor: Optional[datetime] = None


class LastMessage(BaseModel):
    id: str
    text: Optional[str] = None
    image: Optional[str] = None
    createdAt: datetime


class ChatSummary(BaseModel):
    """A chat partner with the latest message exchanged and the unread count."""
    user: User
    lastMessage: LastMessage
    unreadCount: int = 0
