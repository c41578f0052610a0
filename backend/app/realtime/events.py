"""Wire events of the realtime layer.

Every WebSocket frame is a JSON object whose ``type`` field names the event;
the remaining fields are its payload. Each event name maps to exactly one
model below, and client frames are validated into one of the client models
before they are dispatched.

Client → server:
    - mark_read {senderId}
    - typing {receiverId}
    - stop_typing {receiverId}

Server → client:
    - online_users {users}
    - user_online / user_offline {userId}
    - mark_read_success {senderId, count} / mark_read_error {error}
    - messages_read {readBy, count}
    - user_typing / user_stop_typing {userId}
    - new_message {message, from}
    - error {error}
"""
import json
from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from app.messages.schemas import Message
from app.users.schemas import EntityId


class EventParseError(ValueError):
    """A client frame that is not a valid client event.

    Attributes:
        event_type: The ``type`` the frame claimed, if it had a readable one.
    """

    def __init__(self, message: str, event_type: str = ""):
        super().__init__(message)
        self.event_type = event_type


# =============================================================================
# Client → server
# =============================================================================


class MarkReadEvent(BaseModel):
    type: Literal["mark_read"] = "mark_read"
    senderId: EntityId


class TypingEvent(BaseModel):
    type: Literal["typing"] = "typing"
    receiverId: EntityId


class StopTypingEvent(BaseModel):
    type: Literal["stop_typing"] = "stop_typing"
    receiverId: EntityId


ClientEvent = Annotated[
    Union[MarkReadEvent, TypingEvent, StopTypingEvent],
    Field(discriminator="type"),
]

CLIENT_EVENT_TYPES = ("mark_read", "typing", "stop_typing")

_client_event_adapter = TypeAdapter(ClientEvent)


def parse_client_event(raw: str) -> Union[MarkReadEvent, TypingEvent, StopTypingEvent]:
    """Validate one raw client frame.

    Raises:
        EventParseError: If the frame is not JSON, names an unknown event, or
            its payload does not match the event's schema.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        raise EventParseError("Invalid message format: expected JSON")

    if not isinstance(data, dict):
        raise EventParseError("Invalid message format: expected an object")

    event_type = data.get("type")
    if event_type not in CLIENT_EVENT_TYPES:
        raise EventParseError(f"Unknown event type: {event_type}")

    try:
        return _client_event_adapter.validate_python(data)
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][-1]) for err in e.errors() if err.get("loc"))
        raise EventParseError(f"Invalid {event_type} payload: {fields}", event_type)


# =============================================================================
# Server → client
# =============================================================================


class ServerEvent(BaseModel):
    """Base for events pushed to clients."""

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class OnlineUsersEvent(ServerEvent):
    type: Literal["online_users"] = "online_users"
    users: List[str]


class UserOnlineEvent(ServerEvent):
    type: Literal["user_online"] = "user_online"
    userId: str


class UserOfflineEvent(ServerEvent):
    type: Literal["user_offline"] = "user_offline"
    userId: str


class MarkReadSuccessEvent(ServerEvent):
    type: Literal["mark_read_success"] = "mark_read_success"
    senderId: str
    count: int


class MarkReadErrorEvent(ServerEvent):
    type: Literal["mark_read_error"] = "mark_read_error"
    error: str


class MessagesReadEvent(ServerEvent):
    type: Literal["messages_read"] = "messages_read"
    readBy: str
    count: int


class UserTypingEvent(ServerEvent):
    type: Literal["user_typing"] = "user_typing"
    userId: str


class UserStopTypingEvent(ServerEvent):
    type: Literal["user_stop_typing"] = "user_stop_typing"
    userId: str


class NewMessageEvent(ServerEvent):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["new_message"] = "new_message"
    message: Message
    from_: str = Field(..., alias="from")


class ErrorEvent(ServerEvent):
    type: Literal["error"] = "error"
    error: str
