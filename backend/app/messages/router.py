"""Messages router providing conversation HTTP endpoints.

This module provides:
    - GET /messages/contacts: Every user except the caller
    - GET /messages/chats: Chat partners with last message and unread count
    - GET /messages/{user_id}: Paginated conversation history
    - POST /messages/send: Send a text message
    - POST /messages/send-image: Send an image message

Sending persists the message first and only then pushes ``new_message`` to
the receiver's live sessions; a failed write has no realtime side effect.
"""
import logging
from datetime import datetime
from typing import Optional

import duckdb
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse

from app.auth.dependencies import get_current_user_id
from app.config import get_config
from app.images.router import get_image_url
from app.images.schemas import ImageValidationError
from app.images.service import ImageStorageService
from app.realtime.router import get_realtime
from app.users.schemas import is_valid_id
from app.users.service import UserService

from .sanitize import strip_markup
from .schemas import SendMessageRequest
from .service import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, MessageService, build_chat_summaries

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["messages"])


def _messages() -> MessageService:
    return MessageService.get_instance()


def _users() -> UserService:
    return UserService.get_instance()


@router.get("/contacts")
async def get_contacts(user_id: str = Depends(get_current_user_id)) -> JSONResponse:
    """List every user except the caller, ordered by full name."""
    limit = get_config().messages.contacts_limit
    try:
        contacts = _users().list_contacts(user_id, limit=limit)
    except duckdb.Error as e:
        logger.error(f"[messages] Get contacts failed for {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to load contacts")

    return JSONResponse({"contacts": [c.model_dump(mode="json") for c in contacts]})


@router.get("/chats")
async def get_chat_partners(user_id: str = Depends(get_current_user_id)) -> JSONResponse:
    """List the caller's conversations, most recent first.

    Each entry carries the partner, the last message exchanged, and how many
    messages from the partner the caller has not read yet.
    """
    limit = get_config().messages.chats_limit
    try:
        partners = _messages().chat_partners(user_id, limit=limit)
        users = _users().get_users(p["partner_id"] for p in partners)
    except duckdb.Error as e:
        logger.error(f"[messages] Get chats failed for {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to load chats")

    chats = build_chat_summaries(partners, users)
    return JSONResponse({"chats": [c.model_dump(mode="json") for c in chats]})


@router.get("/{other_user_id}")
async def get_messages(
    request: Request,
    other_user_id: str,
    before: Optional[datetime] = Query(None, description="Cursor (get messages created before this time)"),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Number of messages to return"),
    user_id: str = Depends(get_current_user_id),
) -> JSONResponse:
    """Get paginated conversation history with another user.

    Clients fetch older messages by passing the ``nextCursor`` of the
    previous page as ``before``. Fetching the first page (no cursor) also
    marks the other user's unread messages to the caller as read.

    Args:
        other_user_id: The conversation partner.
        before: ISO-8601 cursor. Returns messages older than this.
                If not provided, returns the most recent messages.
        limit: Maximum number of messages to return (1-100, default 50).

    Returns:
        JSON with messages (oldest first), user, hasMore and nextCursor.

    Example:
        GET /messages/5b0c...?limit=50
        GET /messages/5b0c...?before=2026-01-05T10:00:00.123456Z&limit=50
    """
    if not is_valid_id(other_user_id):
        raise HTTPException(status_code=400, detail="Invalid user ID")

    try:
        other_user = _users().get_user(other_user_id)
        if other_user is None:
            raise HTTPException(status_code=404, detail="User not found")

        page = _messages().page_conversation(user_id, other_user_id, before=before, limit=limit)
    except duckdb.Error as e:
        logger.error(f"[messages] Get messages failed for {user_id}/{other_user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to load messages")

    if before is None:
        receipts = get_realtime(request).read_receipts
        try:
            count = receipts.store.mark_read(reader_id=user_id, sender_id=other_user_id)
        except duckdb.Error as e:
            # The page itself was served fine; only the side effect failed
            logger.error(f"[messages] Mark read on open failed for {user_id}: {e}")
            count = 0
        if count:
            await receipts.notify_read(reader_id=user_id, other_user_id=other_user_id, count=count)

    return JSONResponse({
        **page.model_dump(mode="json"),
        "user": {
            "id": other_user.id,
            "fullname": other_user.fullname,
            "avatar": other_user.avatar,
        },
    })


@router.post("/send", status_code=201)
async def send_message(
    request: Request,
    body: SendMessageRequest,
    user_id: str = Depends(get_current_user_id),
) -> JSONResponse:
    """Send a text message.

    Markup is stripped before storage. The created message is pushed to the
    receiver's live sessions after it has been persisted.

    Returns:
        The created message (201 Created).
    """
    text = strip_markup(body.text, max_length=get_config().messages.max_text_length)
    if not text:
        raise HTTPException(status_code=400, detail="Message content is required")

    try:
        if _users().get_user(body.receiverId) is None:
            raise HTTPException(status_code=404, detail="Receiver not found")
        message = _messages().create_message(
            sender_id=user_id, receiver_id=body.receiverId, text=text
        )
    except duckdb.Error as e:
        logger.error(f"[messages] Send failed {user_id} -> {body.receiverId}: {e}")
        raise HTTPException(status_code=500, detail="Failed to send message")

    logger.info(f"[messages] {user_id} -> {body.receiverId}: message {message.id}")
    await get_realtime(request).delivery.relay(message)

    return JSONResponse({"message": message.model_dump(mode="json")}, status_code=201)


@router.post("/send-image", status_code=201)
async def send_image_message(
    request: Request,
    receiverId: str = Form(...),
    image: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
) -> JSONResponse:
    """Send an image message.

    Accepted types are JPEG, PNG, GIF and WEBP up to 5MB. The image is
    stored first, then the message is created, then pushed to the receiver.

    Raises:
        HTTPException 400: Malformed receiver id or rejected image
        HTTPException 404: Unknown receiver
        HTTPException 500: Storage failure
    """
    if not is_valid_id(receiverId):
        raise HTTPException(status_code=400, detail="Invalid receiver ID")

    images = ImageStorageService.get_instance()
    # One byte past the limit is enough for validation to reject it
    content = await image.read(images.max_size_bytes + 1)
    mime_type = image.content_type or "application/octet-stream"

    try:
        if _users().get_user(receiverId) is None:
            raise HTTPException(status_code=404, detail="Receiver not found")
        metadata = await images.save_image(owner_id=user_id, content=content, mime_type=mime_type)
        message = _messages().create_message(
            sender_id=user_id,
            receiver_id=receiverId,
            image_url=get_image_url(request, metadata.id),
            image_public_id=metadata.id,
        )
    except ImageValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (duckdb.Error, OSError) as e:
        logger.error(f"[messages] Send image failed {user_id} -> {receiverId}: {e}")
        raise HTTPException(status_code=500, detail="Failed to send image")

    logger.info(f"[messages] {user_id} -> {receiverId}: image message {message.id}")
    await get_realtime(request).delivery.relay(message)

    return JSONResponse({"message": message.model_dump(mode="json")}, status_code=201)
