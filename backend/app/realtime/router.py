"""Realtime WebSocket endpoint.

This module provides:
    - WebSocket /ws: Presence, typing indicators, read receipts, and
      new-message notifications for the authenticated user

Protocol Message Types (client → server):
    - mark_read: Mark every message from senderId as read
    - typing: The user started typing to receiverId
    - stop_typing: The user stopped typing to receiverId

Sending messages is not part of this protocol; clients use
POST /messages/send and the server pushes new_message to the receiver.
"""
import logging

import anyio
import duckdb
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.requests import HTTPConnection

from app.auth.service import AuthenticationError, TokenVerifier

from .context import RealtimeContext
from .events import (
    ErrorEvent,
    EventParseError,
    MarkReadErrorEvent,
    MarkReadEvent,
    StopTypingEvent,
    TypingEvent,
    parse_client_event,
)
from .registry import TooManySessionsError

logger = logging.getLogger(__name__)

router = APIRouter()

# Close codes used before the handshake is accepted
AUTH_FAILED_CLOSE_CODE = 4401
TOO_MANY_SESSIONS_CLOSE_CODE = 1008  # Policy Violation


def get_realtime(connection: HTTPConnection) -> RealtimeContext:
    """Return the realtime context created in the application lifespan."""
    return connection.app.state.realtime


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for one realtime session.

    SECURITY MODEL:
        - The session token comes from the login cookie, never from frames
        - The user id used for every relay is the one the token carries

    Protocol Flow:
        1. Handshake → token verified, session admitted (or closed with
           4401 on bad auth, 1008 when the user has too many sessions)
           → Server sends: {type: "online_users", users: [...]}
           → Other users receive: {type: "user_online", userId} (first session only)
        2. Client sends: {type: "typing" | "stop_typing", receiverId}
           → Receiver's sessions get: {type: "user_typing" | "user_stop_typing", userId}
        3. Client sends: {type: "mark_read", senderId}
           → Sender's sessions get: {type: "messages_read", readBy, count}
           → Client gets: {type: "mark_read_success", senderId, count}
        4. On disconnect → other users receive {type: "user_offline", userId}
           (last session only)

    Args:
        websocket: The WebSocket connection.
    """
    ctx = get_realtime(websocket)

    try:
        user_id = TokenVerifier.from_config().verify_cookies(websocket.cookies)
    except AuthenticationError as e:
        logger.warning(f"[WS] Handshake rejected: {e}")
        await websocket.close(code=AUTH_FAILED_CLOSE_CODE, reason=str(e))
        return

    try:
        session, came_online = ctx.registry.admit(user_id, websocket)
    except TooManySessionsError as e:
        logger.warning(f"[WS] {e}. Rejecting new connection.")
        await websocket.close(code=TOO_MANY_SESSIONS_CLOSE_CODE, reason="Too many sessions")
        return

    try:
        await websocket.accept()
        logger.info(
            f"[WS] Session {session.id} accepted for user {user_id} "
            f"({ctx.registry.session_count(user_id)} open)"
        )
        await ctx.presence.announce_connect(session, came_online)

        # Main message loop
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            raw = message.get("text")
            if raw is None:
                await session.send(ErrorEvent(error="Invalid message format: expected a text frame"))
                continue

            try:
                event = parse_client_event(raw)
            except EventParseError as e:
                logger.debug(f"[WS] Session {session.id} sent invalid frame: {e}")
                if e.event_type == "mark_read":
                    await session.send(MarkReadErrorEvent(error=str(e)))
                else:
                    await session.send(ErrorEvent(error=str(e)))
                continue

            # --- Handle MARK_READ request ---
            if isinstance(event, MarkReadEvent):
                try:
                    await ctx.read_receipts.mark_read(session, event.senderId)
                except duckdb.Error as e:
                    logger.error(f"[WS] Mark read failed for {user_id}: {e}")
                    await session.send(MarkReadErrorEvent(error="Failed to mark messages as read"))
                continue

            # --- Handle TYPING indicator ---
            if isinstance(event, TypingEvent):
                await ctx.typing.signal_start(session, event.receiverId)
                continue

            # --- Handle STOP_TYPING indicator ---
            if isinstance(event, StopTypingEvent):
                await ctx.typing.signal_stop(session, event.receiverId)
                continue

    except WebSocketDisconnect:
        logger.info(f"[WS] Session {session.id} of user {user_id} disconnected")
    finally:
        cancelled = ctx.typing.cancel_session(session.id)
        if cancelled:
            logger.debug(f"[WS] Cancelled {cancelled} typing timers for session {session.id}")
        went_offline = ctx.registry.remove(session)
        # The handler task may already be cancelled by the server
        with anyio.CancelScope(shield=True):
            await ctx.presence.announce_disconnect(session, went_offline)
