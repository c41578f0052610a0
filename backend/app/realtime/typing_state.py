"""Typing indicators with automatic stop and a relay rate ceiling.

State is kept per (session, receiver) direction, not per user pair: two tabs
of the same user type independently. Each active direction owns one
cancellable auto-stop task, and every exit path (explicit stop, a new start,
disconnect, shutdown) cancels it.
"""
import asyncio
import logging
import time
from collections import deque
from typing import Callable, Deque, Dict, Tuple

from .events import UserStopTypingEvent, UserTypingEvent
from .registry import SessionRegistry
from .session import Session, fan_out

logger = logging.getLogger(__name__)

# (session_id, receiver_id)
TypingKey = Tuple[str, str]


class TypingCoordinator:
    """Relays typing start/stop signals from a session to a receiver.

    Args:
        registry: Used to find the receiver's live sessions.
        timeout: Seconds of inactivity after which ``user_stop_typing`` is
            relayed automatically.
        max_signals: Start relays allowed per direction within ``window``.
        window: Length of the rolling rate window in seconds.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        registry: SessionRegistry,
        timeout: float = 5.0,
        max_signals: int = 2,
        window: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry
        self.timeout = timeout
        self.max_signals = max_signals
        self.window = window
        self._clock = clock
        self._timers: Dict[TypingKey, asyncio.Task] = {}
        self._recent: Dict[TypingKey, Deque[float]] = {}

    async def signal_start(self, session: Session, receiver_id: str) -> bool:
        """Handle a typing signal.

        Returns:
            True if ``user_typing`` was relayed, False if the signal was
            dropped by the rate ceiling.
        """
        key = (session.id, receiver_id)
        if not self._allow(key):
            logger.debug(f"[Typing] Dropped start {session.user_id} -> {receiver_id}")
            return False

        self._cancel_timer(key)
        self._timers[key] = asyncio.create_task(
            self._auto_stop(key, session.user_id, receiver_id)
        )
        await fan_out(
            self.registry.sessions_for(receiver_id),
            UserTypingEvent(userId=session.user_id),
        )
        return True

    async def signal_stop(self, session: Session, receiver_id: str) -> None:
        """Handle an explicit stop: cancel the timer and relay immediately."""
        self._cancel_timer((session.id, receiver_id))
        await fan_out(
            self.registry.sessions_for(receiver_id),
            UserStopTypingEvent(userId=session.user_id),
        )

    def cancel_session(self, session_id: str) -> int:
        """Drop all typing state of a session without relaying anything.

        Returns:
            Number of pending auto-stop timers cancelled.
        """
        cancelled = 0
        for key in [k for k in self._timers if k[0] == session_id]:
            if self._cancel_timer(key):
                cancelled += 1
        for key in [k for k in self._recent if k[0] == session_id]:
            del self._recent[key]
        return cancelled

    def is_typing(self, session_id: str, receiver_id: str) -> bool:
        return (session_id, receiver_id) in self._timers

    def pending_count(self) -> int:
        return len(self._timers)

    def shutdown(self) -> None:
        for key in list(self._timers):
            self._cancel_timer(key)
        self._recent.clear()

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _allow(self, key: TypingKey) -> bool:
        now = self._clock()
        recent = self._recent.setdefault(key, deque())
        while recent and now - recent[0] >= self.window:
            recent.popleft()
        if len(recent) >= self.max_signals:
            return False
        recent.append(now)
        return True

    def _cancel_timer(self, key: TypingKey) -> bool:
        task = self._timers.pop(key, None)
        if task is None:
            return False
        task.cancel()
        return True

    async def _auto_stop(self, key: TypingKey, sender_id: str, receiver_id: str) -> None:
        await asyncio.sleep(self.timeout)
        # Deregister before relaying so a cancel from here on is a no-op
        self._timers.pop(key, None)
        logger.debug(f"[Typing] Auto-stop {sender_id} -> {receiver_id}")
        await fan_out(
            self.registry.sessions_for(receiver_id),
            UserStopTypingEvent(userId=sender_id),
        )
