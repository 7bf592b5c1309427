"""
Registry of outbound messages waiting out their cancellation window.

One pending message per user. Registering a new one cancels the previous.
"""
import asyncio
import logging
import threading
from typing import Dict

logger = logging.getLogger(__name__)


class PendingMessage:
    """Cancellation handle for one delayed send."""

    def __init__(self, user_id: int, description: str = ""):
        self.user_id = user_id
        self.description = description
        self._cancelled = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    async def wait(self, delay_seconds: float) -> bool:
        """
        Sleep through the cancellation window.

        Returns:
            True if the message was cancelled before the delay elapsed
        """
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=delay_seconds)
        except asyncio.TimeoutError:
            return False
        return True


class PendingMessageRegistry:
    def __init__(self):
        self._lock = threading.Lock()
        self._pending: Dict[int, PendingMessage] = {}

    def register(self, user_id: int, description: str = "") -> PendingMessage:
        handle = PendingMessage(user_id, description)
        with self._lock:
            previous = self._pending.get(user_id)
            self._pending[user_id] = handle
        if previous is not None:
            logger.info(f"Replacing pending message for user {user_id}")
            previous.cancel()
        return handle

    def cancel(self, user_id: int) -> bool:
        """Cancel the user's pending message. Returns False if none was pending."""
        with self._lock:
            handle = self._pending.pop(user_id, None)
        if handle is None:
            return False
        handle.cancel()
        logger.info(f"Cancelled pending message for user {user_id}")
        return True

    def discard(self, user_id: int, handle: PendingMessage) -> None:
        """Forget a handle once its send finished, unless it was already replaced."""
        with self._lock:
            if self._pending.get(user_id) is handle:
                del self._pending[user_id]

    def has_pending(self, user_id: int) -> bool:
        with self._lock:
            return user_id in self._pending
