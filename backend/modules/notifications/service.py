"""
Fire-and-forget notification dispatch.

Ledger services call `NotificationDispatcher.notify` only after their
transaction has committed. Each send runs in its own asyncio task, so a
slow or failing sender never blocks or rolls back a ledger operation.
"""

import asyncio
import logging
from typing import Any, Optional

from .interfaces import INotificationSender
from .models import NotificationEvent

logger = logging.getLogger(__name__)


class LoggingNotificationSender:
    """Sender that writes notifications to the log."""

    async def notify(self, event: NotificationEvent, payload: dict[str, Any]) -> None:
        logger.info(f"Notification {event.value}: {payload}")


class NotificationDispatcher:
    """Schedules sends as background tasks and tracks them until done."""

    def __init__(self, sender: Optional[INotificationSender] = None, enabled: bool = True):
        self._sender = sender or LoggingNotificationSender()
        self._enabled = enabled
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def notify(self, event: NotificationEvent, payload: dict[str, Any]) -> None:
        """Schedule a send and return immediately."""
        if not self._enabled:
            return
        task = asyncio.get_running_loop().create_task(self._send(event, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(self, event: NotificationEvent, payload: dict[str, Any]) -> None:
        try:
            await self._sender.notify(event, payload)
        except Exception:
            logger.exception(f"Notification {event.value} failed")

    async def drain(self) -> None:
        """Wait for all scheduled sends to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending))
