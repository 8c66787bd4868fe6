"""
Notification module interface.
"""

from typing import Any, Protocol, runtime_checkable

from .models import NotificationEvent


@runtime_checkable
class INotificationSender(Protocol):
    """
    Delivers one notification (email, push, webhook, ...).

    May raise; the dispatcher logs and drops failures.
    """

    async def notify(self, event: NotificationEvent, payload: dict[str, Any]) -> None:
        ...
