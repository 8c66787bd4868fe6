"""
Notifications module.

Public API:
- INotificationSender: Interface for delivery backends
- NotificationDispatcher: Fire-and-forget scheduling with drain()
- NotificationEvent: Event names
"""

from .interfaces import INotificationSender
from .models import NotificationEvent
from .service import LoggingNotificationSender, NotificationDispatcher

__all__ = [
    "INotificationSender",
    "NotificationEvent",
    "LoggingNotificationSender",
    "NotificationDispatcher",
]
