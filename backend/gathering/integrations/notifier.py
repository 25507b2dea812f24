"""Outbound participant notifications.

Delivery mechanics (email, push, chat) live outside this service; the engine
only says who should hear about what.
"""
import enum
import logging
from abc import ABC, abstractmethod
from typing import Any

logger = logging.getLogger(__name__)


class NotificationKind(str, enum.Enum):
    reminder = "reminder"
    waitlist_promotion = "waitlist_promotion"
    status_change = "status_change"
    rescheduled = "rescheduled"
    acceptance_unresolved = "acceptance_unresolved"
    ai_analysis_timed_out = "ai_analysis_timed_out"
    ai_analysis_failed = "ai_analysis_failed"


class Notifier(ABC):
    """NotifyParticipant(userId, eventId, kind)."""

    @abstractmethod
    def notify(self, user_id: str, event_id: str, kind: NotificationKind, payload: dict[str, Any]) -> None:
        """Hand one notification to the delivery service. Must not block on delivery."""


class LoggingNotifier(Notifier):
    """Default notifier: records the notification in the service log."""

    def notify(self, user_id: str, event_id: str, kind: NotificationKind, payload: dict[str, Any]) -> None:
        logger.info("Notify user %s about event %s: %s %s", user_id, event_id, kind.value, payload)
