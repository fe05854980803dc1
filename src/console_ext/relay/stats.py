"""Delivery bookkeeping for the relay."""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .notification import Notification
from .rate_limiter import RateLimiter

RATE_LIMITED = "rate_limited"


class Outcome(Enum):
    """What happened to a notification attempt."""

    SENT = "sent"  # Admitted; channel delivery is tracked separately
    UNDELIVERED = "undelivered"  # Denied before dispatch


@dataclass(frozen=True)
class DeliveryRecord:
    """A notification attempt and its outcome."""

    notification: Notification
    outcome: Outcome
    reason: str | None = None
    blocked_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Flatten into the notification payload plus outcome fields."""
        data: dict[str, Any] = self.notification.to_payload()
        data["status"] = self.outcome.value
        if self.outcome is Outcome.UNDELIVERED:
            data["reason"] = self.reason
            data["blocked_at"] = self.blocked_at
        return data


@dataclass(frozen=True)
class NotificationStats:
    """Point-in-time snapshot of delivery statistics."""

    sent: int
    undelivered: int
    sent_notifications: tuple[DeliveryRecord, ...]
    undelivered_notifications: tuple[DeliveryRecord, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "sent": self.sent,
            "undelivered": self.undelivered,
            "sent_notifications": [r.to_dict() for r in self.sent_notifications],
            "undelivered_notifications": [r.to_dict() for r in self.undelivered_notifications],
        }


class StatsTracker:
    """Append-only record of every admission decision.

    ``clear`` also wipes the rate limiter's history. That is the one place
    rate-limit state is reset from outside the limiter, meant for tests and
    operator resets from the dashboard.
    """

    def __init__(self, rate_limiter: RateLimiter | None = None):
        self.rate_limiter = rate_limiter
        self._sent: list[DeliveryRecord] = []
        self._undelivered: list[DeliveryRecord] = []

    def record_sent(self, notification: Notification) -> DeliveryRecord:
        record = DeliveryRecord(notification, Outcome.SENT)
        self._sent.append(record)
        return record

    def record_undelivered(
        self,
        notification: Notification,
        reason: str = RATE_LIMITED,
        blocked_at: str | None = None,
    ) -> DeliveryRecord:
        record = DeliveryRecord(
            notification,
            Outcome.UNDELIVERED,
            reason=reason,
            blocked_at=blocked_at or notification.timestamp,
        )
        self._undelivered.append(record)
        return record

    def stats(self) -> NotificationStats:
        """Return counts and copies of both record lists."""
        return NotificationStats(
            sent=len(self._sent),
            undelivered=len(self._undelivered),
            sent_notifications=tuple(self._sent),
            undelivered_notifications=tuple(self._undelivered),
        )

    def clear(self) -> None:
        """Reset both record lists and the rate limiter history."""
        self._sent = []
        self._undelivered = []
        if self.rate_limiter is not None:
            self.rate_limiter.clear()
