"""Notification relay for critical log output.

Provides sink interception, keyword classification, rate limiting and
fan-out to text, call, webhook and DataDog channels.
"""

from .channels import (
    DATADOG_LOGS_URL,
    DEFAULT_CHANNELS,
    CallChannel,
    Channel,
    DataDogChannel,
    Delivery,
    Dispatcher,
    TextChannel,
    WebhookChannel,
)
from .classifier import Level, classify, matches_keyword, render_message
from .engine import NotificationRelay
from .interceptor import Interception, InterceptionError, Interceptor, OriginalSink, Sink
from .notification import CRITICAL, TEXT, URGENT, Notification, generate_id
from .rate_limiter import RateLimiter
from .stats import RATE_LIMITED, DeliveryRecord, NotificationStats, Outcome, StatsTracker
from .structlog_adapter import NotificationLogger, RelayProcessor

__all__ = [
    # Relay
    "NotificationRelay",
    # Interception
    "Interceptor",
    "Interception",
    "InterceptionError",
    "OriginalSink",
    "Sink",
    # Classifier
    "classify",
    "matches_keyword",
    "render_message",
    "Level",
    # Rate limiter
    "RateLimiter",
    # Channels
    "Dispatcher",
    "Delivery",
    "Channel",
    "TextChannel",
    "CallChannel",
    "WebhookChannel",
    "DataDogChannel",
    "DEFAULT_CHANNELS",
    "DATADOG_LOGS_URL",
    # Notifications and stats
    "Notification",
    "generate_id",
    "TEXT",
    "CRITICAL",
    "URGENT",
    "StatsTracker",
    "NotificationStats",
    "DeliveryRecord",
    "Outcome",
    "RATE_LIMITED",
    # structlog
    "RelayProcessor",
    "NotificationLogger",
]
