"""Prometheus metrics for the notification relay.

All metrics use the 'console_ext_' prefix.
"""

from prometheus_client import Counter

NOTIFICATIONS = Counter(
    "console_ext_notifications",
    "Notification attempts by admission outcome",
    ["type", "outcome"],  # outcome: sent, undelivered
)

CHANNEL_DELIVERIES = Counter(
    "console_ext_channel_deliveries",
    "Channel delivery attempts for admitted notifications",
    ["channel", "status"],  # status: success, failure
)
