"""Prometheus metrics for console-ext."""

from console_ext.metrics.notifications import CHANNEL_DELIVERIES, NOTIFICATIONS

__all__ = [
    "NOTIFICATIONS",
    "CHANNEL_DELIVERIES",
]
