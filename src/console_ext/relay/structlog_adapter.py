"""structlog integration.

``RelayProcessor`` escalates critical structlog events through a relay,
without wrapping any logger:

    relay = NotificationRelay(config)
    configure_logging("billing", extra_processors=[RelayProcessor(relay)])

``NotificationLogger`` writes every relay decision back to structlog as an
info event.
"""

from collections.abc import MutableMapping
from typing import Any

import structlog

from .channels import LOG_SOURCE
from .classifier import Level
from .engine import NotificationRelay
from .notification import utc_timestamp

# structlog method names -> severity fed to the classifier
_METHOD_LEVELS = {
    "warn": Level.WARNING,
    "warning": Level.WARNING,
    "error": Level.ERROR,
    "err": Level.ERROR,
    "exception": Level.ERROR,
    "critical": Level.ERROR,
    "fatal": Level.ERROR,
}

MESSAGE_PREVIEW_LENGTH = 200


class RelayProcessor:
    """structlog processor that feeds warning and error events to a relay.

    Events logged by the relay itself carry ``relay_internal`` and are
    skipped. The event dict passes through unchanged, so place this
    anywhere before the renderer.
    """

    def __init__(self, relay: NotificationRelay):
        self.relay = relay

    def __call__(
        self, logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
    ) -> MutableMapping[str, Any]:
        level = _METHOD_LEVELS.get(method_name)
        if level is None or event_dict.get("relay_internal"):
            return event_dict

        event = event_dict.get("event")
        if event is not None:
            self.relay.process_message(level, (event,))
        return event_dict


class NotificationLogger:
    """Logs each notification decision of a relay as a structured event."""

    def __init__(self, relay: NotificationRelay, logger: Any = None):
        self.logger = logger or structlog.get_logger("console_ext.notifications")
        relay.subscribe(self)

    def __call__(self, kind: str, message: str, delivered: bool) -> None:
        self.logger.info(
            "console_ext.notification",
            type=kind,
            message=message[:MESSAGE_PREVIEW_LENGTH],
            delivered=delivered,
            timestamp=utc_timestamp(),
            source=LOG_SOURCE,
            relay_internal=True,
        )
