"""Tests for the structlog processor and notification logger."""

import structlog
from structlog.testing import ReturnLogger, capture_logs

from console_ext.relay import CRITICAL, NotificationLogger, RelayProcessor


class TestRelayProcessor:
    """Tests for escalating structlog events."""

    def test_error_event_escalates(self, make_relay):
        relay = make_relay()
        processor = RelayProcessor(relay)
        event_dict = {"event": "fatal: queue overflow", "queue": "billing"}

        assert processor(None, "error", event_dict) is event_dict
        stats = relay.stats()
        assert stats.sent == 1
        assert stats.sent_notifications[0].notification.message == "fatal: queue overflow"

    def test_info_and_debug_ignored(self, make_relay):
        relay = make_relay()
        processor = RelayProcessor(relay)
        processor(None, "info", {"event": "fatal"})
        processor(None, "debug", {"event": "fatal"})
        assert relay.stats().sent == 0

    def test_internal_events_skipped(self, make_relay):
        relay = make_relay()
        processor = RelayProcessor(relay)
        processor(None, "error", {"event": "Console.ext: fatal", "relay_internal": True})
        assert relay.stats().sent == 0

    def test_through_wrapped_logger(self, make_relay):
        relay = make_relay(critical_keywords=["timeout"])
        logger = structlog.wrap_logger(
            ReturnLogger(),
            processors=[RelayProcessor(relay), structlog.processors.KeyValueRenderer()],
        )

        logger.warning("upstream timeout", service="payments")
        logger.exception("another timeout")
        logger.info("timeout but only informational")

        assert relay.stats().sent == 2

    def test_logging_after_relay_closed(self, make_relay, transport):
        """A processor left in the chain keeps logging working after close."""
        relay = make_relay(webhook_url="https://hooks.test/notify")
        logger = structlog.wrap_logger(ReturnLogger(), processors=[RelayProcessor(relay)])
        relay.close()

        logger.error("fatal: disk gone")

        assert relay.stats().sent == 0
        assert transport.requests == []


class TestNotificationLogger:
    """Tests for logging relay decisions."""

    def test_logs_each_decision(self, make_relay):
        relay = make_relay(rate_limit_max=1)
        NotificationLogger(relay)

        with capture_logs() as logs:
            relay.send_notification(CRITICAL, "fatal one")
            relay.send_notification(CRITICAL, "fatal two")

        events = [e for e in logs if e["event"] == "console_ext.notification"]
        assert [e["delivered"] for e in events] == [True, False]
        first = events[0]
        assert first["type"] == CRITICAL
        assert first["message"] == "fatal one"
        assert first["source"] == "console-ext"
        assert first["relay_internal"] is True
        assert first["log_level"] == "info"
        assert first["timestamp"].endswith("Z")

    def test_truncates_long_messages(self, make_relay):
        relay = make_relay()
        NotificationLogger(relay)

        with capture_logs() as logs:
            relay.send_notification(CRITICAL, "x" * 500)

        event = next(e for e in logs if e["event"] == "console_ext.notification")
        assert event["message"] == "x" * 200
