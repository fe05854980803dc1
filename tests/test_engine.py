"""Tests for sink interception and the notification relay."""

import logging
import threading
from types import SimpleNamespace

import httpx
import pytest

from console_ext.config import ConfigError
from console_ext.relay import CRITICAL, TEXT, URGENT, InterceptionError, Level

WEBHOOK = "https://hooks.test/notify"


class TestInterception:
    """Tests for wrapping and restoring sinks."""

    def test_writes_reach_original_sink(self, make_relay, sink):
        relay = make_relay()
        with relay.intercept(sink) as console:
            console.info("hello", "world")
            console.error("boom")
        assert sink.lines == [("info", ("hello", "world")), ("error", ("boom",))]

    def test_restore_removes_wrappers_from_class_based_sink(self, make_relay, sink):
        """Methods that came from the class are deleted again on restore."""
        relay = make_relay()
        before = sink.error

        handle = relay.intercept(sink)
        assert sink.error != before
        assert hasattr(sink, "notify")

        handle.restore()
        assert sink.error == before
        assert "error" not in vars(sink)
        assert not hasattr(sink, "notify")
        assert relay.intercepting is False

    def test_restore_reinstates_instance_attributes_identically(self, make_relay):
        """Functions stored on the instance come back as the very same objects."""
        lines = []

        def info(*args):
            lines.append(args)

        def warning(*args):
            lines.append(args)

        def error(*args):
            lines.append(args)

        console = SimpleNamespace(info=info, warning=warning, error=error)
        relay = make_relay()

        with relay.intercept(console):
            assert console.info is not info

        assert console.info is info
        assert console.warning is warning
        assert console.error is error
        assert not hasattr(console, "notify")

    def test_context_manager_restores_on_exception(self, make_relay, sink):
        relay = make_relay()
        with pytest.raises(ValueError):
            with relay.intercept(sink):
                raise ValueError("boom")
        assert "error" not in vars(sink)
        assert relay.intercepting is False

    def test_restore_is_idempotent(self, make_relay, sink):
        relay = make_relay()
        handle = relay.intercept(sink)
        handle.restore()
        handle.restore()
        relay.restore()
        assert relay.intercepting is False

    def test_intercepting_same_sink_twice_keeps_one_wrapper(self, make_relay, sink):
        relay = make_relay(phone_number="+1", critical_keywords=["disk"])
        relay.intercept(sink)
        wrapped = sink.error
        relay.intercept(sink)

        assert sink.error is wrapped
        sink.error("disk full")
        assert relay.stats().sent == 1
        relay.restore()

    def test_nested_intercept_keeps_outer_block_active(self, make_relay, sink):
        """Leaving an inner block on the same sink doesn't end the outer one."""
        relay = make_relay(critical_keywords=["disk"])
        with relay.intercept(sink) as console:
            with relay.intercept(sink):
                pass
            assert relay.intercepting is True
            console.error("disk full")
            assert relay.stats().sent == 1
        assert relay.intercepting is False
        assert "error" not in vars(sink)

    def test_stale_handle_does_not_release_newer_interception(self, make_relay, sink):
        relay = make_relay()
        other = logging.getLogger("console_ext.tests.stale")

        handle = relay.intercept(sink)
        handle.restore()
        relay.intercept(other)
        handle.restore()

        assert relay.intercepting is True
        assert "error" in vars(other)
        relay.restore()
        assert "error" not in vars(other)

    def test_handle_from_earlier_interception_of_same_sink(self, make_relay, sink):
        relay = make_relay()
        first = relay.intercept(sink)
        relay.restore()
        second = relay.intercept(sink)

        first.restore()
        assert relay.intercepting is True

        second.restore()
        assert relay.intercepting is False

    def test_intercepting_another_sink_is_refused(self, make_relay, sink):
        relay = make_relay()
        other = logging.getLogger("console_ext.tests.other")
        with relay.intercept(sink):
            with pytest.raises(InterceptionError):
                relay.intercept(other)
        assert "error" not in vars(other)

    def test_non_sink_is_refused(self, make_relay):
        relay = make_relay()
        with pytest.raises(InterceptionError):
            relay.intercept(SimpleNamespace(info=print))
        assert relay.intercepting is False

    def test_stdlib_logger(self, make_relay, caplog):
        """A logging.Logger keeps logging while its errors are observed."""
        relay = make_relay(critical_keywords=["database"])
        logger = logging.getLogger("console_ext.tests.app")

        with caplog.at_level(logging.INFO, logger="console_ext.tests.app"):
            with relay.intercept(logger) as console:
                console.error("database %s unreachable", "primary")

        assert "database primary unreachable" in caplog.text
        stats = relay.stats()
        assert stats.sent == 1
        assert stats.sent_notifications[0].notification.message == "database primary unreachable"
        assert "error" not in vars(logger)

    def test_default_sink_is_logging_module(self, make_relay):
        relay = make_relay()
        original = logging.error

        with relay.intercept() as console:
            assert console is logging
            assert logging.error is not original
            logging.error("fatal: disk gone")

        assert logging.error is original
        assert not hasattr(logging, "notify")
        assert relay.stats().sent == 1


class TestEscalation:
    """Tests for classification and rate limiting through the relay."""

    def test_rate_limit_scenario(self, make_relay, sink):
        """Four critical errors with max 3 per window: three sent, one blocked."""
        relay = make_relay(phone_number="+15550100", rate_limit_window=60_000, rate_limit_max=3)
        with relay.intercept(sink) as console:
            for i in range(4):
                console.error(f"Database connection failed - critical error {i}")

        stats = relay.stats()
        assert stats.sent == 3
        assert stats.undelivered == 1
        blocked = stats.undelivered_notifications[0]
        assert blocked.reason == "rate_limited"
        assert blocked.notification.kind == CRITICAL
        assert blocked.notification.message.endswith("3")

    def test_admissible_after_window_elapses(self, make_relay, sink, clock):
        relay = make_relay(rate_limit_window=60_000, rate_limit_max=1)
        with relay.intercept(sink) as console:
            console.error("fatal one")
            console.error("fatal two")
            clock.advance(60_000)
            console.error("fatal three")

        stats = relay.stats()
        assert stats.sent == 2
        assert stats.undelivered == 1

    def test_kinds_have_separate_windows(self, make_relay, sink):
        relay = make_relay(phone_number="+1", rate_limit_max=1)
        with relay.intercept(sink) as console:
            console.error("fatal")
            console.notify("deploy finished")
            console.error("fatal again")

        stats = relay.stats()
        assert [r.notification.kind for r in stats.sent_notifications] == [CRITICAL, TEXT]
        assert stats.undelivered == 1

    def test_info_and_non_matching_writes_are_ignored(self, make_relay, sink):
        relay = make_relay()
        with relay.intercept(sink) as console:
            console.info("critical error in info is fine")
            console.warning("all good")
            console.error("")

        stats = relay.stats()
        assert (stats.sent, stats.undelivered) == (0, 0)

    def test_empty_keyword_list_never_escalates(self, make_relay, sink):
        relay = make_relay(critical_keywords=[])
        with relay.intercept(sink) as console:
            console.error("fatal critical error exception")
        assert relay.stats().sent == 0

    def test_warning_escalates(self, make_relay, sink):
        relay = make_relay()
        with relay.intercept(sink) as console:
            console.warning("Fatal exception occurred")
        assert relay.stats().sent == 1

    def test_process_message_directly(self, make_relay):
        relay = make_relay()
        assert relay.process_message(Level.INFO, ("fatal",)) is None
        delivery = relay.process_message("error", ("fatal",))
        assert delivery is not None
        assert delivery.admitted is True
        assert delivery.notification.kind == CRITICAL

    def test_unknown_level_does_not_escalate(self, make_relay):
        relay = make_relay()
        assert relay.process_message("debug", ("fatal",)) is None
        assert relay.stats().sent == 0

    def test_clear_stats_resets_rate_history(self, make_relay, sink):
        relay = make_relay(rate_limit_max=1)
        with relay.intercept(sink) as console:
            console.error("fatal")
            console.error("fatal")
            relay.clear_stats()
            assert (relay.stats().sent, relay.stats().undelivered) == (0, 0)
            console.error("fatal")

        assert relay.stats().sent == 1
        assert relay.stats().undelivered == 0

    def test_zero_max_blocks_everything(self, make_relay):
        relay = make_relay(rate_limit_max=0)
        delivery = relay.send_notification(CRITICAL, "fatal")
        assert delivery.admitted is False
        assert delivery.futures == {}
        assert relay.stats().undelivered == 1


class TestManualNotify:
    """Tests for the notify method added to intercepted sinks."""

    def test_writes_tagged_line_and_sends_text(self, make_relay, sink, transport):
        relay = make_relay(phone_number="+15550100", webhook_url=WEBHOOK, enable_text=True)
        with relay.intercept(sink) as console:
            delivery = console.notify("Deploy", "finished")
            assert delivery.wait(5) == {"text": True, "webhook": True}

        assert sink.messages("info") == ["[TEXT] Deploy finished"]
        record = relay.stats().sent_notifications[0]
        assert record.notification.kind == TEXT
        assert record.notification.message == "Deploy finished"

        actions = sorted(body.get("action", "") for body in transport.bodies())
        assert actions == ["", "send_text"]

    def test_notify_is_rate_limited(self, make_relay, sink):
        relay = make_relay(rate_limit_max=1)
        with relay.intercept(sink) as console:
            console.notify("one")
            second = console.notify("two")
        assert second.admitted is False
        assert relay.stats().undelivered == 1


class TestChannelsThroughRelay:
    """Tests for fan-out as seen from the intercepted sink."""

    def test_urgent_call_without_webhook_warns_and_counts_as_sent(self, make_relay, sink):
        relay = make_relay(phone_number="+15550100", enable_call=True)
        with relay.intercept(sink):
            delivery = relay.send_notification(URGENT, "Deploy failed")

        assert delivery.admitted is True
        assert delivery.futures == {}
        assert sink.messages("warning") == [
            "Console.ext: No webhook URL configured for call notifications"
        ]
        assert relay.stats().sent == 1

    def test_failures_reported_to_original_sink(self, make_relay, sink):
        """A failing channel is reported without affecting the others."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "api.datadoghq.com":
                return httpx.Response(202)
            return httpx.Response(500)

        relay = make_relay(
            handler,
            phone_number="+1",
            webhook_url=WEBHOOK,
            datadog_api_key="dd-key",
            enable_text=True,
        )
        with relay.intercept(sink) as console:
            console.error("fatal: out of memory")
            assert relay.flush(5)

        errors = sink.messages("error")
        assert "Console.ext: Failed to send text notification: HTTP 500" in errors
        assert "Console.ext: Failed to send webhook: HTTP 500" in errors
        assert not any("DataDog" in line for line in errors)
        assert relay.stats().sent == 1

    def test_transport_error_reported(self, make_relay, sink):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        relay = make_relay(handler, webhook_url=WEBHOOK)
        with relay.intercept(sink):
            delivery = relay.send_notification(CRITICAL, "fatal")
            assert delivery.wait(5) == {"webhook": False}

        assert sink.messages("error")[-1] == "Console.ext: Failed to send webhook: connection refused"

    def test_stats_recorded_before_dispatch_completes(self, make_relay, sink):
        release = threading.Event()

        def handler(request: httpx.Request) -> httpx.Response:
            release.wait(5)
            return httpx.Response(200)

        relay = make_relay(handler, webhook_url=WEBHOOK)
        with relay.intercept(sink) as console:
            console.error("fatal")
            assert relay.stats().sent == 1
            assert relay.flush(0.05) is False
            release.set()
            assert relay.flush(5) is True

    def test_no_channels_configured_sends_nothing(self, make_relay, transport):
        relay = make_relay()
        delivery = relay.send_notification(CRITICAL, "fatal")
        assert delivery.admitted is True
        assert delivery.futures == {}
        assert transport.requests == []


class TestObservers:
    """Tests for notification observers."""

    def test_observer_called_for_each_decision(self, make_relay):
        relay = make_relay(rate_limit_max=1)
        seen = []
        relay.subscribe(lambda kind, message, delivered: seen.append((kind, message, delivered)))

        relay.send_notification(CRITICAL, "fatal one")
        relay.send_notification(CRITICAL, "fatal two")

        assert seen == [(CRITICAL, "fatal one", True), (CRITICAL, "fatal two", False)]

    def test_observer_errors_do_not_propagate(self, make_relay, sink):
        relay = make_relay()

        def broken(kind, message, delivered):
            raise RuntimeError("observer bug")

        relay.subscribe(broken)
        with relay.intercept(sink) as console:
            console.error("fatal")
        assert relay.stats().sent == 1


class TestConfigUpdates:
    """Tests for live config changes."""

    def test_update_applies_to_next_notification(self, make_relay, sink):
        relay = make_relay(rate_limit_max=5, critical_keywords=["disk"])
        with relay.intercept(sink) as console:
            console.error("fatal")
            relay.update_config(critical_keywords=["fatal"])
            console.error("fatal")
        assert relay.stats().sent == 1
        assert relay.config.critical_keywords == ("fatal",)

    def test_update_accepts_mapping(self, make_relay):
        relay = make_relay()
        config = relay.update_config({"phone_number": "+1", "rate_limit_max": 2})
        assert config.phone_number == "+1"
        assert relay.config.rate_limit_max == 2

    def test_unknown_field_rejected(self, make_relay):
        relay = make_relay()
        before = relay.config
        with pytest.raises(ConfigError):
            relay.update_config(max_retries=3)
        assert relay.config is before


class TestLifecycle:
    """Tests for closing the relay."""

    def test_close_restores_sink(self, make_relay, sink):
        relay = make_relay()
        relay.intercept(sink)
        relay.close()
        assert relay.closed is True
        assert "error" not in vars(sink)

    def test_context_manager(self, make_relay):
        relay = make_relay()
        with relay as entered:
            assert entered is relay
        assert relay.closed is True

    def test_notifications_after_close_are_dropped(self, make_relay, transport):
        """Writes reaching a closed relay return normally and send nothing."""
        relay = make_relay(webhook_url=WEBHOOK)
        relay.close()

        delivery = relay.process_message("error", ("fatal: disk gone",))

        assert delivery is not None
        assert delivery.admitted is False
        assert delivery.futures == {}
        stats = relay.stats()
        assert (stats.sent, stats.undelivered) == (0, 0)
        assert transport.requests == []
