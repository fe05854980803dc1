"""Delivery channels and the fan-out dispatcher.

Each admitted notification is offered to every channel. A channel either
skips it (not enabled or not configured) or produces one HTTP request.
Requests run on a worker pool; a failure on one channel is reported and
never affects the others.
"""

from collections.abc import Sequence
from concurrent.futures import Executor, Future, wait
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
import structlog

from console_ext.config import Config
from console_ext.metrics import CHANNEL_DELIVERIES

from .notification import CRITICAL, URGENT, Notification

log = structlog.get_logger()

DATADOG_LOGS_URL = "https://api.datadoghq.com/api/v1/logs"
LOG_SOURCE = "console-ext"

# Prefix for lines the relay writes to the original sink
REPORT_PREFIX = "Console.ext:"


class Reporter(Protocol):
    """Where configuration gaps and delivery failures are written."""

    def warning(self, *args: Any, **kwargs: Any) -> Any: ...

    def error(self, *args: Any, **kwargs: Any) -> Any: ...


@dataclass(frozen=True)
class ChannelRequest:
    """A single outbound HTTP request for a channel."""

    url: str
    payload: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)


class Channel:
    """Base class for a delivery channel."""

    name = ""
    failure_message = ""
    # Prefix for the status code when the endpoint answers non-2xx
    status_prefix = "HTTP "

    def prepare(
        self, notification: Notification, config: Config, reporter: Reporter
    ) -> ChannelRequest | None:
        """Return the request to send, or None to skip this channel."""
        raise NotImplementedError


class ActionChannel(Channel):
    """Text and call channels: webhook payloads tagged with an action and destination."""

    action = ""
    label = ""

    def applies(self, notification: Notification, config: Config) -> bool:
        raise NotImplementedError

    def prepare(
        self, notification: Notification, config: Config, reporter: Reporter
    ) -> ChannelRequest | None:
        if not self.applies(notification, config):
            return None

        if not config.webhook_url:
            reporter.warning(f"{REPORT_PREFIX} No webhook URL configured for {self.label}")
            return None

        payload: dict[str, Any] = {
            **notification.to_payload(),
            "action": self.action,
            "to": config.phone_number,
        }
        return ChannelRequest(config.webhook_url, payload)


class TextChannel(ActionChannel):
    name = "text"
    action = "send_text"
    label = "text notifications"
    failure_message = "Failed to send text notification"

    def applies(self, notification: Notification, config: Config) -> bool:
        return config.enable_text and bool(config.phone_number)


class CallChannel(ActionChannel):
    name = "call"
    action = "make_call"
    label = "call notifications"
    failure_message = "Failed to make call notification"

    def applies(self, notification: Notification, config: Config) -> bool:
        return config.enable_call and notification.kind in (CRITICAL, URGENT)


class WebhookChannel(Channel):
    """Posts the raw notification payload to the configured webhook."""

    name = "webhook"
    failure_message = "Failed to send webhook"

    def prepare(
        self, notification: Notification, config: Config, reporter: Reporter
    ) -> ChannelRequest | None:
        if not config.webhook_url:
            return None
        return ChannelRequest(config.webhook_url, notification.to_payload())


class DataDogChannel(Channel):
    """Ships notifications to the DataDog logs intake."""

    name = "datadog"
    failure_message = "Failed to send to DataDog"
    status_prefix = "DataDog API error: "

    def __init__(self, url: str = DATADOG_LOGS_URL):
        self.url = url

    def prepare(
        self, notification: Notification, config: Config, reporter: Reporter
    ) -> ChannelRequest | None:
        if not config.datadog_api_key:
            return None

        payload = {
            "message": notification.message,
            "level": "error" if notification.kind == CRITICAL else "info",
            "timestamp": notification.timestamp,
            "source": LOG_SOURCE,
            "tags": [f"type:{notification.kind}", f"source:{LOG_SOURCE}"],
        }
        return ChannelRequest(self.url, payload, {"DD-API-KEY": config.datadog_api_key})


DEFAULT_CHANNELS: tuple[Channel, ...] = (
    TextChannel(),
    CallChannel(),
    WebhookChannel(),
    DataDogChannel(),
)


@dataclass
class Delivery:
    """Handle for one notification's fan-out.

    ``futures`` maps channel name to a future resolving to True on a 2xx
    response. Rate-limited notifications have no futures.
    """

    notification: Notification
    admitted: bool
    futures: dict[str, "Future[bool]"] = field(default_factory=dict)

    @property
    def done(self) -> bool:
        return all(f.done() for f in self.futures.values())

    def wait(self, timeout: float | None = None) -> dict[str, bool]:
        """Wait for channel sends and return per-channel success.

        Channels still running when the timeout expires are left out.
        """
        wait(self.futures.values(), timeout=timeout)
        return {
            name: f.exception() is None and f.result()
            for name, f in self.futures.items()
            if f.done()
        }


class Dispatcher:
    """Fans admitted notifications out to delivery channels.

    Performs no rate limiting; callers only hand it admitted notifications.
    """

    def __init__(
        self,
        client: httpx.Client,
        executor: Executor,
        channels: Sequence[Channel] = DEFAULT_CHANNELS,
    ):
        self.client = client
        self.executor = executor
        self.channels = tuple(channels)

    def dispatch(
        self, notification: Notification, config: Config, reporter: Reporter
    ) -> dict[str, "Future[bool]"]:
        """Start a send on every channel that applies.

        Preconditions are checked synchronously, in channel order; only the
        HTTP requests run on the executor.
        """
        futures: dict[str, Future[bool]] = {}
        for channel in self.channels:
            request = channel.prepare(notification, config, reporter)
            if request is None:
                continue
            try:
                futures[channel.name] = self.executor.submit(
                    self._send, channel, request, config.request_timeout, reporter
                )
            except RuntimeError as e:
                # Executor already shut down, e.g. at interpreter exit
                self._report_failure(channel, str(e), reporter)
        return futures

    def _send(
        self,
        channel: Channel,
        request: ChannelRequest,
        timeout: float,
        reporter: Reporter,
    ) -> bool:
        """Post one channel request. Never raises.

        Returns:
            True if the endpoint answered 2xx, False otherwise
        """
        try:
            response = self.client.post(
                request.url,
                json=request.payload,
                headers=request.headers,
                timeout=timeout,
            )
        except httpx.RequestError as e:
            detail = str(e) or e.__class__.__name__
        else:
            if response.is_success:
                CHANNEL_DELIVERIES.labels(channel=channel.name, status="success").inc()
                log.debug("Channel delivery succeeded", channel=channel.name, relay_internal=True)
                return True
            detail = f"{channel.status_prefix}{response.status_code}"

        self._report_failure(channel, detail, reporter)
        return False

    def _report_failure(self, channel: Channel, detail: str, reporter: Reporter) -> None:
        CHANNEL_DELIVERIES.labels(channel=channel.name, status="failure").inc()
        reporter.error(f"{REPORT_PREFIX} {channel.failure_message}: {detail}")
