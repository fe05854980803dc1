"""Notification relay: classify sink writes, rate limit, fan out."""

import functools
import logging
import threading
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, wait
from types import TracebackType
from typing import Any

import httpx
import structlog

from console_ext.config import Config
from console_ext.metrics import NOTIFICATIONS

from .channels import DEFAULT_CHANNELS, Channel, Delivery, Dispatcher, Reporter
from .classifier import Level, classify, render_message
from .interceptor import Interception, InterceptionError, Interceptor
from .notification import TEXT, Notification
from .rate_limiter import Clock, RateLimiter, monotonic_ms
from .stats import RATE_LIMITED, NotificationStats, StatsTracker

log = structlog.get_logger()

# Logger for channel warnings and failures when no sink is intercepted
INTERNAL_LOGGER_NAME = "console_ext"

NotificationCallback = Callable[[str, str, bool], Any]


class NotificationRelay:
    """Relays critical sink writes to notification channels.

    Admission and stats recording happen synchronously on the writing
    thread, before any channel is contacted. Channel sends run on a small
    worker pool; ``flush`` waits for them.
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        client: httpx.Client | None = None,
        clock: Clock = monotonic_ms,
        max_workers: int = 4,
        channels: Sequence[Channel] = DEFAULT_CHANNELS,
        on_notification: NotificationCallback | None = None,
    ):
        """Initialize the relay.

        Args:
            config: Relay configuration (default: Config())
            client: HTTP client for channel requests; one is created and
                owned by the relay if not given
            clock: Millisecond clock used for rate limiting
            max_workers: Concurrent channel requests
            channels: Delivery channels, tried in order
            on_notification: Observer called with (kind, message, delivered)
        """
        self._config = config or Config()
        self._owns_client = client is None
        self.client = client or httpx.Client()
        self.rate_limiter = RateLimiter(clock)
        self.tracker = StatsTracker(self.rate_limiter)

        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="console-ext"
        )
        self.dispatcher = Dispatcher(self.client, self._executor, channels)

        # Guards config, rate limiter and stats; writes may come from any thread
        self._lock = threading.Lock()
        self._pending_lock = threading.Lock()
        self._pending: set[Future[bool]] = set()

        self._observers: list[NotificationCallback] = []
        if on_notification is not None:
            self.subscribe(on_notification)

        self._interceptor: Interceptor | None = None
        # Open handles on the current interceptor; the sink is restored when the last is released
        self._holds = 0
        self._closed = False

    # --- Configuration ---

    @property
    def config(self) -> Config:
        return self._config

    def update_config(
        self, changes: Mapping[str, Any] | None = None, **fields: Any
    ) -> Config:
        """Replace whole config fields; takes effect from the next notification.

        Raises:
            ConfigError: If a field is unknown or a value is invalid
        """
        updates = {**(changes or {}), **fields}
        with self._lock:
            self._config = self._config.with_changes(updates)
            config = self._config
        log.info("Relay config updated", fields=sorted(updates), relay_internal=True)
        return config

    # --- Interception ---

    @property
    def intercepting(self) -> bool:
        return self._interceptor is not None

    def intercept(self, sink: Any = None) -> Interception:
        """Start observing a sink's writes.

        Args:
            sink: Object with info/warning/error methods (default: the
                ``logging`` module functions)

        Intercepting the sink that is already intercepted returns another
        handle on the same wrappers; the sink is restored once every handle
        has been released.

        Returns:
            Handle that releases the interception when restored or used as
            a context manager

        Raises:
            InterceptionError: If another sink is already intercepted, or
                the object can't be wrapped
        """
        if sink is None:
            sink = logging

        interceptor = self._interceptor
        if interceptor is not None:
            if interceptor.sink is not sink:
                raise InterceptionError("relay already intercepts another sink; restore it first")
            self._holds += 1
            return Interception(sink, functools.partial(self._release, interceptor))

        interceptor = Interceptor(sink, self.process_message, self._send_manual)
        interceptor.install()
        self._interceptor = interceptor
        self._holds = 1
        log.debug("Sink intercepted", sink=repr(sink), relay_internal=True)
        return Interception(sink, functools.partial(self._release, interceptor))

    def _release(self, interceptor: Interceptor) -> None:
        # Handles from an earlier interception no longer own anything
        if self._interceptor is not interceptor:
            return
        self._holds -= 1
        if self._holds <= 0:
            self.restore()

    def restore(self) -> None:
        """Give the sink its original methods back, whatever handles are open.

        Safe to call repeatedly.
        """
        interceptor, self._interceptor = self._interceptor, None
        self._holds = 0
        if interceptor is not None:
            interceptor.restore()
            log.debug("Sink restored", sink=repr(interceptor.sink), relay_internal=True)

    @property
    def reporter(self) -> Reporter:
        """The original sink while intercepting, the package logger otherwise."""
        interceptor = self._interceptor
        if interceptor is not None and interceptor.original is not None:
            return interceptor.original
        # relay_internal keeps the structlog adapter from escalating these events
        return structlog.get_logger(INTERNAL_LOGGER_NAME).bind(relay_internal=True)

    # --- Notifications ---

    def subscribe(self, callback: NotificationCallback) -> None:
        """Register an observer called with (kind, message, delivered) per attempt."""
        self._observers.append(callback)

    def process_message(self, level: Level | str, args: Sequence[Any]) -> Delivery | None:
        """Classify a write and send a critical notification if it escalates."""
        message = render_message(args)
        kind = classify(level, message, self._config.critical_keywords)
        if kind is None:
            return None
        return self.send_notification(kind, message)

    def _send_manual(self, message: str) -> Delivery:
        return self.send_notification(TEXT, message)

    def send_notification(self, kind: str, message: str) -> Delivery:
        """Admit or deny a notification, record it, and fan it out if admitted.

        Once the relay is closed nothing is recorded or sent.

        Returns:
            Delivery handle; ``admitted`` is False when rate limited or closed
        """
        notification = Notification(kind=kind, message=message)

        if self._closed:
            log.debug(
                "Relay closed, notification dropped",
                type=kind,
                id=notification.id,
                relay_internal=True,
            )
            return Delivery(notification, admitted=False)

        with self._lock:
            config = self._config
            # Keyed by kind and destination, so each kind has its own window
            admitted = self.rate_limiter.admit(
                (kind, config.phone_number), config.rate_limit_window, config.rate_limit_max
            )
            if admitted:
                self.tracker.record_sent(notification)
            else:
                self.tracker.record_undelivered(notification, RATE_LIMITED, notification.timestamp)

        NOTIFICATIONS.labels(type=kind, outcome="sent" if admitted else "undelivered").inc()
        self._notify_observers(kind, message, admitted)

        if not admitted:
            log.debug(
                "Notification rate limited",
                type=kind,
                id=notification.id,
                relay_internal=True,
            )
            return Delivery(notification, admitted=False)

        futures = self.dispatcher.dispatch(notification, config, self.reporter)
        self._track(futures.values())
        log.debug(
            "Notification dispatched",
            type=kind,
            id=notification.id,
            channels=sorted(futures),
            relay_internal=True,
        )
        return Delivery(notification, admitted=True, futures=futures)

    def _notify_observers(self, kind: str, message: str, delivered: bool) -> None:
        for callback in list(self._observers):
            try:
                callback(kind, message, delivered)
            except Exception:
                log.exception("Notification observer failed", type=kind, relay_internal=True)

    def _track(self, futures: Any) -> None:
        futures = list(futures)
        with self._pending_lock:
            self._pending.update(futures)
        for future in futures:
            future.add_done_callback(self._untrack)

    def _untrack(self, future: "Future[bool]") -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def flush(self, timeout: float | None = None) -> bool:
        """Wait for in-flight channel sends.

        Returns:
            True if everything finished, False if the timeout expired first
        """
        with self._pending_lock:
            pending = list(self._pending)
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    # --- Stats ---

    def stats(self) -> NotificationStats:
        with self._lock:
            return self.tracker.stats()

    def clear_stats(self) -> None:
        """Reset delivery records and rate-limit history."""
        with self._lock:
            self.tracker.clear()
        log.info("Relay stats cleared", relay_internal=True)

    # --- Lifecycle ---

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Restore the sink, finish in-flight sends and release resources."""
        if self._closed:
            return
        self.restore()
        self._closed = True
        self.flush()
        self._executor.shutdown(wait=True)
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> "NotificationRelay":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
