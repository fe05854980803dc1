"""Sink interception.

A sink is any object with ``info``, ``warning`` and ``error`` callables: a
``logging.Logger``, a structlog logger, the ``logging`` module itself, or
a duck-typed console. While intercepted, each write goes to the original
method first and is then observed by the relay. A ``notify`` method is
added for manual notifications.

Only one relay should intercept a given sink at a time. This is the
caller's responsibility; nothing locks the sink.
"""

import functools
from collections.abc import Callable
from types import TracebackType
from typing import Any, Protocol

from .classifier import Level, render_message

WRITE_METHODS = ("info", "warning", "error")
NOTIFY_METHOD = "notify"

Observer = Callable[[Level, tuple[Any, ...]], Any]
ManualNotify = Callable[[str], Any]


class Sink(Protocol):
    def info(self, *args: Any, **kwargs: Any) -> Any: ...

    def warning(self, *args: Any, **kwargs: Any) -> Any: ...

    def error(self, *args: Any, **kwargs: Any) -> Any: ...


class InterceptionError(RuntimeError):
    """Raised when a sink cannot be intercepted or is already owned."""

    pass


class OriginalSink:
    """The sink's write methods as they were before interception."""

    def __init__(self, methods: dict[str, Callable[..., Any]]):
        self._methods = methods

    def method(self, name: str) -> Callable[..., Any]:
        return self._methods[name]

    def info(self, *args: Any, **kwargs: Any) -> Any:
        return self._methods["info"](*args, **kwargs)

    def warning(self, *args: Any, **kwargs: Any) -> Any:
        return self._methods["warning"](*args, **kwargs)

    def error(self, *args: Any, **kwargs: Any) -> Any:
        return self._methods["error"](*args, **kwargs)


class Interceptor:
    """Installs observing wrappers on a sink and takes them off again."""

    def __init__(self, sink: Any, observe: Observer, notify: ManualNotify):
        self.sink = sink
        self._observe = observe
        self._notify = notify
        self.original: OriginalSink | None = None
        # Attributes that lived on the sink instance itself before install
        self._shadowed: dict[str, Any] = {}

    @property
    def installed(self) -> bool:
        return self.original is not None

    def install(self) -> OriginalSink:
        """Wrap the sink's write methods and add ``notify``.

        The originals are captured once here, so installing twice without
        a restore in between is refused.
        """
        if self.original is not None:
            raise InterceptionError("sink is already intercepted")

        try:
            originals = {name: getattr(self.sink, name) for name in WRITE_METHODS}
        except AttributeError as e:
            raise InterceptionError(f"not a sink: {e}") from e

        instance_attrs = getattr(self.sink, "__dict__", {})
        shadowed = {
            name: instance_attrs[name]
            for name in (*WRITE_METHODS, NOTIFY_METHOD)
            if name in instance_attrs
        }

        wrappers = {name: self._wrap(Level(name), originals[name]) for name in WRITE_METHODS}
        try:
            for name, wrapper in wrappers.items():
                setattr(self.sink, name, wrapper)
            setattr(self.sink, NOTIFY_METHOD, self._manual_notify)
        except (AttributeError, TypeError) as e:
            self._put_back(shadowed)
            raise InterceptionError(f"cannot wrap sink methods: {e}") from e

        self._shadowed = shadowed
        self.original = OriginalSink(originals)
        return self.original

    def restore(self) -> None:
        """Put the original methods back and remove ``notify``.

        Instance attributes are re-set to the exact objects captured at
        install time; methods that came from the sink's class are deleted
        so lookup falls through to the class again.
        """
        if self.original is None:
            return

        self._put_back(self._shadowed)
        self._shadowed = {}
        self.original = None

    def _put_back(self, shadowed: dict[str, Any]) -> None:
        for name in (*WRITE_METHODS, NOTIFY_METHOD):
            if name in shadowed:
                setattr(self.sink, name, shadowed[name])
            elif name in getattr(self.sink, "__dict__", {}):
                delattr(self.sink, name)

    def _wrap(self, level: Level, original: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(original)
        def write(*args: Any, **kwargs: Any) -> Any:
            result = original(*args, **kwargs)
            self._observe(level, args)
            return result

        return write

    def _manual_notify(self, *args: Any) -> Any:
        """Write a tagged line to the original sink and send a text notification."""
        message = render_message(args)
        if self.original is not None:
            self.original.info(f"[TEXT] {message}")
        return self._notify(message)


class Interception:
    """Handle for an active interception.

    Use as a context manager to guarantee the sink is restored on every
    exit path:

        with relay.intercept(logger) as log:
            log.error("database error")
            log.notify("deploy finished")
    """

    def __init__(self, sink: Any, release: Callable[[], None]):
        self.sink = sink
        self._release = release
        self.released = False

    def restore(self) -> None:
        """Release this handle. Only the first call has any effect."""
        if self.released:
            return
        self.released = True
        self._release()

    def __enter__(self) -> Any:
        return self.sink

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.restore()
