"""Critical-keyword classifier for intercepted sink writes."""

from collections.abc import Iterable, Sequence
from enum import Enum
from typing import Any

from .notification import CRITICAL


class Level(Enum):
    """Severity of an intercepted write."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @classmethod
    def parse(cls, value: "Level | str") -> "Level":
        """Accept a Level or its name, including the 'warn' and 'log' aliases.

        Raises:
            ValueError: If the name is not a known level
        """
        if isinstance(value, Level):
            return value
        name = value.lower()
        return cls(_ALIASES.get(name, name))


_ALIASES = {"warn": "warning", "log": "info"}

# Informational writes never escalate
ESCALATING_LEVELS = frozenset({Level.WARNING, Level.ERROR})


def render_message(args: Sequence[Any]) -> str:
    """Turn the positional arguments of a sink call into message text.

    Logger-style calls ("failed: %s", exc) are interpolated when the format
    applies; anything else is stringified and joined with single spaces.
    """
    if len(args) > 1 and isinstance(args[0], str) and "%" in args[0]:
        try:
            return args[0] % tuple(args[1:])
        except (TypeError, ValueError, KeyError):
            pass
    return " ".join(str(arg) for arg in args)


def matches_keyword(message: str, keywords: Iterable[str]) -> bool:
    """Check whether any keyword occurs in the message, ignoring case.

    Multi-word keywords must appear as a contiguous substring.
    """
    text = message.lower()
    return any(keyword and keyword.lower() in text for keyword in keywords)


def classify(level: Level | str, message: str, keywords: Iterable[str]) -> str | None:
    """Decide whether a write escalates to a notification.

    Args:
        level: Severity of the write
        message: Rendered message text
        keywords: Configured critical keywords

    Returns:
        The notification kind to send, or None if the write does not escalate
    """
    if not message:
        return None

    try:
        parsed = Level.parse(level)
    except ValueError:
        # Unknown levels such as debug never escalate
        return None
    if parsed not in ESCALATING_LEVELS:
        return None

    if matches_keyword(message, keywords):
        return CRITICAL

    return None
