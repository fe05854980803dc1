"""Notification value objects."""

import itertools
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

# Built-in notification kinds; callers may use any other string
TEXT = "text"
CRITICAL = "critical"
URGENT = "urgent"

SOURCE = "Console.ext"

# Process-wide sequence, so ids stay unique within the same millisecond
_sequence = itertools.count(1)


def generate_id() -> str:
    """Return an identifier unique for the lifetime of the process."""
    return f"{int(time.time() * 1000):x}-{next(_sequence):x}"


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with millisecond precision, e.g. 2024-01-01T12:00:00.000Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class Notification:
    """A single notification attempt."""

    kind: str
    message: str
    timestamp: str = field(default_factory=utc_timestamp)
    source: str = SOURCE
    id: str = field(default_factory=generate_id)

    def to_payload(self) -> dict[str, str]:
        """Generic webhook body."""
        return {
            "type": self.kind,
            "message": self.message,
            "timestamp": self.timestamp,
            "source": self.source,
            "id": self.id,
        }
