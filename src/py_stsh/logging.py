"""Shell event log.

The shell keeps a structured, in-memory record of what it did: jobs
created and reaped, processes stopped and continued, signals sent on
the user's behalf.  It is the shell's equivalent of ``dmesg`` — a
bounded buffer you can inspect after the fact.

- **LogLevel** — severity levels ordered for filtering (DEBUG < ERROR).
- **LogEntry** — a single structured record (level, message, source).
- **Logger** — a bounded append-only log with filtering.

Design choices:
    - **IntEnum for levels** so they compare naturally with ``<``.
    - **Frozen dataclass for entries** — log records should be immutable.
    - **Bounded deque** — a long-lived interactive shell must not grow
      without limit; the oldest entries fall off first.
    - **Never used from a signal handler** — handlers only record raw
      facts; logging happens once the main path processes them.
"""

from collections import deque
from dataclasses import dataclass
from enum import IntEnum

_DEFAULT_MAX_ENTRIES = 1000


class LogLevel(IntEnum):
    """Severity levels for log entries."""

    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3


@dataclass(frozen=True)
class LogEntry:
    """A single structured log record.

    Attributes:
        level: The severity of this event.
        message: A human-readable description of what happened.
        source: The component that generated the event (e.g. "jobs").

    """

    level: LogLevel
    message: str
    source: str

    def __str__(self) -> str:
        """Format as ``[LEVEL] source: message``."""
        return f"[{self.level.name}] {self.source}: {self.message}"


class Logger:
    """Bounded append-only log buffer with filtering.

    Entries below ``min_level`` are discarded on arrival.  Once
    ``max_entries`` records are held, each new record evicts the oldest.
    """

    def __init__(
        self,
        *,
        min_level: LogLevel = LogLevel.DEBUG,
        max_entries: int = _DEFAULT_MAX_ENTRIES,
    ) -> None:
        """Create an empty logger.

        Args:
            min_level: Records below this level are dropped.
            max_entries: Maximum number of records retained.

        Raises:
            ValueError: If ``max_entries`` is not positive.

        """
        if max_entries <= 0:
            msg = f"max_entries must be positive, got {max_entries}"
            raise ValueError(msg)
        self._min_level = min_level
        self._entries: deque[LogEntry] = deque(maxlen=max_entries)

    @property
    def min_level(self) -> LogLevel:
        """Return the minimum level that is recorded."""
        return self._min_level

    @property
    def entries(self) -> list[LogEntry]:
        """Return all retained entries in chronological order."""
        return list(self._entries)

    def log(self, level: LogLevel, message: str, *, source: str) -> None:
        """Append a new entry to the log if it meets the minimum level.

        Args:
            level: Severity of the event.
            message: Human-readable event description.
            source: Component that generated the event.

        """
        if level < self._min_level:
            return
        self._entries.append(LogEntry(level=level, message=message, source=source))

    def filter(
        self,
        *,
        min_level: LogLevel | None = None,
        source: str | None = None,
    ) -> list[LogEntry]:
        """Return entries matching the given criteria.

        Args:
            min_level: If set, only return entries at or above this level.
            source: If set, only return entries from this source.

        Returns:
            A filtered list of log entries.

        """
        result = list(self._entries)
        if min_level is not None:
            result = [e for e in result if e.level >= min_level]
        if source is not None:
            result = [e for e in result if e.source == source]
        return result
