"""Data models for journal entries, index projections and filters."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence, TypeVar

T = TypeVar("T")


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """Normalize to UTC; naive datetimes are taken to already be UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def file_timestamp(dt: datetime) -> str:
    """Format as the UTC, second-resolution stem used for entry filenames."""
    return as_utc(dt).strftime("%Y-%m-%d-%H-%M-%S")


def path_order(path: Path) -> str:
    """Tie-break key that puts ``stem.md`` before ``stem-01.md``, ``stem-02.md``, ...

    Collision suffixes extend the bare stem, so comparing paths without the
    extension keeps same-second entries in save order.
    """
    return str(Path(path).with_suffix(""))


@dataclass
class JournalEntry:
    """A single journal entry.

    ``tags`` and ``mentions`` are derived from ``body`` by the codec; build
    entries with ``codec.make_entry`` rather than filling them in by hand.
    """
    timestamp: datetime
    body: str
    tags: list[str] = field(default_factory=list)
    mentions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert entry to dictionary for JSON serialization."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "tags": list(self.tags),
            "mentions": list(self.mentions),
            "body": self.body,
        }


@dataclass(frozen=True)
class IndexedEntry:
    """Lightweight projection of an entry, without its body text."""
    file_path: Path
    timestamp: datetime
    tags: tuple[str, ...] = ()
    mentions: tuple[str, ...] = ()

    @property
    def sort_key(self) -> tuple[datetime, str]:
        return (self.timestamp, path_order(self.file_path))


@dataclass
class EntryFilter:
    """Date range and pagination applied to listings and searches.

    Both bounds are inclusive; ``None`` leaves that side unbounded.
    A ``limit`` of 0 means no limit.
    """
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: int = 0
    offset: int = 0

    def __post_init__(self):
        if self.limit < 0:
            raise ValueError(f"limit must be >= 0, got {self.limit}")
        if self.offset < 0:
            raise ValueError(f"offset must be >= 0, got {self.offset}")

    def matches(self, timestamp: datetime) -> bool:
        ts = as_utc(timestamp)
        if self.start_date is not None and ts < as_utc(self.start_date):
            return False
        if self.end_date is not None and ts > as_utc(self.end_date):
            return False
        return True

    def paginate(self, items: Sequence[T]) -> list[T]:
        """Apply offset then limit. An offset past the end yields []."""
        if self.offset >= len(items):
            return []
        end = len(items)
        if self.limit > 0:
            end = min(end, self.offset + self.limit)
        return list(items[self.offset:end])

    def without_pagination(self) -> EntryFilter:
        return EntryFilter(start_date=self.start_date, end_date=self.end_date)
