"""Markdown entry format: parsing, serialization and metadata extraction.

An entry file looks like::

    ## Sunday 2026-02-08 8:31 AM America/Los_Angeles

    Worked on some #things with @Alice.

The header carries minute resolution and an IANA zone name (or ``UTC``).
Tags and mentions are never stored separately; they are always derived
from the body text.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import ParseError
from .models import JournalEntry

MAX_TAG_LENGTH = 80
MAX_MENTION_LENGTH = 80

# '#' + letter, then letters/digits/underscore/hyphen: #work, #machine-learning
TAG_PATTERN = re.compile(r"#([A-Za-z][A-Za-z0-9_-]*)")

# '@' not preceded by an identifier character, so bob@example.com is skipped
MENTION_PATTERN = re.compile(r"(?<![A-Za-z0-9_])@([A-Za-z][A-Za-z0-9_]*)")

_TAG_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9_-]*$")
_MENTION_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def normalize_key(value: str) -> str:
    """Case-fold a tag or mention. Used for extraction, indexing and lookup."""
    return value.lower()


# ========== Metadata extraction ==========

def _extract(pattern: re.Pattern, text: str, max_length: int, kind: str) -> list[str]:
    found = set()
    for match in pattern.finditer(text):
        value = normalize_key(match.group(1))
        if len(value) > max_length:
            raise ParseError(
                f"{kind} exceeds maximum length of {max_length} characters: {value}"
            )
        found.add(value)
    return sorted(found)


def extract_tags(text: str) -> list[str]:
    """Return the sorted, deduplicated, lower-cased tags in ``text``."""
    return _extract(TAG_PATTERN, text, MAX_TAG_LENGTH, "tag")


def extract_mentions(text: str) -> list[str]:
    """Return the sorted, deduplicated, lower-cased mentions in ``text``."""
    return _extract(MENTION_PATTERN, text, MAX_MENTION_LENGTH, "mention")


def make_entry(timestamp: datetime, body: str) -> JournalEntry:
    """Build an entry whose tags and mentions are derived from ``body``.

    Raises:
        ParseError: If the body is empty or holds an oversized tag/mention
    """
    body = body.strip()
    if not body:
        raise ParseError("empty body: entry must contain body text")
    return JournalEntry(
        timestamp=timestamp,
        body=body,
        tags=extract_tags(body),
        mentions=extract_mentions(body),
    )


# ========== Header timestamps ==========

def zone_name(dt: datetime) -> str:
    """Return the zone name written into entry headers.

    Fixed offsets of whole hours map to ``Etc/GMT`` zones, so
    ``datetime.now().astimezone()`` can be saved.

    Raises:
        ParseError: If the datetime is naive or its offset has no zone name
    """
    tz = dt.tzinfo
    if isinstance(tz, ZoneInfo):
        return tz.key
    if tz is timezone.utc:
        return "UTC"

    offset = dt.utcoffset()
    if offset is not None:
        hours, rest = divmod(int(offset.total_seconds()), 3600)
        if rest == 0 and hours == 0:
            return "UTC"
        if rest == 0 and -12 <= hours <= 14:
            # Etc/GMT names invert the sign: UTC+5 is Etc/GMT-5
            return f"Etc/GMT{-hours:+d}"

    raise ParseError(
        f"cannot serialize timezone {tz!r}: use zoneinfo.ZoneInfo, timezone.utc "
        "or a whole-hour UTC offset"
    )


def format_header(timestamp: datetime) -> str:
    """Format a timestamp as ``Sunday 2026-02-08 8:31 AM America/Los_Angeles``."""
    hour = timestamp.hour % 12 or 12
    meridiem = "AM" if timestamp.hour < 12 else "PM"
    return (
        f"{WEEKDAYS[timestamp.weekday()]} {timestamp.strftime('%Y-%m-%d')} "
        f"{hour}:{timestamp.minute:02d} {meridiem} {zone_name(timestamp)}"
    )


def _parse_int(value: str, what: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ParseError(f"invalid {what}: {value}") from None


def parse_header(header: str) -> datetime:
    """Parse ``Weekday YYYY-MM-DD H:MM AM|PM Zone`` into an aware datetime."""
    parts = header.split()
    if len(parts) != 5:
        raise ParseError(
            "invalid timestamp format: expected "
            f"'## Weekday YYYY-MM-DD H:MM AM/PM Location', got: {header}"
        )
    weekday, date_str, time_str, meridiem, location = parts

    if meridiem not in ("AM", "PM"):
        raise ParseError(f"invalid meridiem: expected AM or PM, got: {meridiem}")

    date_parts = date_str.split("-")
    if len(date_parts) != 3:
        raise ParseError(f"invalid date format: expected YYYY-MM-DD, got: {date_str}")
    year = _parse_int(date_parts[0], "year")
    month = _parse_int(date_parts[1], "month")
    day = _parse_int(date_parts[2], "day")

    time_parts = time_str.split(":")
    if len(time_parts) != 2:
        raise ParseError(f"invalid time format: expected H:MM or HH:MM, got: {time_str}")
    hour = _parse_int(time_parts[0], "hour")
    minute = _parse_int(time_parts[1], "minute")

    if not 1 <= hour <= 12:
        raise ParseError(f"invalid hour: must be between 1 and 12, got: {hour}")
    if not 0 <= minute <= 59:
        raise ParseError(f"invalid minute: must be between 0 and 59, got: {minute}")

    # 12 AM is midnight, 12 PM is noon
    if meridiem == "AM":
        hour = 0 if hour == 12 else hour
    elif hour != 12:
        hour += 12

    try:
        tz = ZoneInfo(location)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ParseError(f"unknown location: {location}: {e}") from e

    try:
        timestamp = datetime(year, month, day, hour, minute, tzinfo=tz)
    except ValueError as e:
        raise ParseError(f"invalid date: {date_str}: {e}") from e

    expected = WEEKDAYS[timestamp.weekday()]
    if weekday != expected:
        raise ParseError(
            f"weekday mismatch: expected {expected}, got {weekday} for date {date_str}"
        )
    return timestamp


# ========== Entries ==========

def parse_entry(text: str) -> JournalEntry:
    """Parse markdown entry text.

    Raises:
        ParseError: If the header or body is malformed
    """
    lines = text.split("\n")
    for i, line in enumerate(lines):
        stripped = line.strip()
        if stripped.startswith("##"):
            header = stripped[2:].strip()
            body_lines = lines[i + 1:]
            break
    else:
        raise ParseError("missing header: expected line starting with '##'")

    timestamp = parse_header(header)
    return make_entry(timestamp, "\n".join(body_lines))


def serialize_entry(entry: JournalEntry) -> str:
    """Render an entry as markdown; the inverse of ``parse_entry``."""
    return f"## {format_header(entry.timestamp)}\n\n{entry.body}\n"


# ========== Name validation ==========

def _validate_name(name: str, pattern: re.Pattern, max_length: int, kind: str) -> None:
    if not name:
        raise ValueError(f"{kind} cannot be empty")
    if not name[0].isascii() or not name[0].isalpha():
        raise ValueError(f"{kind} must start with a letter")
    if not pattern.match(name):
        raise ValueError(f"{kind} contains invalid characters: {name}")
    if len(name) > max_length:
        raise ValueError(f"{kind} exceeds maximum length of {max_length} characters")


def validate_tag_name(name: str) -> None:
    """Check a bare tag name (no '#'); raises ValueError if it is unusable."""
    _validate_name(name, _TAG_NAME, MAX_TAG_LENGTH, "tag")


def validate_mention_name(name: str) -> None:
    """Check a bare mention name (no '@'); raises ValueError if it is unusable."""
    _validate_name(name, _MENTION_NAME, MAX_MENTION_LENGTH, "mention")
