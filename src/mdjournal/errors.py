"""Exceptions raised by journal storage operations."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence


class JournalError(Exception):
    """Base exception for journal operations."""
    pass


class ParseError(JournalError):
    """Raised when entry text cannot be parsed or an entry cannot be written as text."""
    pass


class NotFoundError(JournalError):
    """Raised when no entry exists at the requested identity."""
    pass


class CollisionExhausted(JournalError):
    """Raised when every collision suffix for a timestamp is taken."""
    pass


class JournalIOError(JournalError):
    """Filesystem failure with the offending path attached."""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class PartialFailure(JournalError):
    """A batch operation where some units succeeded and some failed.

    Attributes:
        succeeded: Paths that were changed before or despite the failures
        errors: The underlying per-unit exceptions
    """

    def __init__(
        self,
        message: str,
        succeeded: Sequence[Path],
        errors: Sequence[Exception],
    ):
        details = "; ".join(str(e) for e in errors)
        super().__init__(f"{message}: {details}" if details else message)
        self.succeeded = list(succeeded)
        self.errors = list(errors)
