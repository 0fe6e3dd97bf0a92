"""Markdown journal storage with tag, mention and keyword search."""

from .codec import parse_entry, serialize_entry, make_entry
from .config import StoreConfig, load_config
from .errors import (
    CollisionExhausted,
    JournalError,
    JournalIOError,
    NotFoundError,
    ParseError,
    PartialFailure,
)
from .index import Index
from .log import configure_logging, setup_logging
from .models import EntryFilter, IndexedEntry, JournalEntry
from .rename import MetadataRenamer, RenameResult
from .search import SearchEngine, SearchQuery
from .store import FileStore

__version__ = "0.1.0"

__all__ = [
    "CollisionExhausted",
    "EntryFilter",
    "FileStore",
    "Index",
    "IndexedEntry",
    "JournalEntry",
    "JournalError",
    "JournalIOError",
    "MetadataRenamer",
    "NotFoundError",
    "ParseError",
    "PartialFailure",
    "RenameResult",
    "SearchEngine",
    "SearchQuery",
    "StoreConfig",
    "configure_logging",
    "load_config",
    "make_entry",
    "parse_entry",
    "serialize_entry",
    "setup_logging",
]
