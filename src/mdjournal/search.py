"""Multi-criterion search composed from per-criterion index lookups."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from loguru import logger

from .models import EntryFilter, JournalEntry, as_utc, path_order
from .store import FileStore


@dataclass
class SearchQuery:
    """Search terms; every supplied term must match (AND logic).

    Attributes:
        tags: Tag names without '#'
        mentions: Mention names without '@'
        keywords: Case-insensitive body substrings; each is its own criterion
        reverse: Newest first instead of oldest first
    """
    tags: list[str] = field(default_factory=list)
    mentions: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    reverse: bool = False

    @property
    def is_empty(self) -> bool:
        return not (self.tags or self.mentions or self.keywords)

    @classmethod
    def from_terms(cls, terms: Iterable[str], reverse: bool = False) -> SearchQuery:
        """Split raw terms: ``#x`` is a tag, ``@x`` a mention, anything else a keyword."""
        query = cls(reverse=reverse)
        for term in terms:
            if len(term) > 1 and term.startswith("#"):
                query.tags.append(term[1:])
            elif len(term) > 1 and term.startswith("@"):
                query.mentions.append(term[1:])
            elif term:
                query.keywords.append(term)
        return query


class SearchEngine:
    """Runs SearchQuery objects against a FileStore and its index."""

    def __init__(self, store: FileStore):
        self.store = store

    def search(self, query: SearchQuery, entry_filter: Optional[EntryFilter] = None) -> list[JournalEntry]:
        """Return entries matching every term of ``query``.

        With no terms this is a plain listing of the filter's date range.
        Results are sorted by timestamp (reversed on request) and then
        paginated with the filter's offset and limit.
        """
        entry_filter = entry_filter or EntryFilter()

        if query.is_empty:
            entries = self.store.list_entries(entry_filter)
            if query.reverse:
                entries.reverse()
            return entries

        dates_only = entry_filter.without_pagination()
        candidate_sets: list[set[Path]] = []
        if query.tags:
            candidate_sets.append({e.file_path for e in self.store.search_by_tags(query.tags, dates_only)})
        if query.mentions:
            candidate_sets.append({e.file_path for e in self.store.search_by_mentions(query.mentions, dates_only)})
        for keyword in query.keywords:
            candidate_sets.append({e.file_path for e in self.store.search_by_keyword(keyword, dates_only)})

        paths = intersect(candidate_sets)
        logger.debug(f"Search matched {len(paths)} entries across {len(candidate_sets)} criteria")

        loaded = self.store.load_entries(
            e for e in self.store.index.entries if e.file_path in paths
        )
        loaded.sort(key=lambda item: (as_utc(item[1].timestamp), path_order(item[0])), reverse=query.reverse)
        return entry_filter.paginate([entry for _, entry in loaded])


def intersect(sets: list[set[Path]]) -> set[Path]:
    """Paths present in every set. No sets means no results."""
    if not sets:
        return set()
    result = set(sets[0])
    for other in sets[1:]:
        result &= other
        if not result:
            break
    return result
