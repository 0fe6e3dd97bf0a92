"""In-memory secondary index over tags, mentions and entry bodies.

The markdown files remain the source of truth; the index is a disposable
lookup structure rebuilt from them. It reflects exactly the files that
parsed at build time and goes stale on the next store mutation.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Generator, Iterable, Optional

from loguru import logger

from .codec import normalize_key
from .models import IndexedEntry, JournalEntry

ParseFunc = Callable[[Path], JournalEntry]


class ReadWriteLock:
    """Many concurrent readers or one exclusive writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self) -> Generator[None, None, None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Generator[None, None, None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


def _parse_one(parse_fn: ParseFunc, path: Path) -> tuple[Path, Optional[JournalEntry], Optional[Exception]]:
    try:
        return path, parse_fn(path), None
    except Exception as e:
        return path, None, e


class Index:
    """Lookup of journal entries by tag, mention and keyword."""

    def __init__(self):
        self._lock = ReadWriteLock()
        self._entries: list[IndexedEntry] = []
        self._tag_index: dict[str, list[IndexedEntry]] = {}
        self._mention_index: dict[str, list[IndexedEntry]] = {}
        self._body_map: dict[Path, str] = {}
        self.skipped = 0

    def build(self, files: Iterable[Path], worker_count: int, parse_fn: ParseFunc) -> None:
        """Parse ``files`` across a pool of workers and populate the index.

        Files that fail to parse are left out. Results arrive in completion
        order, so every bucket is sorted by (timestamp, path) afterwards.

        Args:
            files: Entry file paths to index
            worker_count: Pool size; values below 1 mean 1
            parse_fn: Reads and parses one file, raising on failure
        """
        files = list(files)
        workers = max(1, worker_count)

        with self._lock.write():
            self._entries = []
            self._tag_index = {}
            self._mention_index = {}
            self._body_map = {}
            self.skipped = 0

            if not files:
                return

            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="index-build") as pool:
                futures = [pool.submit(_parse_one, parse_fn, path) for path in files]
                for future in as_completed(futures):
                    path, entry, error = future.result()
                    if error is not None:
                        logger.debug(f"Not indexing {path}: {error}")
                        self.skipped += 1
                        continue
                    self._add(path, entry)

            self._entries.sort(key=lambda e: e.sort_key)
            for bucket in self._tag_index.values():
                bucket.sort(key=lambda e: e.sort_key)
            for bucket in self._mention_index.values():
                bucket.sort(key=lambda e: e.sort_key)

        logger.debug(
            f"Indexed {len(self._entries)} entries from {len(files)} files "
            f"({self.skipped} skipped, {workers} workers)"
        )

    def _add(self, path: Path, entry: JournalEntry) -> None:
        indexed = IndexedEntry(
            file_path=path,
            timestamp=entry.timestamp,
            tags=tuple(normalize_key(t) for t in entry.tags),
            mentions=tuple(normalize_key(m) for m in entry.mentions),
        )
        self._entries.append(indexed)
        self._body_map[path] = entry.body
        for tag in indexed.tags:
            self._tag_index.setdefault(tag, []).append(indexed)
        for mention in indexed.mentions:
            self._mention_index.setdefault(mention, []).append(indexed)

    # ========== Queries ==========

    @staticmethod
    def _search_all(bucket_map: dict[str, list[IndexedEntry]], terms: list[str], attr: str) -> list[IndexedEntry]:
        if not terms:
            return []
        keys = [normalize_key(t) for t in terms]
        candidates = bucket_map.get(keys[0], [])
        wanted = set(keys)
        return [e for e in candidates if wanted.issubset(getattr(e, attr))]

    def search_by_tags(self, tags: list[str]) -> list[IndexedEntry]:
        """Entries carrying ALL of ``tags``. Empty input matches nothing."""
        with self._lock.read():
            return self._search_all(self._tag_index, tags, "tags")

    def search_by_mentions(self, mentions: list[str]) -> list[IndexedEntry]:
        """Entries carrying ALL of ``mentions``. Empty input matches nothing."""
        with self._lock.read():
            return self._search_all(self._mention_index, mentions, "mentions")

    def search_by_keyword(self, keyword: str) -> list[IndexedEntry]:
        """Entries whose body contains ``keyword``, ignoring case.

        This is a linear scan over every indexed body.
        """
        if not keyword:
            return []
        needle = keyword.lower()
        with self._lock.read():
            return [e for e in self._entries if needle in self._body_map[e.file_path].lower()]

    def get_body(self, file_path: Path) -> str:
        with self._lock.read():
            return self._body_map.get(Path(file_path), "")

    @property
    def size(self) -> int:
        with self._lock.read():
            return len(self._entries)

    @property
    def entries(self) -> list[IndexedEntry]:
        """Snapshot of all indexed entries, oldest first."""
        with self._lock.read():
            return list(self._entries)

    def entries_for_tag(self, tag: str) -> list[IndexedEntry]:
        with self._lock.read():
            return list(self._tag_index.get(normalize_key(tag), []))

    def entries_for_mention(self, mention: str) -> list[IndexedEntry]:
        with self._lock.read():
            return list(self._mention_index.get(normalize_key(mention), []))

    def tag_statistics(self) -> dict[str, int]:
        """Map of tag -> number of entries carrying it."""
        with self._lock.read():
            return {tag: len(bucket) for tag, bucket in self._tag_index.items()}

    def mention_statistics(self) -> dict[str, int]:
        """Map of mention -> number of entries carrying it."""
        with self._lock.read():
            return {mention: len(bucket) for mention, bucket in self._mention_index.items()}
