"""Filesystem-backed journal store - one markdown file per entry.

Layout::

    <root>/<YYYY>/<MM>/<YYYY-MM-DD-HH-MM-SS>.md

Filenames use the UTC timestamp truncated to whole seconds. Entries that
land on the same second get ``-01``, ``-02``, ... suffixes in save order.
"""

from __future__ import annotations

import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, Optional, Union

from loguru import logger

from .codec import parse_entry, serialize_entry
from .config import StoreConfig
from .errors import (
    CollisionExhausted,
    JournalError,
    JournalIOError,
    NotFoundError,
    ParseError,
    PartialFailure,
)
from .index import Index
from .locking import atomic_write, file_lock
from .models import EntryFilter, IndexedEntry, JournalEntry, as_utc, file_timestamp, path_order

MARKDOWN_EXT = ".md"

# Suffixes -01 .. -99 are tried after the bare filename
MAX_COLLISION_ATTEMPTS = 100

# Scan range when a filter leaves a side unbounded
DEFAULT_START_YEAR = 1900
DEFAULT_END_YEAR = 2100

PathLike = Union[str, Path]


def is_entry_file(path: Path) -> bool:
    """Markdown files, excluding dotfiles such as in-flight temp files."""
    return path.name.lower().endswith(MARKDOWN_EXT) and not path.name.startswith(".")


class FileStore:
    """Owns the entry tree on disk and the cached search index."""

    def __init__(self, config: Optional[StoreConfig] = None, root: Optional[PathLike] = None):
        self.config = config or StoreConfig()
        self.root = Path(root if root is not None else self.config.storage_path).expanduser()
        self._ensure_directories()

        # (generation, index, build error), replaced as one tuple; every
        # mutation bumps _generation
        self._index_cache: tuple[int, Optional[Index], Optional[Exception]] = (-1, None, None)
        self._generation = 0
        self._generation_lock = threading.Lock()
        self._build_lock = threading.Lock()

    def _ensure_directories(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    @property
    def _lock_target(self) -> Path:
        return self.root / ".journal"

    # ========== Paths ==========

    def build_file_path(self, timestamp: datetime) -> Path:
        """Canonical (un-suffixed) path for an entry timestamp."""
        utc = as_utc(timestamp)
        return self.root / f"{utc.year:04d}" / f"{utc.month:02d}" / f"{file_timestamp(utc)}{MARKDOWN_EXT}"

    def candidate_paths(self, timestamp: datetime) -> Iterator[Path]:
        """The canonical path followed by every collision-suffixed path."""
        base = self.build_file_path(timestamp)
        yield base
        stem = base.name[: -len(MARKDOWN_EXT)]
        for i in range(1, MAX_COLLISION_ATTEMPTS):
            yield base.with_name(f"{stem}-{i:02d}{MARKDOWN_EXT}")

    def _find_available_path(self, timestamp: datetime) -> Path:
        for path in self.candidate_paths(timestamp):
            if not path.exists():
                return path
        raise CollisionExhausted(
            f"too many entries with timestamp {file_timestamp(timestamp)} "
            f"({MAX_COLLISION_ATTEMPTS} attempts)"
        )

    def find_files(self, entry_filter: Optional[EntryFilter] = None) -> list[Path]:
        """List entry files inside the year/month span of the filter bounds."""
        entry_filter = entry_filter or EntryFilter()
        start_year, start_month = DEFAULT_START_YEAR, 1
        end_year, end_month = DEFAULT_END_YEAR, 12
        if entry_filter.start_date is not None:
            start = as_utc(entry_filter.start_date)
            start_year, start_month = start.year, start.month
        if entry_filter.end_date is not None:
            end = as_utc(entry_filter.end_date)
            end_year, end_month = end.year, end.month

        files: list[Path] = []
        for year in range(start_year, end_year + 1):
            year_path = self.root / f"{year:04d}"
            if not year_path.is_dir():
                continue

            first_month = start_month if year == start_year else 1
            last_month = end_month if year == end_year else 12
            for month in range(first_month, last_month + 1):
                month_path = year_path / f"{month:02d}"
                if not month_path.is_dir():
                    continue
                try:
                    children = sorted(month_path.iterdir())
                except OSError as e:
                    logger.warning(f"Cannot read directory {month_path}: {e}")
                    continue
                files.extend(p for p in children if p.is_file() and is_entry_file(p))

        return files

    # ========== Reading ==========

    def parse_file(self, path: PathLike) -> JournalEntry:
        """Read and parse a single entry file.

        Raises:
            JournalIOError: If the file cannot be read
            ParseError: If the content is not a valid entry
        """
        path = Path(path)
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise JournalIOError(f"failed to read {path}: {e}", path=path) from e
        try:
            return parse_entry(content)
        except ParseError as e:
            raise ParseError(f"failed to parse {path}: {e}") from e

    def read_entry(self, path: PathLike) -> JournalEntry:
        """Parse one requested entry; any failure surfaces as NotFoundError."""
        try:
            return self.parse_file(path)
        except JournalError as e:
            raise NotFoundError(f"entry not found: {path}: {e}") from e

    def _parse_files(self, files: Iterable[Path]) -> list[tuple[Path, JournalEntry]]:
        """Parse files over the worker pool, skipping (and logging) bad ones."""
        parsed: list[tuple[Path, JournalEntry]] = []
        with ThreadPoolExecutor(max_workers=self.config.worker_count, thread_name_prefix="entry-parse") as pool:
            futures = {pool.submit(self.parse_file, path): path for path in files}
            for future in as_completed(futures):
                path = futures[future]
                try:
                    parsed.append((path, future.result()))
                except JournalError as e:
                    logger.warning(f"Skipping invalid file during list: {e}")
        return parsed

    def get_entry(self, timestamp: datetime) -> JournalEntry:
        """Return the first parseable entry saved at ``timestamp``'s second.

        Raises:
            NotFoundError: If no candidate path holds a valid entry
        """
        for i, path in enumerate(self.candidate_paths(timestamp)):
            if i > 0 and not path.exists():
                break
            try:
                return self.parse_file(path)
            except JournalError:
                continue
        raise NotFoundError(f"entry not found: {file_timestamp(timestamp)}")

    def get_entry_path(self, timestamp: datetime) -> Path:
        """Return the first existing path for ``timestamp``.

        Raises:
            NotFoundError: If no file exists for the timestamp
        """
        for i, path in enumerate(self.candidate_paths(timestamp)):
            if path.exists():
                return path
            if i > 0:
                break
        raise NotFoundError(f"entry not found: {file_timestamp(timestamp)}")

    def list_entries(self, entry_filter: Optional[EntryFilter] = None) -> list[JournalEntry]:
        """List entries in the filter's date range, oldest first, paginated.

        Files that fail to parse are skipped with a warning.
        """
        entry_filter = entry_filter or EntryFilter()
        files = self.find_files(entry_filter)
        parsed = self._parse_files(files)

        # Filenames are second-truncated, so re-check the precise bounds
        matched = [(path, entry) for path, entry in parsed if entry_filter.matches(entry.timestamp)]
        matched.sort(key=lambda item: (as_utc(item[1].timestamp), path_order(item[0])))
        return entry_filter.paginate([entry for _, entry in matched])

    # ========== Writing ==========

    def save_entry(self, entry: JournalEntry) -> Path:
        """Persist a new entry and return the path it was written to.

        Raises:
            CollisionExhausted: If every suffix for the second is taken
            ParseError: If the timestamp's zone cannot be written into a header
            JournalIOError: If the file cannot be written
        """
        markdown = serialize_entry(entry)

        with file_lock(self._lock_target, timeout=self.config.lock_timeout):
            path = self._find_available_path(entry.timestamp)
            try:
                with atomic_write(path) as f:
                    f.write(markdown)
            except OSError as e:
                raise JournalIOError(f"failed to write entry {path}: {e}", path=path) from e

        logger.debug(f"Saved entry {path}")
        self.invalidate_index()
        return path

    def update_entry(self, path: PathLike, entry: JournalEntry) -> None:
        """Atomically replace the entry stored at ``path``.

        Raises:
            NotFoundError: If ``path`` does not exist
            JournalIOError: If the file cannot be written
        """
        path = Path(path)
        if not path.exists():
            raise NotFoundError(f"entry not found: {path}")

        markdown = serialize_entry(entry)
        with file_lock(self._lock_target, timeout=self.config.lock_timeout):
            try:
                with atomic_write(path) as f:
                    f.write(markdown)
            except OSError as e:
                raise JournalIOError(f"failed to update entry {path}: {e}", path=path) from e

        logger.debug(f"Updated entry {path}")
        self.invalidate_index()

    def delete_entry(self, path: PathLike) -> None:
        """Remove the entry stored at ``path``.

        Raises:
            NotFoundError: If ``path`` does not exist
            JournalIOError: If the file cannot be removed
        """
        path = Path(path)
        if not path.exists():
            raise NotFoundError(f"entry not found: {path}")

        with file_lock(self._lock_target, timeout=self.config.lock_timeout):
            try:
                os.remove(path)
            except OSError as e:
                raise JournalIOError(f"failed to delete {path}: {e}", path=path) from e

        logger.debug(f"Deleted entry {path}")
        self.invalidate_index()

    def delete_entries(self, entry_filter: Optional[EntryFilter] = None) -> list[Path]:
        """Delete every valid entry whose timestamp matches the filter.

        Pagination fields of the filter are ignored. Unparseable files are
        never deleted.

        Returns:
            Deleted paths, oldest first

        Raises:
            PartialFailure: If some deletions failed; ``succeeded`` lists
                the paths that were removed
        """
        entry_filter = entry_filter or EntryFilter()
        parsed = self._parse_files(self.find_files(entry_filter))
        targets = sorted(
            (path for path, entry in parsed if entry_filter.matches(entry.timestamp)),
            key=path_order,
        )

        deleted: list[Path] = []
        errors: list[Exception] = []
        with file_lock(self._lock_target, timeout=self.config.lock_timeout):
            for path in targets:
                try:
                    os.remove(path)
                except OSError as e:
                    errors.append(JournalIOError(f"failed to delete {path}: {e}", path=path))
                    continue
                deleted.append(path)

        if deleted:
            logger.info(f"Deleted {len(deleted)} entries")
            self.invalidate_index()

        if errors:
            raise PartialFailure(
                f"failed to delete {len(errors)} of {len(targets)} entries", deleted, errors
            )
        return deleted

    # ========== Index ==========

    def invalidate_index(self) -> None:
        """Mark the cached index stale; the next access rebuilds it."""
        with self._generation_lock:
            self._generation += 1

    @property
    def generation(self) -> int:
        return self._generation

    def _cached_index(self, generation: int) -> Optional[Index]:
        """Return the cached index if it was built for ``generation``.

        Re-raises the cached build error for that generation.
        """
        cached_generation, index, error = self._index_cache
        if cached_generation != generation:
            return None
        if error is not None:
            raise error
        return index

    def get_index(self) -> Index:
        """Return the index for the current generation, building it if needed.

        A cache hit does not take the build lock. Concurrent callers that
        miss share one build; a build error is cached for the generation and
        re-raised to every caller until invalidation.
        """
        index = self._cached_index(self._generation)
        if index is not None:
            return index

        with self._build_lock:
            generation = self._generation
            index = self._cached_index(generation)
            if index is not None:
                return index

            try:
                files = self.find_files(EntryFilter())
                index = Index()
                index.build(files, self.config.worker_count, self.parse_file)
            except (OSError, JournalError) as e:
                self._index_cache = (generation, None, e)
                logger.error(f"Index build failed: {e}")
                raise

            self._index_cache = (generation, index, None)
            logger.info(f"Built index: {index.size} entries ({index.skipped} skipped)")
            return index

    @property
    def index(self) -> Index:
        """Lazily build and return the search index."""
        return self.get_index()

    def rebuild_index(self) -> Index:
        """Discard the cached index and build a fresh one now."""
        self.invalidate_index()
        return self.get_index()

    def _filtered(self, indexed: list[IndexedEntry], entry_filter: Optional[EntryFilter]) -> list[IndexedEntry]:
        if entry_filter is None:
            return indexed
        return [e for e in indexed if entry_filter.matches(e.timestamp)]

    def search_by_tags(self, tags: list[str], entry_filter: Optional[EntryFilter] = None) -> list[IndexedEntry]:
        """Index candidates carrying all ``tags`` within the filter's dates."""
        return self._filtered(self.index.search_by_tags(tags), entry_filter)

    def search_by_mentions(self, mentions: list[str], entry_filter: Optional[EntryFilter] = None) -> list[IndexedEntry]:
        """Index candidates carrying all ``mentions`` within the filter's dates."""
        return self._filtered(self.index.search_by_mentions(mentions), entry_filter)

    def search_by_keyword(self, keyword: str, entry_filter: Optional[EntryFilter] = None) -> list[IndexedEntry]:
        """Index candidates whose body contains ``keyword`` within the filter's dates."""
        return self._filtered(self.index.search_by_keyword(keyword), entry_filter)

    def load_entries(self, indexed: Iterable[IndexedEntry]) -> list[tuple[Path, JournalEntry]]:
        """Read full entries for index hits, skipping files gone since the build."""
        loaded = []
        for item in indexed:
            try:
                loaded.append((item.file_path, self.parse_file(item.file_path)))
            except JournalError as e:
                logger.warning(f"Skipping indexed file that no longer parses: {e}")
        return loaded

    def entries_with_tag(self, tag: str) -> list[Path]:
        return [e.file_path for e in self.index.entries_for_tag(tag)]

    def entries_with_mention(self, mention: str) -> list[Path]:
        return [e.file_path for e in self.index.entries_for_mention(mention)]

    def tag_statistics(self) -> dict[str, int]:
        return self.index.tag_statistics()

    def mention_statistics(self) -> dict[str, int]:
        return self.index.mention_statistics()
