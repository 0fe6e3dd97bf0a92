"""Tag and mention renaming across every entry that uses them."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from pathlib import Path

from loguru import logger

from .codec import parse_entry, serialize_entry, validate_mention_name, validate_tag_name
from .errors import JournalError, PartialFailure
from .store import FileStore


@dataclass
class RenameResult:
    """Outcome of a rename.

    Attributes:
        old: Name that was replaced
        new: Replacement name
        candidates: Files the index listed under ``old``
        updated: Files whose body changed (or would change, on a dry run)
        merged: True if ``new`` was already in use, so the names merged
        dry_run: Nothing was written
    """
    old: str
    new: str
    candidates: list[Path] = field(default_factory=list)
    updated: list[Path] = field(default_factory=list)
    merged: bool = False
    dry_run: bool = False


def build_pattern(symbol: str, name: str, continuation: str, guard_prefix: bool) -> re.Pattern:
    """Case-insensitive ``{symbol}{name}`` not followed by a ``continuation`` char."""
    prefix = r"(?<![A-Za-z0-9_])" if guard_prefix else ""
    return re.compile(
        rf"{prefix}{re.escape(symbol)}{re.escape(name)}(?!{continuation})",
        re.IGNORECASE,
    )


class MetadataRenamer:
    """Rewrites a tag or mention in place, merging with an existing name."""

    def __init__(self, store: FileStore):
        self.store = store

    def replace_tag(self, old: str, new: str, dry_run: bool = False) -> RenameResult:
        """Rename ``#old`` to ``#new`` in every entry tagged ``old``.

        ``#old-suffix`` style tags are left alone.

        Raises:
            ValueError: If either name is not a valid tag
            PartialFailure: If some entries could not be rewritten
        """
        validate_tag_name(old)
        validate_tag_name(new)
        pattern = build_pattern("#", old, "[A-Za-z0-9_-]", guard_prefix=False)
        return self._replace(
            old,
            new,
            "#",
            pattern,
            self.store.entries_with_tag(old),
            bool(self.store.entries_with_tag(new)),
            dry_run,
        )

    def replace_mention(self, old: str, new: str, dry_run: bool = False) -> RenameResult:
        """Rename ``@old`` to ``@new`` in every entry mentioning ``old``.

        Raises:
            ValueError: If either name is not a valid mention
            PartialFailure: If some entries could not be rewritten
        """
        validate_mention_name(old)
        validate_mention_name(new)
        pattern = build_pattern("@", old, "[A-Za-z0-9_]", guard_prefix=True)
        return self._replace(
            old,
            new,
            "@",
            pattern,
            self.store.entries_with_mention(old),
            bool(self.store.entries_with_mention(new)),
            dry_run,
        )

    def _replace(
        self,
        old: str,
        new: str,
        symbol: str,
        pattern: re.Pattern,
        candidates: list[Path],
        merged: bool,
        dry_run: bool,
    ) -> RenameResult:
        result = RenameResult(old=old, new=new, candidates=list(candidates), merged=merged, dry_run=dry_run)
        errors: list[Exception] = []
        replacement = symbol + new

        for path in candidates:
            try:
                entry = self.store.parse_file(path)
                body = pattern.sub(lambda _m: replacement, entry.body)
                if body == entry.body:
                    continue

                # Round-trip through the codec so tags/mentions are re-derived
                # and duplicates collapse
                rewritten = parse_entry(serialize_entry(replace(entry, body=body)))

                if not dry_run:
                    self.store.update_entry(path, rewritten)
            except JournalError as e:
                errors.append(e)
                continue
            result.updated.append(path)

        verb = "Would rename" if dry_run else "Renamed"
        logger.info(f"{verb} {symbol}{old} to {symbol}{new} in {len(result.updated)} entries")

        if errors:
            raise PartialFailure(
                f"rename failed for {len(errors)} of {len(candidates)} entries",
                result.updated,
                errors,
            )
        return result
