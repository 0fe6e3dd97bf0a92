"""Tests for tag and mention renaming."""

from datetime import datetime, timedelta

import pytest

from mdjournal.errors import JournalIOError, PartialFailure
from mdjournal.rename import MetadataRenamer, build_pattern

from conftest import UTC

T0 = datetime(2026, 2, 8, 9, 0, tzinfo=UTC)


@pytest.fixture
def renamer(store):
    return MetadataRenamer(store)


class TestReplaceTag:
    """Tests for replace_tag."""

    def test_single_entry(self, store, save, renamer):
        path = save(T0, "Fixed a bug in #golang code.")

        result = renamer.replace_tag("golang", "go")

        assert result.updated == [path]
        assert not result.merged
        entry = store.get_entry(T0)
        assert entry.body == "Fixed a bug in #go code."
        assert entry.tags == ["go"]

    def test_multiple_entries(self, save, renamer):
        paths = [save(T0 + timedelta(hours=i), f"Entry {i} #work") for i in range(3)]
        save(T0 + timedelta(hours=5), "Unrelated #home")

        result = renamer.replace_tag("work", "job")

        assert result.updated == paths
        assert result.candidates == paths

    def test_case_insensitive_match(self, store, save, renamer):
        save(T0, "One #Work, two #WORK, three #work.")

        renamer.replace_tag("WORK", "job")

        entry = store.get_entry(T0)
        assert entry.body == "One #job, two #job, three #job."
        assert entry.tags == ["job"]

    def test_respects_word_boundary(self, store, save, renamer):
        """#code-review and #code_x are different tags from #code."""
        save(T0, "Did #code and #code-review and #code_x today.")

        renamer.replace_tag("code", "dev")

        entry = store.get_entry(T0)
        assert entry.body == "Did #dev and #code-review and #code_x today."
        assert entry.tags == ["code-review", "code_x", "dev"]

    def test_merge_into_existing_tag(self, store, save, renamer):
        """Renaming onto a tag already in use merges the two."""
        save(T0, "Both #a and #b here.")
        save(T0 + timedelta(hours=1), "Only #b here.")

        result = renamer.replace_tag("a", "b")

        assert result.merged
        entry = store.get_entry(T0)
        assert entry.body == "Both #b and #b here."
        assert entry.tags == ["b"]
        assert store.tag_statistics() == {"b": 2}

    def test_dry_run_changes_nothing(self, save, renamer):
        path = save(T0, "Keep #old as is.")
        before = path.read_text(encoding="utf-8")

        result = renamer.replace_tag("old", "new", dry_run=True)

        assert result.dry_run
        assert result.updated == [path]
        assert path.read_text(encoding="utf-8") == before

    def test_unknown_tag(self, save, renamer):
        save(T0, "Nothing relevant #here.")

        result = renamer.replace_tag("missing", "found")

        assert result.updated == []
        assert result.candidates == []

    @pytest.mark.parametrize("old,new", [("", "x"), ("ok", "1bad"), ("#ok", "x"), ("ok", "has space")])
    def test_invalid_names(self, renamer, old, new):
        with pytest.raises(ValueError):
            renamer.replace_tag(old, new)

    def test_index_reflects_rename(self, store, save, renamer):
        path = save(T0, "Tagged #before.")
        assert store.entries_with_tag("before") == [path]

        renamer.replace_tag("before", "after")

        assert store.entries_with_tag("before") == []
        assert store.entries_with_tag("after") == [path]

    def test_partial_failure(self, store, save, renamer, monkeypatch):
        """Entries that fail to write are reported; the rest are still renamed."""
        good = save(T0, "Good #x")
        bad = save(T0 + timedelta(hours=1), "Bad #x")
        real_update = store.update_entry

        def flaky_update(path, entry):
            if path == bad:
                raise JournalIOError(f"failed to update entry {path}: disk full", path=path)
            return real_update(path, entry)

        monkeypatch.setattr(store, "update_entry", flaky_update)

        with pytest.raises(PartialFailure) as exc_info:
            renamer.replace_tag("x", "y")

        assert exc_info.value.succeeded == [good]
        assert "disk full" in str(exc_info.value)
        assert "#y" in good.read_text(encoding="utf-8")
        assert "#x" in bad.read_text(encoding="utf-8")


class TestReplaceMention:
    """Tests for replace_mention."""

    def test_rename_mention(self, store, save, renamer):
        save(T0, "Lunch with @Alice and @alice_b.")

        result = renamer.replace_mention("alice", "alicia")

        assert len(result.updated) == 1
        entry = store.get_entry(T0)
        assert entry.body == "Lunch with @alicia and @alice_b."
        assert entry.mentions == ["alice_b", "alicia"]

    def test_email_left_alone(self, store, save, renamer):
        save(T0, "Ping @bob or mail me@bob.example.")

        renamer.replace_mention("bob", "robert")

        assert store.get_entry(T0).body == "Ping @robert or mail me@bob.example."

    def test_mention_merge(self, store, save, renamer):
        save(T0, "@bob and @robert are the same person.")

        result = renamer.replace_mention("bob", "robert")

        assert result.merged
        assert store.get_entry(T0).mentions == ["robert"]

    def test_hyphen_invalid_for_mentions(self, renamer):
        with pytest.raises(ValueError):
            renamer.replace_mention("bob", "bob-smith")


class TestBuildPattern:
    """Tests for the replacement pattern builder."""

    def test_escapes_name(self):
        pattern = build_pattern("#", "a.b", "[A-Za-z0-9_-]", guard_prefix=False)

        assert pattern.search("#a.b")
        assert not pattern.search("#axb")

    def test_prefix_guard(self):
        pattern = build_pattern("@", "bob", "[A-Za-z0-9_]", guard_prefix=True)

        assert pattern.search("(@bob)")
        assert not pattern.search("x@bob")
