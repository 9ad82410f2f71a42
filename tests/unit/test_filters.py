"""
Unit tests for synchronization root and collection filters.

Tests cover:
- Root path normalization and validation
- Prefix-exact path matching
- Collection membership
- Lifecycle-only degradation with no roots and no collections
"""

import pytest

from drivesync.changefinder_server.changes.filters import (
    ROOT_REGISTERED,
    ROOT_UNREGISTERED,
    SynchronizationRoots,
    build_filter,
    normalize_root_path,
)
from drivesync.changefinder_server.config import ConfigurationError
from drivesync.changefinder_server.logstore import LogEntry, PathUnder, LogField

LIFECYCLE = "driveSync"


def entry(
    doc_path=None,
    doc_uuid=None,
    category="eventDocumentCategory",
    event_id="documentModified",
):
    return LogEntry(
        id=1,
        repository_id="default",
        event_date=0,
        category=category,
        event_id=event_id,
        doc_path=doc_path,
        doc_uuid=doc_uuid,
    )


class TestNormalizeRootPath:
    """Tests for normalize_root_path."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("/a/b", "/a/b"),
            ("/a/b/", "/a/b"),
            ("//a//b", "/a/b"),
            ("/", "/"),
        ],
    )
    def test_normalizes(self, raw, expected):
        assert normalize_root_path(raw) == expected

    @pytest.mark.parametrize("raw", ["", "a/b", "/a/../b", "/a/./b", None])
    def test_rejects_malformed(self, raw):
        with pytest.raises(ConfigurationError):
            normalize_root_path(raw)

    def test_trailing_slash_duplicates_collapse(self):
        roots = SynchronizationRoots.of(["/a/b", "/a/b/"])

        assert roots.sorted_paths() == ("/a/b",)

    def test_single_string_is_rejected(self):
        """A bare string is not silently iterated character by character."""
        with pytest.raises(ConfigurationError):
            SynchronizationRoots.of("/a/b")


class TestPathUnder:
    """Tests for prefix-exact path matching."""

    def test_sibling_with_shared_prefix_does_not_match(self):
        predicate = PathUnder(LogField.DOC_PATH, ("/a/b",))

        assert not predicate.matches(entry(doc_path="/a/bc/doc1"))
        assert predicate.matches(entry(doc_path="/a/b/doc1"))
        assert predicate.matches(entry(doc_path="/a/b"))

    def test_root_slash_matches_everything_absolute(self):
        predicate = PathUnder(LogField.DOC_PATH, ("/",))

        assert predicate.matches(entry(doc_path="/anything/below"))

    def test_missing_path_never_matches(self):
        predicate = PathUnder(LogField.DOC_PATH, ("/a",))

        assert not predicate.matches(entry(doc_path=None))


class TestBuildFilter:
    """Tests for build_filter."""

    def test_roots_only(self):
        predicate = build_filter({"/a/b"}, set(), LIFECYCLE)

        assert predicate.matches(entry(doc_path="/a/b/doc1"))
        assert not predicate.matches(entry(doc_path="/a/bc/doc1"))

    def test_collections_only(self):
        predicate = build_filter(set(), {"uuid-1"}, LIFECYCLE)

        assert predicate.matches(entry(doc_path="/elsewhere", doc_uuid="uuid-1"))
        assert not predicate.matches(entry(doc_path="/elsewhere", doc_uuid="uuid-2"))

    def test_roots_or_collections(self):
        predicate = build_filter({"/a"}, {"uuid-1"}, LIFECYCLE)

        assert predicate.matches(entry(doc_path="/a/doc"))
        assert predicate.matches(entry(doc_path="/z/doc", doc_uuid="uuid-1"))
        assert not predicate.matches(entry(doc_path="/z/doc", doc_uuid="uuid-2"))

    def test_nested_roots_are_legal(self):
        predicate = build_filter({"/a", "/a/b"}, set(), LIFECYCLE)

        assert predicate.matches(entry(doc_path="/a/b/doc"))

    def test_empty_degrades_to_lifecycle_events(self):
        predicate = build_filter(set(), None, LIFECYCLE)

        assert predicate.matches(entry(category=LIFECYCLE, event_id=ROOT_REGISTERED))
        assert not predicate.matches(entry(category=LIFECYCLE, event_id=ROOT_UNREGISTERED))
        assert not predicate.matches(entry(doc_path="/a/doc"))

    def test_lifecycle_events_kept_with_roots(self):
        """New roots outside the current ones are still reported."""
        predicate = build_filter({"/a"}, set(), LIFECYCLE)

        assert predicate.matches(
            entry(doc_path="/elsewhere", category=LIFECYCLE, event_id=ROOT_REGISTERED)
        )

    def test_document_event_restriction(self):
        predicate = build_filter(
            {"/a"}, set(), LIFECYCLE, document_event_ids=frozenset({"documentCreated"})
        )

        assert predicate.matches(entry(doc_path="/a/doc", event_id="documentCreated"))
        assert not predicate.matches(entry(doc_path="/a/doc", event_id="documentLocked"))

    def test_malformed_root_fails_fast(self):
        with pytest.raises(ConfigurationError):
            build_filter({"relative/path"}, set(), LIFECYCLE)
