"""
Unit tests for the per-principal visibility post-filter.
"""

from drivesync.changefinder_server.changes.visibility import filter_for_principal
from drivesync.changefinder_server.logstore import LogEntry


def entry(log_id, impacted=None):
    info = {"impactedUserName": impacted} if impacted is not None else {}
    return LogEntry(
        id=log_id,
        repository_id="default",
        event_date=log_id,
        category="driveSync",
        event_id="rootRegistered",
        extended_info=info,
    )


class TestFilterForPrincipal:
    """Tests for filter_for_principal."""

    def test_drops_entries_for_other_users(self):
        entries = [entry(1, "alice"), entry(2, "bob"), entry(3)]

        assert [e.id for e in filter_for_principal(entries, "bob")] == [2, 3]
        assert [e.id for e in filter_for_principal(entries, "alice")] == [1, 3]

    def test_entries_without_metadata_are_kept(self):
        entries = [entry(1), entry(2)]

        assert filter_for_principal(entries, "carol") == entries

    def test_null_impacted_user_is_visible_to_nobody(self):
        unnamed = LogEntry(
            id=1,
            repository_id="default",
            event_date=1,
            category="driveSync",
            event_id="rootRegistered",
            extended_info={"impactedUserName": None},
        )

        assert filter_for_principal([unnamed], "alice") == []

    def test_preserves_order(self):
        entries = [entry(5), entry(3, "alice"), entry(9), entry(1, "alice")]

        assert [e.id for e in filter_for_principal(entries, "alice")] == [5, 3, 9, 1]

    def test_does_not_mutate_input(self):
        entries = [entry(1, "alice"), entry(2, "bob")]

        filter_for_principal(entries, "alice")

        assert len(entries) == 2
