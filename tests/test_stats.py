"""Tests for run statistics."""

from convex_migration.migration.models import Outcome, RecordKind
from convex_migration.migration.stats import MAX_ISSUES, RunStatistics


def test_counts_per_kind():
    stats = RunStatistics()
    stats.set_total(RecordKind.USERS, 3)
    stats.record(RecordKind.USERS, Outcome.CREATED)
    stats.record(RecordKind.USERS, Outcome.SKIPPED, "u2", "No mapped organizations")
    stats.record(RecordKind.USERS, Outcome.ERRORED, "u3", "boom")

    users = stats.for_kind(RecordKind.USERS)
    assert (users.total, users.created, users.skipped, users.errored) == (3, 1, 1, 1)
    assert users.processed == 3
    assert stats.has_errors


def test_issues_keep_only_skips_and_errors_with_reasons():
    stats = RunStatistics()
    stats.record(RecordKind.TAGS, Outcome.CREATED, "t1", "ignored")
    stats.record(RecordKind.TAGS, Outcome.SKIPPED, "t2")
    stats.record(RecordKind.TAGS, Outcome.SKIPPED, "t3", "Duplicate")

    assert [(i.source_id, i.reason) for i in stats.issues] == [("t3", "Duplicate")]


def test_issue_list_is_bounded():
    stats = RunStatistics()
    for i in range(MAX_ISSUES + 5):
        stats.record(RecordKind.PROPERTIES, Outcome.ERRORED, str(i), "failed")

    assert len(stats.issues) == MAX_ISSUES
    assert stats.dropped_issues == 5
    assert stats.for_kind(RecordKind.PROPERTIES).errored == MAX_ISSUES + 5


def test_summary_is_plain_data():
    stats = RunStatistics()
    stats.record(RecordKind.TAG_LINKS, Outcome.CREATED)

    summary = stats.summary()

    assert summary["kinds"]["tag_links"]["created"] == 1
    assert summary["issues"] == []
    assert not stats.has_errors
