"""
Unit Tests: Processed-Bug Ledger
=================================
Outcome semantics, FAILED retry visibility and durability across reopen.
"""
import os
import sqlite3

import pytest

from autofix.core.constants import (
    OUTCOME_FAILED,
    OUTCOME_SKIPPED_PR_CLOSED,
    OUTCOME_SKIPPED_RESOLVED,
)
from autofix.models.processed_bug import LedgerKey
from autofix.state.ledger import StateStore


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "state" / "state.db")


@pytest.fixture
def store(db_path):
    s = StateStore(db_path)
    yield s
    s.close()


def key(bug_id, repo="acme/widgets", pr_number=1):
    return LedgerKey(bug_id=bug_id, repo=repo, pr_number=pr_number)


def test_creates_parent_directory(db_path, store):
    assert os.path.isfile(db_path)


def test_uses_wal_journal(store):
    mode = store._conn.execute("PRAGMA journal_mode").fetchone()[0]
    assert mode.lower() == "wal"


def test_unknown_bug_is_not_processed(store):
    assert store.is_bug_processed("nope") is False
    assert store.has_failed_bugs() is False


@pytest.mark.parametrize("outcome", [
    "abc123def456",
    None,
    OUTCOME_SKIPPED_PR_CLOSED,
    OUTCOME_SKIPPED_RESOLVED,
])
def test_terminal_outcomes_count_as_processed(store, outcome):
    store.record_outcomes([key("b1")], outcome)
    assert store.is_bug_processed("b1") is True
    assert store.has_failed_bugs() is False


def test_failed_outcome_is_retryable(store):
    store.record_outcomes([key("b2")], OUTCOME_FAILED)
    assert store.is_bug_processed("b2") is False
    assert store.has_failed_bugs() is True


def test_failed_row_overwritten_by_later_outcome(store):
    store.record_outcome("b2", "acme/widgets", 1, OUTCOME_FAILED)
    store.record_outcome("b2", "acme/widgets", 1, "deadbeef")

    assert store.is_bug_processed("b2") is True
    assert store.has_failed_bugs() is False
    entries = store.entries_for("acme/widgets", 1)
    assert len(entries) == 1
    assert entries[0].outcome == "deadbeef"


def test_has_failed_bugs_scoped_by_repo(store):
    store.record_outcomes([key("b1", repo="acme/widgets")], OUTCOME_FAILED)
    store.record_outcomes([key("b2", repo="acme/gadgets")], "sha")

    assert store.has_failed_bugs("acme/widgets") is True
    assert store.has_failed_bugs("acme/gadgets") is False
    assert store.has_failed_bugs() is True


def test_batch_write_shares_outcome_and_timestamp(store):
    store.record_outcomes([key("a"), key("b"), key("c")], "sha1")

    entries = store.entries_for("acme/widgets", 1)
    assert {e.bug_id for e in entries} == {"a", "b", "c"}
    assert {e.outcome for e in entries} == {"sha1"}
    assert len({e.processed_at for e in entries}) == 1


def test_empty_batch_is_noop(store):
    store.record_outcomes([], OUTCOME_FAILED)
    assert store.has_failed_bugs() is False


def test_batch_is_atomic(store):
    """A failing batch leaves no partial rows behind."""
    store._conn.execute(
        "CREATE TRIGGER reject_bad BEFORE INSERT ON processed_bugs "
        "WHEN NEW.bug_id = 'bad' BEGIN SELECT RAISE(ABORT, 'rejected'); END"
    )
    with pytest.raises(sqlite3.DatabaseError):
        store.record_outcomes([key("good"), key("bad")], "sha")

    assert store.is_bug_processed("good") is False
    assert store.entries_for("acme/widgets", 1) == []


def test_outcomes_survive_reopen(db_path):
    first = StateStore(db_path)
    first.record_outcomes([key("b1")], "sha")
    first.record_outcomes([key("b2")], OUTCOME_FAILED)
    first.close()

    second = StateStore(db_path)
    try:
        assert second.is_bug_processed("b1") is True
        assert second.is_bug_processed("b2") is False
        assert second.has_failed_bugs() is True
    finally:
        second.close()
