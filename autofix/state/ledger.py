"""
Processed-Bug Ledger
====================
SQLite-backed record of every Bugbot bug the daemon has handled, keyed by
bug id. This is the durability boundary of the daemon: a bug is only
"done" once its outcome is written here.

Semantics:
    - Any outcome other than FAILED is permanent; discovery never surfaces
      that bug again.
    - FAILED rows are reported as not processed so the bug is retried, and
      their presence disables the discovery recency window.
    - Writes are INSERT OR REPLACE, so a retried bug overwrites its FAILED
      row with the new outcome.

Single writer only. The daemon lock guarantees one process per ledger.
"""
import logging
import os
import sqlite3
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from autofix.core.constants import OUTCOME_FAILED
from autofix.models.processed_bug import LedgerKey, ProcessedBugEntry

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS processed_bugs (
    bug_id TEXT PRIMARY KEY,
    repo TEXT NOT NULL,
    pr_number INTEGER NOT NULL,
    processed_at TEXT NOT NULL,
    fix_commit_sha TEXT
);

CREATE INDEX IF NOT EXISTS idx_processed_bugs_repo_pr
    ON processed_bugs (repo, pr_number);
"""

_UPSERT = """
INSERT OR REPLACE INTO processed_bugs
    (bug_id, repo, pr_number, processed_at, fix_commit_sha)
VALUES (?, ?, ?, ?, ?)
"""


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class StateStore:
    """
    Persistent processed-bug table.

    Usage:
        store = StateStore("~/.bugbot-autofix/state.db")
        if not store.is_bug_processed("abc"):
            ...
        store.record_outcomes([LedgerKey(bug_id="abc", repo="o/r", pr_number=1)], "sha")
        store.close()
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        parent = os.path.dirname(os.path.abspath(db_path))
        os.makedirs(parent, exist_ok=True)

        self._conn = sqlite3.connect(db_path)
        self._conn.execute("PRAGMA journal_mode = WAL")
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

        logger.debug("State store initialized.", extra={"context": {"db_path": db_path}})

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def is_bug_processed(self, bug_id: str) -> bool:
        """True iff a row exists whose outcome is not FAILED."""
        row = self._conn.execute(
            "SELECT fix_commit_sha FROM processed_bugs WHERE bug_id = ?",
            (bug_id,),
        ).fetchone()
        return row is not None and row[0] != OUTCOME_FAILED

    def has_failed_bugs(self, repo: Optional[str] = None) -> bool:
        """True iff at least one FAILED row exists, optionally for one repo."""
        if repo is None:
            row = self._conn.execute(
                "SELECT 1 FROM processed_bugs WHERE fix_commit_sha = ? LIMIT 1",
                (OUTCOME_FAILED,),
            ).fetchone()
        else:
            row = self._conn.execute(
                "SELECT 1 FROM processed_bugs WHERE fix_commit_sha = ? AND repo = ? LIMIT 1",
                (OUTCOME_FAILED, repo),
            ).fetchone()
        return row is not None

    def entries_for(self, repo: str, pr_number: int) -> List[ProcessedBugEntry]:
        rows = self._conn.execute(
            "SELECT bug_id, repo, pr_number, processed_at, fix_commit_sha "
            "FROM processed_bugs WHERE repo = ? AND pr_number = ?",
            (repo, pr_number),
        ).fetchall()
        return [
            ProcessedBugEntry(
                bug_id=row[0],
                repo=row[1],
                pr_number=row[2],
                processed_at=row[3],
                outcome=row[4],
            )
            for row in rows
        ]

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------
    def record_outcomes(self, entries: Iterable[LedgerKey], outcome: Optional[str]) -> None:
        """Upsert every entry with the same outcome and timestamp in one transaction."""
        entries = list(entries)
        if not entries:
            return

        now = _utc_now()
        # Connection context manager commits on success, rolls back on error
        with self._conn:
            self._conn.executemany(
                _UPSERT,
                [(e.bug_id, e.repo, e.pr_number, now, outcome) for e in entries],
            )

        logger.debug(
            "Recorded %d processed bug(s).",
            len(entries),
            extra={"context": {"outcome": outcome, "bug_ids": [e.bug_id for e in entries]}},
        )

    def record_outcome(
        self, bug_id: str, repo: str, pr_number: int, outcome: Optional[str]
    ) -> None:
        self.record_outcomes(
            [LedgerKey(bug_id=bug_id, repo=repo, pr_number=pr_number)], outcome
        )

    # -------------------------------------------------------------------
    # Cleanup
    # -------------------------------------------------------------------
    def close(self) -> None:
        self._conn.close()
        logger.debug("State store closed.")
