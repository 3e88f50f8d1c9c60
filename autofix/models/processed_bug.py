"""
Processed Bug Models
====================
Rows of the processed-bug ledger.

outcome is one of:
    <commit sha>        : fix committed
    None                : handled, produced no code change
    FAILED              : errored, retried next cycle
    SKIPPED_PR_CLOSED   : terminal, PR closed or inaccessible
    SKIPPED_RESOLVED    : terminal, review thread resolved before a fix
"""
from typing import Optional
from pydantic import BaseModel


class LedgerKey(BaseModel):
    """Identity of a bug for a ledger write."""
    bug_id: str
    repo: str
    pr_number: int


class ProcessedBugEntry(BaseModel):
    bug_id: str
    repo: str
    pr_number: int
    processed_at: str
    outcome: Optional[str] = None
