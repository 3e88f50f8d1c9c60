"""
Constants
Centralised storage for bot identity, comment markers, and ledger outcomes.
"""
DEFAULT_BOT_LOGIN = "cursor[bot]"
DEFAULT_LOOKBACK_DAYS = 7
DEFAULT_POLL_INTERVAL = 120

# Ledger outcomes other than a commit SHA or None
OUTCOME_FAILED = "FAILED"
OUTCOME_SKIPPED_PR_CLOSED = "SKIPPED_PR_CLOSED"
OUTCOME_SKIPPED_RESOLVED = "SKIPPED_RESOLVED"

AUTOFIX_COMMENT_MARKER = "<!-- BUGBOT_AUTOFIX_COMMENT -->"
COMMIT_TITLE = "fix: Bugbot Autofix"
LOCK_FILE_NAME = "daemon.lock"
