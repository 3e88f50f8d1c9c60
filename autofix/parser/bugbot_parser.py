"""
Bugbot Comment Parser
=====================
Converts raw Cursor Bugbot review comments into structured BugReport objects.

Comment format (HTML-comment markers embedded in markdown):
    ### <title>
    **<Low|Medium|High|Critical> Severity**
    <!-- DESCRIPTION START --> ... <!-- DESCRIPTION END -->
    <!-- LOCATIONS START
    path/to/file.py#L10-L12
    LOCATIONS END -->
    <!-- BUGBOT_BUG_ID: <id> -->

Contract:
    - DETERMINISTIC: same comment → same BugReport, always.
    - Regex matching only.
    - Tolerant: returns None for unrecognised comments, never raises.
"""
import re
import logging
from typing import Optional, Tuple

from autofix.core.constants import DEFAULT_BOT_LOGIN
from autofix.models.bug_report import BugReport, Severity
from autofix.models.review_comment import ReviewComment

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------
BUG_ID_PATTERN = re.compile(r"<!-- BUGBOT_BUG_ID:\s*([0-9a-zA-Z_-]+)\s*-->")
DESCRIPTION_PATTERN = re.compile(r"<!-- DESCRIPTION START -->(.*?)<!-- DESCRIPTION END -->", re.DOTALL)
LOCATIONS_PATTERN = re.compile(r"<!-- LOCATIONS START\n(.*?)LOCATIONS END -->", re.DOTALL)
TITLE_PATTERN = re.compile(r"^###\s+(.+)$", re.MULTILINE)
SEVERITY_PATTERN = re.compile(r"\*\*(Low|Medium|High|Critical)\s+Severity\*\*", re.IGNORECASE)
LINE_RANGE_PATTERN = re.compile(r"^(.+?)#L(\d+)(?:-L(\d+))?$")

_FALLBACK_DESCRIPTION_LIMIT = 500


def is_bugbot_comment(comment: ReviewComment, bot_login: str = DEFAULT_BOT_LOGIN) -> bool:
    """True if the comment was written by the bot and carries a bug id marker."""
    return comment.user_login == bot_login and bool(BUG_ID_PATTERN.search(comment.body))


def parse_severity(raw: str) -> Severity:
    lower = raw.lower()
    for severity in Severity:
        if severity.value == lower:
            return severity
    return Severity.LOW


def parse_locations(body: str, comment_path: str) -> Tuple[str, Optional[int], Optional[int]]:
    """
    Return (file_path, start_line, end_line) from the LOCATIONS block.

    The first entry that is either `path#Lx[-Ly]` or a bare path wins.
    Falls back to the path the comment is attached to.
    """
    match = LOCATIONS_PATTERN.search(body)
    if match:
        for line in match.group(1).strip().split("\n"):
            entry = line.strip()
            if not entry:
                continue

            range_match = LINE_RANGE_PATTERN.match(entry)
            if range_match:
                end = range_match.group(3)
                return (
                    range_match.group(1),
                    int(range_match.group(2)),
                    int(end) if end else None,
                )

            if "#" not in entry:
                return entry, None, None

    return comment_path, None, None


def extract_fallback_description(body: str) -> str:
    """Text between the severity (or title) line and the bug id marker."""
    start = 0
    severity_match = SEVERITY_PATTERN.search(body)
    title_match = TITLE_PATTERN.search(body)
    if severity_match:
        start = severity_match.end()
    elif title_match:
        start = title_match.end()

    end = body.find("<!-- BUGBOT_BUG_ID:")
    text = body[start:] if end == -1 else body[start:end]
    return text.strip()[:_FALLBACK_DESCRIPTION_LIMIT]


def parse_bugbot_comment(comment: ReviewComment) -> Optional[BugReport]:
    """
    Parse a review comment into a BugReport.

    Returns None when the comment has no BUGBOT_BUG_ID marker.
    """
    body = comment.body or ""
    id_match = BUG_ID_PATTERN.search(body)
    if not id_match:
        return None

    title_match = TITLE_PATTERN.search(body)
    severity_match = SEVERITY_PATTERN.search(body)
    description_match = DESCRIPTION_PATTERN.search(body)

    file_path, start_line, end_line = parse_locations(body, comment.path)

    bug = BugReport(
        bug_id=id_match.group(1),
        title=title_match.group(1).strip() if title_match else "Unknown bug",
        severity=parse_severity(severity_match.group(1)) if severity_match else Severity.MEDIUM,
        description=(
            description_match.group(1).strip()
            if description_match
            else extract_fallback_description(body)
        ),
        file_path=file_path,
        start_line=start_line,
        end_line=end_line,
        commit_id=comment.commit_id,
        source_comment_id=comment.id,
    )

    logger.debug(
        "Parsed Bugbot bug.",
        extra={"context": {
            "bug_id": bug.bug_id,
            "severity": bug.severity.value,
            "file_path": bug.file_path,
            "start_line": bug.start_line,
        }},
    )
    return bug
