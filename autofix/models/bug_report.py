"""
Bug Report Model
================
Pydantic model for one bug parsed out of a Bugbot review comment.
This is the contract between the comment parser and all downstream consumers.

Fields:
    bug_id              : opaque id from the BUGBOT_BUG_ID marker, stable across re-fetches
    title               : headline of the comment
    severity            : low < medium < high < critical
    description         : free text explanation from the bot
    file_path           : relative to repo root
    start_line/end_line : optional location range
    commit_id           : the revision the bot reviewed
    source_comment_id   : numeric id of the originating review comment
"""
from enum import Enum
from typing import Optional
from pydantic import BaseModel


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


class BugReport(BaseModel):
    bug_id: str
    title: str
    severity: Severity = Severity.MEDIUM
    description: str = ""
    file_path: str = ""
    start_line: Optional[int] = None
    end_line: Optional[int] = None
    commit_id: str = ""
    source_comment_id: int
