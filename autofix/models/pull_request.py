"""
Pull Request Models
Fresh-per-cycle view of a PR and the set of bugs discovered on it.
"""
from typing import List
from pydantic import BaseModel

from .bug_report import BugReport


class PullRequest(BaseModel):
    owner: str
    repo: str
    number: int
    title: str = ""
    head_ref: str
    base_ref: str
    head_sha: str
    html_url: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


class PrBugReport(BaseModel):
    pr: PullRequest
    bugs: List[BugReport]
