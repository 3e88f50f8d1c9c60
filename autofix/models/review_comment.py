"""
Review Comment Model
Raw pull request review comment as returned by the repo-level comments API.
"""
from typing import Optional
from pydantic import BaseModel


class ReviewComment(BaseModel):
    id: int
    body: str = ""
    path: str = ""
    line: Optional[int] = None
    original_line: Optional[int] = None
    commit_id: str = ""
    user_login: str = ""
    pull_request_review_id: int = 0
    created_at: str = ""
