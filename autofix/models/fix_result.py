"""
Fix Result Model
=================
Pydantic model tracking the outcome of a committed fix.

Fields:
    commit_sha  : SHA of the commit pushed to the PR head branch
    fixed_bugs  : the bugs addressed by that commit (id, title, description)
"""
from typing import List
from pydantic import BaseModel


class FixedBug(BaseModel):
    bug_id: str
    title: str
    description: str = ""


class FixResult(BaseModel):
    commit_sha: str
    fixed_bugs: List[FixedBug] = []
