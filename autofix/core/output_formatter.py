"""
Output Formatter
================
Single source of truth for the summary comment posted on a PR after a fix.

Contract:
  - Deterministic: same PR + same FixResult → same string.
  - The first line is always AUTOFIX_COMMENT_MARKER so the daemon's own
    comments can be recognised later.
"""
from autofix.core.constants import AUTOFIX_COMMENT_MARKER
from autofix.models.fix_result import FixResult
from autofix.models.pull_request import PullRequest


def commit_url(pr: PullRequest, sha: str) -> str:
    return f"https://github.com/{pr.owner}/{pr.repo}/commit/{sha}"


def format_fix_comment(pr: PullRequest, fix_result: FixResult) -> str:
    short_sha = fix_result.commit_sha[:10]
    fixed_list = "\n".join(f"- **{bug.title}**" for bug in fix_result.fixed_bugs)
    return (
        f"{AUTOFIX_COMMENT_MARKER}\n"
        f"Bugbot Autofix committed fixes to address {len(fix_result.fixed_bugs)} "
        f"Cursor Bugbot issue(s) ([{short_sha}]({commit_url(pr, fix_result.commit_sha)})).\n\n"
        f"**Fixed issues:**\n{fixed_list}"
    )
