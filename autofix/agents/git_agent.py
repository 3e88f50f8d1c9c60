"""
Git Agent
=========
Handles repository operations on a local clone: checking out the PR head,
reading the PR diff, and committing + pushing the fix to the head branch.
"""
import logging
import re
import subprocess
from typing import List

from autofix.core.constants import COMMIT_TITLE
from autofix.core.exceptions import GitCommandError
from autofix.models.bug_report import BugReport
from autofix.models.pull_request import PullRequest

logger = logging.getLogger(__name__)

GIT_TIMEOUT_SECONDS = 120

_TOKEN_RE = re.compile(r"x-access-token:[^@\s]+@")


def redact(text: str) -> str:
    """Hide tokens embedded in clone URLs."""
    return _TOKEN_RE.sub("x-access-token:***@", text)


def run_git(cwd: str, args: List[str], timeout: int = GIT_TIMEOUT_SECONDS) -> str:
    """Run a git command and return stdout. Raises GitCommandError on failure."""
    shown = [redact(a) for a in args]
    logger.debug("git %s", " ".join(shown), extra={"context": {"cwd": cwd}})
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            check=True,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.CalledProcessError as e:
        raise GitCommandError(shown, redact(e.stderr or ""))
    except subprocess.TimeoutExpired:
        raise GitCommandError(shown, f"timed out after {timeout}s")
    return result.stdout


def build_commit_message(bugs: List[BugReport]) -> str:
    titles = "\n".join(f"- {b.title}" for b in bugs)
    return f"{COMMIT_TITLE}\n\nFixed Cursor Bugbot issues:\n{titles}"


class GitAgent:
    """
    Agent responsible for branch state and pushing fixes to a PR head branch.
    """

    def checkout_pr_branch(self, repo_dir: str, pr: PullRequest) -> None:
        """
        Put the clone on the PR head branch at exactly origin/<head_ref>,
        creating the local branch when it does not exist yet.
        """
        run_git(repo_dir, ["fetch", "--all", "--prune"])
        run_git(repo_dir, ["checkout", f"origin/{pr.head_ref}"])
        try:
            run_git(repo_dir, ["checkout", pr.head_ref])
            run_git(repo_dir, ["reset", "--hard", f"origin/{pr.head_ref}"])
        except GitCommandError:
            run_git(repo_dir, ["checkout", "-b", pr.head_ref, f"origin/{pr.head_ref}"])
        logger.info("Checked out PR branch: %s", pr.head_ref)

    def get_pr_diff(self, repo_dir: str, pr: PullRequest) -> str:
        """Diff of the PR against its base. Empty string if unavailable."""
        try:
            diff = run_git(repo_dir, ["diff", f"origin/{pr.base_ref}...HEAD"])
        except GitCommandError as e:
            logger.warning(
                "Failed to retrieve PR diff, continuing without it.",
                extra={"context": {"base_ref": pr.base_ref, "error": str(e)}},
            )
            return ""
        logger.info("Retrieved PR diff.", extra={"context": {"diff_length": len(diff), "base_ref": pr.base_ref}})
        return diff

    def has_uncommitted_changes(self, repo_dir: str) -> bool:
        return bool(run_git(repo_dir, ["status", "--porcelain"]).strip())

    def commit_and_push(self, repo_dir: str, branch: str, bugs: List[BugReport]) -> str:
        """
        Stage everything, commit, push to origin/<branch>. Returns the commit SHA.
        """
        if branch.lower() in ("main", "master"):
            logger.warning("Pushing directly to default-named branch: %s", branch)

        run_git(repo_dir, ["add", "-A"])
        run_git(repo_dir, ["commit", "-m", build_commit_message(bugs)])
        sha = run_git(repo_dir, ["rev-parse", "HEAD"]).strip()
        run_git(repo_dir, ["push", "origin", branch])

        logger.info("Successfully pushed fix to branch: %s", branch, extra={"context": {"sha": sha[:10]}})
        return sha
