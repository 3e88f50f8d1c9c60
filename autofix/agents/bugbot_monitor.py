"""
Bugbot Monitor
==============
Discovers PRs carrying Bugbot bugs that have never been handled.

Per monitored repository:
    1. Time window    : bounded lookback, or a full rescan while FAILED bugs exist
    2. Bulk fetch     : one repo-level call for all bot review comments, grouped by PR
    3. Per-PR filter, cheapest first:
        A. parse + ledger check (local)       → nothing left: no remote calls for the PR
        B. PR state (REST)                    → closed: record SKIPPED_PR_CLOSED
        C. resolved threads (GraphQL)         → resolved: record SKIPPED_RESOLVED
    4. A PR is reported only if it still has actionable bugs.

Terminal skip outcomes keep permanently-unfixable bugs out of the FAILED
set, so the bounded window is restored once retries settle.

Fault tolerance:
    A failure for one org listing, one repository or one PR is logged and
    skipped; the rest of the scan continues.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from autofix.core.config import DaemonConfig
from autofix.core.constants import OUTCOME_SKIPPED_PR_CLOSED, OUTCOME_SKIPPED_RESOLVED
from autofix.models.bug_report import BugReport
from autofix.models.processed_bug import LedgerKey
from autofix.models.pull_request import PrBugReport
from autofix.models.review_comment import ReviewComment
from autofix.parser.bugbot_parser import is_bugbot_comment, parse_bugbot_comment
from autofix.services.github_client import GitHubClient
from autofix.state.ledger import StateStore

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_since(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _ledger_keys(bugs: List[BugReport], repo: str, pr_number: int) -> List[LedgerKey]:
    return [LedgerKey(bug_id=b.bug_id, repo=repo, pr_number=pr_number) for b in bugs]


class BugbotMonitor:
    """
    Discovery engine turning the monitored repo set into actionable PR reports.
    """

    def __init__(
        self,
        github: GitHubClient,
        state: StateStore,
        config: DaemonConfig,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.github = github
        self.state = state
        self.config = config
        self._now = now

    # -------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------
    async def discover_unprocessed_bugs(self) -> List[PrBugReport]:
        repos = await self.get_monitored_repos()
        logger.info("Scanning %d repo(s) for %s comments.", len(repos), self.config.bot_login)

        reports: List[PrBugReport] = []
        for entry in repos:
            owner, repo = entry["owner"], entry["repo"]
            try:
                since = self.compute_since(f"{owner}/{repo}")
                reports.extend(await self.scan_repo(owner, repo, since))
            except Exception as e:
                logger.error(
                    "Error scanning repo %s/%s.", owner, repo,
                    extra={"context": {"repo": f"{owner}/{repo}", "error": str(e)}},
                )
        return reports

    # -------------------------------------------------------------------
    # Time window
    # -------------------------------------------------------------------
    def compute_since(self, repo_full_name: str = "") -> Optional[str]:
        """
        Lower time bound for the comment scan. None (full history) while
        FAILED bugs exist, so a retry is never hidden behind the window.
        """
        scope = repo_full_name if self.config.retry_scope == "repo" else None
        if self.state.has_failed_bugs(scope):
            logger.debug(
                "Skipping since filter to retry failed bugs.",
                extra={"context": {"scope": scope or "global"}},
            )
            return None
        return format_since(self._now() - timedelta(days=self.config.lookback_days))

    # -------------------------------------------------------------------
    # Monitored repositories
    # -------------------------------------------------------------------
    async def get_monitored_repos(self) -> List[Dict[str, str]]:
        """Explicit repos first, then every repo of each configured org, deduplicated."""
        seen = set()
        repos: List[Dict[str, str]] = []

        def add(owner: str, repo: str) -> None:
            key = f"{owner}/{repo}"
            if key in seen:
                return
            seen.add(key)
            repos.append({"owner": owner, "repo": repo})

        for entry_name in self.config.github_repos:
            parts = entry_name.split("/")
            if len(parts) != 2 or not parts[0] or not parts[1]:
                logger.warning("Ignoring malformed repo entry \"%s\".", entry_name)
                continue
            add(parts[0], parts[1])

        for org in self.config.github_orgs:
            try:
                for entry in await self.github.list_owner_repos(org):
                    add(entry["owner"], entry["name"])
            except Exception as e:
                logger.error(
                    "Failed to list repos for org \"%s\".", org,
                    extra={"context": {"org": org, "error": str(e)}},
                )

        return repos

    # -------------------------------------------------------------------
    # Repository scan
    # -------------------------------------------------------------------
    async def scan_repo(self, owner: str, repo: str, since: Optional[str]) -> List[PrBugReport]:
        comments_by_pr = await self.github.list_repo_bot_comments(owner, repo, since)
        if not comments_by_pr:
            return []

        reports: List[PrBugReport] = []
        for pr_number, comments in comments_by_pr.items():
            try:
                report = await self.process_pr_comments(owner, repo, pr_number, comments)
            except Exception as e:
                logger.error(
                    "Error processing comments for PR #%d in %s/%s.", pr_number, owner, repo,
                    extra={"context": {"repo": f"{owner}/{repo}", "pr": pr_number, "error": str(e)}},
                )
                continue
            if report and report.bugs:
                reports.append(report)
        return reports

    async def process_pr_comments(
        self, owner: str, repo: str, pr_number: int, comments: List[ReviewComment]
    ) -> Optional[PrBugReport]:
        repo_full_name = f"{owner}/{repo}"

        # --- Phase A: parse + ledger (local, free) ---
        candidates: List[BugReport] = []
        for comment in comments:
            if not is_bugbot_comment(comment, self.config.bot_login):
                continue
            bug = parse_bugbot_comment(comment)
            if bug is None:
                continue
            if self.state.is_bug_processed(bug.bug_id):
                logger.debug("Bug already processed, skipping.", extra={"context": {"bug_id": bug.bug_id}})
                continue
            candidates.append(bug)

        if not candidates:
            return None

        # --- Phase B: PR state (cheap REST call) ---
        pr = await self.github.get_pull_request(owner, repo, pr_number)
        if pr is None:
            self.state.record_outcomes(
                _ledger_keys(candidates, repo_full_name, pr_number), OUTCOME_SKIPPED_PR_CLOSED
            )
            logger.debug(
                "PR #%d in %s is closed/inaccessible, skipping %d bug(s).",
                pr_number, repo_full_name, len(candidates),
                extra={"context": {"bug_ids": [b.bug_id for b in candidates]}},
            )
            return None

        # --- Phase C: resolved threads (expensive GraphQL call) ---
        resolved_ids = await self.github.get_resolved_comment_ids(owner, repo, pr_number)

        resolved = [b for b in candidates if b.source_comment_id in resolved_ids]
        actionable = [b for b in candidates if b.source_comment_id not in resolved_ids]

        if resolved:
            self.state.record_outcomes(
                _ledger_keys(resolved, repo_full_name, pr_number), OUTCOME_SKIPPED_RESOLVED
            )
            logger.debug(
                "Skipping %d bug(s) with resolved review threads.", len(resolved),
                extra={"context": {"pr": pr_number, "bug_ids": [b.bug_id for b in resolved]}},
            )

        if not actionable:
            return None

        logger.info(
            "PR #%d in %s: %d unprocessed bug(s) found.", pr_number, repo_full_name, len(actionable),
            extra={"context": {"bug_ids": [b.bug_id for b in actionable]}},
        )
        return PrBugReport(pr=pr, bugs=actionable)
