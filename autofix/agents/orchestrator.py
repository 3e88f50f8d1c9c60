"""
Orchestrator
============
The autofix daemon: owns the polling loop, per-report processing, and
graceful shutdown.

Lifecycle phases:
    starting → locking → initializing → running → shutting_down → stopped
    (starting and locking happen in main.py, before the daemon exists)

Running (steady state):
    { discover → process each report sequentially → interruptible sleep } *

Per-report outcomes (always one ledger write over exactly the report's bugs):
    - commit produced  → record SHA, then post a summary comment (best-effort)
    - no changes       → record None (processed, not retried)
    - executor raised  → record FAILED (retried next cycle), continue

Fault tolerance:
    - One PR's failure never aborts the cycle for other PRs
    - Cycle-level exceptions are logged; the loop sleeps and carries on
    - A shutdown signal lets the in-flight report finish, then stops
"""
import asyncio
import logging
import signal
from typing import List, Literal, Optional

from autofix.agents.bugbot_monitor import BugbotMonitor
from autofix.agents.fix_agent import FixGenerator
from autofix.core.config import DaemonConfig
from autofix.core.constants import OUTCOME_FAILED
from autofix.core.output_formatter import format_fix_comment
from autofix.models.fix_result import FixResult
from autofix.models.processed_bug import LedgerKey
from autofix.models.pull_request import PrBugReport, PullRequest
from autofix.services.github_client import GitHubClient
from autofix.services.prerequisites import verify_prerequisites
from autofix.state.ledger import StateStore

logger = logging.getLogger(__name__)

DaemonPhase = Literal[
    "starting",
    "locking",
    "initializing",
    "running",
    "shutting_down",
    "stopped",
]

_SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _report_keys(report: PrBugReport) -> List[LedgerKey]:
    return [
        LedgerKey(bug_id=b.bug_id, repo=report.pr.full_name, pr_number=report.pr.number)
        for b in report.bugs
    ]


class AutofixDaemon:
    """
    Polling daemon wiring discovery, fix execution and the ledger together.

    Collaborators may be injected (tests); anything left as None is built
    during initialize().
    """

    def __init__(
        self,
        config: DaemonConfig,
        state: Optional[StateStore] = None,
        github: Optional[GitHubClient] = None,
        monitor: Optional[BugbotMonitor] = None,
        fix_generator: Optional[FixGenerator] = None,
        check_prerequisites: bool = True,
    ) -> None:
        self.config = config
        self.state = state or StateStore(config.db_path)
        self.github = github
        self.monitor = monitor
        self.fix_generator = fix_generator
        self.check_prerequisites = check_prerequisites
        self.phase: DaemonPhase = "initializing"
        self._shutdown_event = asyncio.Event()
        self._closed = False
        self._signals_installed = False

    @property
    def is_shutting_down(self) -> bool:
        return self._shutdown_event.is_set()

    # -------------------------------------------------------------------
    # Initialization
    # -------------------------------------------------------------------
    async def initialize(self) -> None:
        logger.info("Initializing Bugbot Autofix...")
        logger.info(
            "Configuration loaded.",
            extra={"context": {
                "orgs": self.config.github_orgs,
                "repos": self.config.github_repos,
                "poll_interval": self.config.poll_interval,
                "claude_model": self.config.claude_model or "(default)",
            }},
        )

        if self.check_prerequisites:
            verify_prerequisites()

        if self.github is None:
            self.github = GitHubClient.from_environment(bot_login=self.config.bot_login)
        if self.monitor is None:
            self.monitor = BugbotMonitor(self.github, self.state, self.config)
        if self.fix_generator is None:
            self.fix_generator = FixGenerator(self.config, github_token=self.github.token)

        logger.info("Initialization complete. Starting daemon loop.")

    # -------------------------------------------------------------------
    # Main polling loop
    # -------------------------------------------------------------------
    async def run(self) -> None:
        self.phase = "running"
        installed_here = self.install_signal_handlers()
        try:
            while not self.is_shutting_down:
                try:
                    await self.poll_cycle()
                except Exception as e:
                    logger.error("Error in polling cycle.", extra={"context": {"error": str(e)}})

                if not self.is_shutting_down:
                    logger.info("Sleeping for %ds before next cycle...", self.config.poll_interval)
                    await self.sleep(self.config.poll_interval)
        finally:
            if installed_here:
                self.remove_signal_handlers()

    async def poll_cycle(self) -> None:
        logger.info("Starting polling cycle...")

        reports = await self.monitor.discover_unprocessed_bugs()
        if not reports:
            logger.info("No unprocessed Bugbot bugs found.")
            return

        logger.info("Found %d PR(s) with unprocessed bugs.", len(reports))
        for report in reports:
            if self.is_shutting_down:
                break
            await self.process_report(report)

    # -------------------------------------------------------------------
    # Single report
    # -------------------------------------------------------------------
    async def process_report(self, report: PrBugReport) -> None:
        pr = report.pr
        keys = _report_keys(report)
        logger.info(
            "Processing PR #%d in %s: %d bug(s) to fix.", pr.number, pr.full_name, len(report.bugs),
            extra={"context": {"bug_ids": [b.bug_id for b in report.bugs]}},
        )

        try:
            fix_result = await self.fix_generator.fix_bugs_on_pr_branch(pr, report.bugs)
        except Exception as e:
            logger.error(
                "Error processing PR #%d in %s. Bugs will be retried next cycle.", pr.number, pr.full_name,
                extra={"context": {"error": str(e)}},
            )
            self.state.record_outcomes(keys, OUTCOME_FAILED)
            return

        if fix_result is None:
            self.state.record_outcomes(keys, None)
            logger.info("No changes made for PR #%d. Bugs recorded as processed.", pr.number)
            return

        self.state.record_outcomes(keys, fix_result.commit_sha)
        logger.info(
            "Successfully fixed %d bug(s) on PR #%d.", len(fix_result.fixed_bugs), pr.number,
            extra={"context": {"repo": pr.full_name, "sha": fix_result.commit_sha[:10]}},
        )
        await self.post_fix_comment(pr, fix_result)

    async def post_fix_comment(self, pr: PullRequest, fix_result: FixResult) -> None:
        """Best-effort: failures are logged and never touch the ledger."""
        try:
            await self.github.create_issue_comment(
                pr.owner, pr.repo, pr.number, format_fix_comment(pr, fix_result)
            )
        except Exception as e:
            logger.warning(
                "Failed to post fix comment on PR.",
                extra={"context": {"repo": pr.full_name, "pr": pr.number, "error": str(e)}},
            )
            return
        logger.debug("Posted fix comment on PR.", extra={"context": {"repo": pr.full_name, "pr": pr.number}})

    # -------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------
    def request_shutdown(self, signame: str = "") -> None:
        if signame:
            logger.info("Received %s. Shutting down gracefully...", signame)
        self._shutdown_event.set()

    async def sleep(self, seconds: float) -> None:
        """Sleep that returns early as soon as shutdown is requested."""
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def install_signal_handlers(self) -> bool:
        """Route SIGINT/SIGTERM to request_shutdown. False if already installed."""
        if self._signals_installed:
            return False
        loop = asyncio.get_running_loop()
        for sig in _SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.request_shutdown, sig.name)
            except (NotImplementedError, RuntimeError):
                # Non-main thread or platform without loop signal support
                logger.debug("Could not install handler for %s.", sig.name)
        self._signals_installed = True
        return True

    def remove_signal_handlers(self) -> None:
        if not self._signals_installed:
            return
        loop = asyncio.get_running_loop()
        for sig in _SHUTDOWN_SIGNALS:
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass
        self._signals_installed = False

    async def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.phase = "shutting_down"
        if self.github is not None:
            await self.github.aclose()
        self.state.close()
        self.phase = "stopped"
        logger.info("Bugbot Autofix stopped.")


async def run_daemon(config: DaemonConfig) -> None:
    """
    Initialize and run the daemon; always closes the ledger and HTTP client.

    Signal handlers cover initialization too, so a SIGTERM during startup
    unwinds back to main() and the lock is released.
    """
    daemon = AutofixDaemon(config)
    daemon.install_signal_handlers()
    try:
        await daemon.initialize()
        if daemon.is_shutting_down:
            logger.info("Shutdown requested during initialization.")
        else:
            await daemon.run()
    finally:
        daemon.remove_signal_handlers()
        await daemon.shutdown()
