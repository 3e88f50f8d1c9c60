"""
Fix Agent
=========
Fixes Bugbot bugs on a PR by driving the `claude` CLI inside a local clone
and committing the result straight onto the PR head branch.

Pipeline (per PR):
    1. Clone or refresh the repository
    2. Check out origin/<head_ref>
    3. Gather context: PR diff, changed files, project tree, docs, related imports
    4. Build the prompt and run `claude -p` with read/edit tools only
    5. No working-tree changes → None (nothing to commit)
    6. Otherwise commit, push, return FixResult

Re-running on an already-fixed bug is harmless: the tool finds nothing to
change and the agent returns None.

Errors (git failures, claude failures or timeouts) propagate to the
daemon, which records the PR's bugs as FAILED.
"""
import asyncio
import logging
import os
import subprocess
from typing import Dict, Iterable, List, Optional

from autofix.agents.git_agent import GitAgent
from autofix.core.config import DaemonConfig
from autofix.core.exceptions import FixGenerationError
from autofix.llm.prompts import build_fix_prompt
from autofix.models.bug_report import BugReport
from autofix.models.fix_result import FixedBug, FixResult
from autofix.models.pull_request import PullRequest
from autofix.services.repo_service import ensure_repo_clone
from autofix.utils.path_utils import (
    extract_changed_file_paths,
    extract_import_paths,
    resolve_import_path,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Context budgets (characters)
# ---------------------------------------------------------------------------
MAX_FILE_CONTEXT_SIZE = 200_000
MAX_RELATED_CONTEXT_SIZE = 100_000
MAX_PROJECT_STRUCTURE_SIZE = 5_000
MAX_DOC_SIZE = 10_000

PROJECT_DOC_FILES = ["CLAUDE.md", "AGENTS.md", "README.md"]

CLAUDE_TIMEOUT_SECONDS = 10 * 60
STRUCTURE_TIMEOUT_SECONDS = 10

_IGNORED_DIRS = "node_modules|.git|dist|build|__pycache__|.next|venv|.venv"

ALLOWED_TOOLS = ",".join([
    "Read",
    "Edit",
    "Bash(git diff *)",
    "Bash(git status *)",
    "Bash(find *)",
    "Bash(grep *)",
    "Bash(rg *)",
    "Bash(ls *)",
    "Bash(cat *)",
    "Bash(head *)",
    "Bash(tail *)",
    "Bash(wc *)",
    "Bash(tree *)",
])


def _truncate(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[:limit] + "\n... (truncated)"
    return text


def read_files_with_budget(repo_dir: str, paths: Iterable[str], budget: int) -> Dict[str, str]:
    """
    Read files in order until the character budget is spent. The file that
    crosses the budget is truncated; unreadable files are skipped.
    """
    contents: Dict[str, str] = {}
    total = 0
    for path in paths:
        if total >= budget:
            logger.debug("File context size limit reached.", extra={"context": {"skipped_file": path}})
            break
        try:
            with open(os.path.join(repo_dir, path), "r", encoding="utf-8") as f:
                content = f.read()
        except (OSError, UnicodeDecodeError):
            logger.debug("Could not read context file, skipping.", extra={"context": {"file_path": path}})
            continue

        remaining = budget - total
        if len(content) > remaining:
            contents[path] = content[:remaining] + "\n... (truncated)"
            total = budget
        else:
            contents[path] = content
            total += len(content)
    return contents


class FixGenerator:
    """
    Fix executor for one PR at a time.

    Parameters
    ----------
    config : DaemonConfig
        Supplies work_dir and the optional claude model.
    github_token : str
        Embedded in the clone URL so pushes are authenticated.
    git_agent : GitAgent or None
        Injected for tests.
    """

    def __init__(
        self,
        config: DaemonConfig,
        github_token: str = "",
        git_agent: Optional[GitAgent] = None,
    ) -> None:
        self.config = config
        self.github_token = github_token
        self.git_agent = git_agent or GitAgent()

    # -------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------
    async def fix_bugs_on_pr_branch(
        self, pr: PullRequest, bugs: List[BugReport]
    ) -> Optional[FixResult]:
        if not bugs:
            logger.info("No bugs to fix.")
            return None

        try:
            repo_dir = ensure_repo_clone(pr.owner, pr.repo, self.config.work_dir, self.github_token)
            self.git_agent.checkout_pr_branch(repo_dir, pr)

            pr_diff = self.git_agent.get_pr_diff(repo_dir, pr)
            changed_files = read_files_with_budget(
                repo_dir, extract_changed_file_paths(pr_diff), MAX_FILE_CONTEXT_SIZE
            )
            prompt = build_fix_prompt(
                bugs,
                pr_diff=pr_diff,
                changed_files=changed_files,
                project_structure=self.get_project_structure(repo_dir),
                project_docs=self.get_project_documentation(repo_dir),
                related_files=self.get_related_file_contents(repo_dir, bugs, set(changed_files)),
            )

            await self.run_claude_fix(repo_dir, prompt, len(bugs))

            if not self.git_agent.has_uncommitted_changes(repo_dir):
                logger.info("Claude did not make any changes. No fix to commit.")
                return None

            commit_sha = self.git_agent.commit_and_push(repo_dir, pr.head_ref, bugs)
        except Exception as e:
            logger.error(
                "Fix generation failed.",
                extra={"context": {
                    "repo": pr.full_name, "pr": pr.number, "branch": pr.head_ref, "error": str(e),
                }},
            )
            raise

        result = FixResult(
            commit_sha=commit_sha,
            fixed_bugs=[
                FixedBug(bug_id=b.bug_id, title=b.title, description=b.description) for b in bugs
            ],
        )
        logger.info(
            "Fix generation complete.",
            extra={"context": {
                "branch": pr.head_ref, "sha": commit_sha[:10], "fixed": len(result.fixed_bugs),
            }},
        )
        return result

    # -------------------------------------------------------------------
    # claude -p
    # -------------------------------------------------------------------
    async def run_claude_fix(self, repo_dir: str, prompt: str, bug_count: int) -> None:
        args = ["-p", "--allowedTools", ALLOWED_TOOLS]
        if self.config.claude_model:
            args.extend(["--model", self.config.claude_model])

        logger.info(
            "Running claude -p for fix generation...",
            extra={"context": {"bug_count": bug_count, "repo_dir": repo_dir}},
        )

        try:
            proc = await asyncio.create_subprocess_exec(
                "claude", *args,
                cwd=repo_dir,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise FixGenerationError(f"claude -p fix generation failed: {e}")

        try:
            _, stderr = await asyncio.wait_for(
                proc.communicate(prompt.encode("utf-8")), timeout=CLAUDE_TIMEOUT_SECONDS
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise FixGenerationError(
                f"claude -p fix generation timed out after {CLAUDE_TIMEOUT_SECONDS}s"
            )

        if proc.returncode != 0:
            raise FixGenerationError(
                f"claude -p fix generation exited with code {proc.returncode}. "
                f"stderr: {stderr.decode('utf-8', errors='replace')[:500]}"
            )

    # -------------------------------------------------------------------
    # Project context
    # -------------------------------------------------------------------
    def get_project_structure(self, repo_dir: str) -> str:
        """`tree -L 3`, falling back to `find -maxdepth 3`, truncated."""
        commands = [
            ["tree", "-L", "3", "-I", _IGNORED_DIRS],
            [
                "find", ".", "-maxdepth", "3",
                "-not", "-path", "*/node_modules/*",
                "-not", "-path", "*/.git/*",
                "-not", "-path", "*/dist/*",
                "-not", "-path", "*/build/*",
            ],
        ]
        for command in commands:
            try:
                result = subprocess.run(
                    command,
                    cwd=repo_dir,
                    check=True,
                    capture_output=True,
                    text=True,
                    timeout=STRUCTURE_TIMEOUT_SECONDS,
                )
            except (OSError, subprocess.SubprocessError):
                continue
            return _truncate(result.stdout, MAX_PROJECT_STRUCTURE_SIZE)

        logger.warning("Failed to get project structure.", extra={"context": {"repo_dir": repo_dir}})
        return ""

    def get_project_documentation(self, repo_dir: str) -> str:
        sections = []
        for name in PROJECT_DOC_FILES:
            path = os.path.join(repo_dir, name)
            if not os.path.isfile(path):
                continue
            try:
                with open(path, "r", encoding="utf-8") as f:
                    content = _truncate(f.read(), MAX_DOC_SIZE)
            except (OSError, UnicodeDecodeError):
                logger.debug("Could not read project documentation: %s", name)
                continue
            sections.append(f"### {name}\n\n{content}")
        return "\n\n".join(sections)

    def get_related_file_contents(
        self, repo_dir: str, bugs: List[BugReport], exclude: set
    ) -> Dict[str, str]:
        """Contents of files imported (relatively) by the files the bugs point at."""
        related: List[str] = []
        for bug_file in dict.fromkeys(b.file_path for b in bugs if b.file_path):
            try:
                with open(os.path.join(repo_dir, bug_file), "r", encoding="utf-8") as f:
                    source = f.read()
            except (OSError, UnicodeDecodeError):
                logger.debug("Could not read bug file for import analysis.", extra={"context": {"file_path": bug_file}})
                continue

            from_dir = os.path.dirname(bug_file)
            for import_path in extract_import_paths(source):
                resolved = resolve_import_path(repo_dir, from_dir, import_path)
                if resolved and resolved not in exclude and resolved not in related:
                    related.append(resolved)

        contents = read_files_with_budget(repo_dir, related, MAX_RELATED_CONTEXT_SIZE)
        if contents:
            logger.info("Loaded %d related file(s) as context.", len(contents))
        return contents
