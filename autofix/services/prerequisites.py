"""
Prerequisites
=============
Startup checks for the external tooling the daemon drives.

Fatal (PrerequisiteError):
    - GitHub auth: GH_TOKEN set, or `gh auth status` succeeds
    - `claude --version` succeeds
    - `git --version` succeeds
Warning only:
    - No Claude credential detected
"""
import logging
import os
import subprocess
from typing import List, Mapping, Optional

from autofix.core.exceptions import PrerequisiteError

logger = logging.getLogger(__name__)


def _run(command: List[str]) -> str:
    result = subprocess.run(command, check=True, capture_output=True, text=True, timeout=30)
    return result.stdout.strip()


def has_claude_credentials(env: Mapping[str, str]) -> bool:
    if env.get("CLAUDE_CODE_OAUTH_TOKEN") or env.get("ANTHROPIC_API_KEY"):
        return True
    home = env.get("HOME") or os.path.expanduser("~")
    return os.path.isfile(os.path.join(home, ".claude", ".credentials.json"))


def verify_prerequisites(env: Optional[Mapping[str, str]] = None) -> None:
    if env is None:
        env = os.environ

    if (env.get("GH_TOKEN") or "").strip():
        logger.debug("Using GH_TOKEN environment variable for authentication.")
    else:
        try:
            _run(["gh", "auth", "status"])
        except (OSError, subprocess.SubprocessError):
            raise PrerequisiteError(
                "gh CLI is not authenticated. Set GH_TOKEN environment variable or run 'gh auth login'."
            )
        logger.debug("gh CLI auth status OK.")

    try:
        version = _run(["claude", "--version"])
    except (OSError, subprocess.SubprocessError):
        raise PrerequisiteError("claude CLI is not available. Install Claude Code first.")
    logger.debug("claude CLI version.", extra={"context": {"version": version}})

    if not has_claude_credentials(env):
        logger.warning(
            "No Claude authentication detected. Set CLAUDE_CODE_OAUTH_TOKEN or ANTHROPIC_API_KEY, "
            "or mount ~/.claude containing .credentials.json."
        )

    try:
        _run(["git", "--version"])
    except (OSError, subprocess.SubprocessError):
        raise PrerequisiteError("git is not available. Install git first.")
