"""
Configuration
=============
Loads environment variables from .env file using python-dotenv.

Environment Variables:
    AUTOFIX_GITHUB_ORGS    — Comma-separated orgs (or users) whose repos are monitored
    AUTOFIX_GITHUB_REPOS   — Comma-separated owner/repo entries to monitor
    AUTOFIX_POLL_INTERVAL  — Seconds between polling cycles (default: 120)
    AUTOFIX_WORK_DIR       — Where target repos are cloned (default: ~/.bugbot-autofix/repos)
    AUTOFIX_DB_PATH        — Processed-bug ledger path (default: ~/.bugbot-autofix/state.db)
    AUTOFIX_CLAUDE_MODEL   — Optional --model passed to the claude CLI
    AUTOFIX_LOG_LEVEL      — debug / info / warn / error (default: info)
    AUTOFIX_LOG_DIR        — Optional directory for a daily log file
    AUTOFIX_LOOKBACK_DAYS  — Recency window for the comment scan (default: 7)
    AUTOFIX_RETRY_SCOPE    — "global" or "repo": where FAILED bugs disable the window
    AUTOFIX_BOT_LOGIN      — Login of the review bot (default: cursor[bot])

At least one of AUTOFIX_GITHUB_ORGS / AUTOFIX_GITHUB_REPOS must be set.
Any invalid value raises ConfigError, which is fatal at startup.
"""
import os
from typing import List, Literal, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

from autofix.core.constants import (
    DEFAULT_BOT_LOGIN,
    DEFAULT_LOOKBACK_DAYS,
    DEFAULT_POLL_INTERVAL,
)
from autofix.core.exceptions import ConfigError

LogLevel = Literal["debug", "info", "warn", "error"]
RetryScope = Literal["global", "repo"]

VALID_LOG_LEVELS = ("debug", "info", "warn", "error")
VALID_RETRY_SCOPES = ("global", "repo")

_BASE_DIR = os.path.join(os.path.expanduser("~"), ".bugbot-autofix")


class DaemonConfig(BaseModel):
    github_orgs: List[str] = []
    github_repos: List[str] = []
    poll_interval: int = DEFAULT_POLL_INTERVAL
    work_dir: str = os.path.join(_BASE_DIR, "repos")
    db_path: str = os.path.join(_BASE_DIR, "state.db")
    claude_model: Optional[str] = None
    log_level: LogLevel = "info"
    log_dir: Optional[str] = None
    lookback_days: int = DEFAULT_LOOKBACK_DAYS
    retry_scope: RetryScope = "global"
    bot_login: str = DEFAULT_BOT_LOGIN


def parse_comma_separated(value: Optional[str]) -> List[str]:
    if not value or not value.strip():
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_positive_int(value: Optional[str], default: int, name: str) -> int:
    if not value or not value.strip():
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        parsed = 0
    if parsed <= 0:
        raise ConfigError(
            f"Configuration error: {name} expects a positive integer but got \"{value}\"."
        )
    return parsed


def _parse_choice(value: Optional[str], default: str, valid: tuple, name: str) -> str:
    choice = (value or "").strip().lower() or default
    if choice not in valid:
        raise ConfigError(
            f"Configuration error: Invalid {name} \"{value}\". Valid values: {', '.join(valid)}"
        )
    return choice


def _optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


def load_config(env: Optional[Mapping[str, str]] = None) -> DaemonConfig:
    """
    Build a DaemonConfig from the process environment (after loading .env)
    or from an explicit mapping.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    github_orgs = parse_comma_separated(env.get("AUTOFIX_GITHUB_ORGS"))
    github_repos = parse_comma_separated(env.get("AUTOFIX_GITHUB_REPOS"))
    if not github_orgs and not github_repos:
        raise ConfigError(
            "Configuration error: At least one of AUTOFIX_GITHUB_ORGS or "
            "AUTOFIX_GITHUB_REPOS must be set."
        )

    defaults = DaemonConfig()
    return DaemonConfig(
        github_orgs=github_orgs,
        github_repos=github_repos,
        poll_interval=parse_positive_int(
            env.get("AUTOFIX_POLL_INTERVAL"), DEFAULT_POLL_INTERVAL, "AUTOFIX_POLL_INTERVAL"
        ),
        work_dir=_optional(env.get("AUTOFIX_WORK_DIR")) or defaults.work_dir,
        db_path=_optional(env.get("AUTOFIX_DB_PATH")) or defaults.db_path,
        claude_model=_optional(env.get("AUTOFIX_CLAUDE_MODEL")),
        log_level=_parse_choice(
            env.get("AUTOFIX_LOG_LEVEL"), "info", VALID_LOG_LEVELS, "log level"
        ),
        log_dir=_optional(env.get("AUTOFIX_LOG_DIR")),
        lookback_days=parse_positive_int(
            env.get("AUTOFIX_LOOKBACK_DAYS"), DEFAULT_LOOKBACK_DAYS, "AUTOFIX_LOOKBACK_DAYS"
        ),
        retry_scope=_parse_choice(
            env.get("AUTOFIX_RETRY_SCOPE"), "global", VALID_RETRY_SCOPES, "retry scope"
        ),
        bot_login=_optional(env.get("AUTOFIX_BOT_LOGIN")) or DEFAULT_BOT_LOGIN,
    )
