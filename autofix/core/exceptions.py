"""
Exceptions
==========
Error taxonomy for the autofix daemon.

Fatal (abort startup, exit non-zero):
    ConfigError, LockHeldError, PrerequisiteError

Per-PR (contained by the daemon, bugs recorded as FAILED):
    GitCommandError, FixGenerationError
"""


class AutofixError(Exception):
    """Base class for all daemon errors."""


class ConfigError(AutofixError):
    pass


class LockHeldError(AutofixError):
    pass


class PrerequisiteError(AutofixError):
    pass


class GitCommandError(AutofixError):
    def __init__(self, args: list, stderr: str = "") -> None:
        self.command = args
        self.stderr = stderr
        super().__init__(f"git {' '.join(args)} failed: {stderr[:500]}")


class FixGenerationError(AutofixError):
    pass
