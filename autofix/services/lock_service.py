"""
Daemon Lock
===========
Single-instance guard: a PID-stamped lock file next to the ledger.

Acquire:
    1. Exclusive create (O_CREAT | O_EXCL) and write our PID.
    2. If the file exists, read the PID and probe it with signal 0.
        - alive  → LockHeldError (operator error, never retried)
        - dead   → stale lock: delete, recreate, proceed
Release:
    Remove the file, but only while it still holds our PID.
"""
import errno
import logging
import os
from typing import Optional

from autofix.core.constants import LOCK_FILE_NAME
from autofix.core.exceptions import LockHeldError

logger = logging.getLogger(__name__)


def lock_path_for(db_path: str) -> str:
    """The lock lives in the same directory as the ledger."""
    return os.path.join(os.path.dirname(os.path.abspath(db_path)), LOCK_FILE_NAME)


def is_process_running(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but owned by another user
        return True
    except OSError as e:
        return e.errno == errno.EPERM
    return True


def read_lock_pid(path: str) -> Optional[int]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return int(f.read().strip())
    except (OSError, ValueError):
        return None


class DaemonLock:
    """
    Exclusive lock token for one daemon process.

    Usage:
        with DaemonLock(lock_path_for(config.db_path)):
            ...
    """

    def __init__(self, path: str, pid: Optional[int] = None) -> None:
        self.path = path
        self.pid = pid if pid is not None else os.getpid()
        self.acquired = False

    def _create(self) -> None:
        fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        try:
            os.write(fd, str(self.pid).encode("utf-8"))
        finally:
            os.close(fd)

    def acquire(self) -> "DaemonLock":
        os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
        try:
            self._create()
        except FileExistsError:
            existing_pid = read_lock_pid(self.path)
            if existing_pid is not None and existing_pid != self.pid and is_process_running(existing_pid):
                raise LockHeldError(
                    f"Another daemon instance is already running (PID {existing_pid}, "
                    f"lock: {self.path}). Stop the existing instance first."
                )

            logger.warning(
                "Reclaiming stale lock file.",
                extra={"context": {"lock": self.path, "stale_pid": existing_pid}},
            )
            try:
                os.unlink(self.path)
                self._create()
            except OSError:
                raise LockHeldError(
                    f"Another daemon instance is already running (lock: {self.path}). "
                    "Stop the existing instance first."
                )

        self.acquired = True
        logger.debug("Acquired daemon lock.", extra={"context": {"lock": self.path, "pid": self.pid}})
        return self

    def release(self) -> None:
        if not self.acquired:
            return
        self.acquired = False
        if read_lock_pid(self.path) != self.pid:
            logger.warning("Lock file no longer holds our PID, leaving it.", extra={"context": {"lock": self.path}})
            return
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            return
        logger.debug("Released daemon lock.", extra={"context": {"lock": self.path}})

    def __enter__(self) -> "DaemonLock":
        return self.acquire()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
