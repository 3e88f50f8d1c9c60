import asyncio
import logging
import sys

from autofix.agents.orchestrator import run_daemon
from autofix.core.config import load_config
from autofix.core.exceptions import AutofixError, ConfigError
from autofix.services.lock_service import DaemonLock, lock_path_for
from autofix.utils.logging_config import setup_logging

logger = logging.getLogger("main")


def _fatal(message: str) -> int:
    print(f"[FATAL] {message}", file=sys.stderr)
    return 1


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------
def main() -> int:
    """Run the daemon until SIGINT/SIGTERM. Returns the process exit code."""
    try:
        config = load_config()
    except ConfigError as e:
        return _fatal(str(e))

    setup_logging(level=config.log_level, log_dir=config.log_dir)
    logger.info("Starting Bugbot Autofix daemon...")

    lock = DaemonLock(lock_path_for(config.db_path))
    try:
        lock.acquire()
        asyncio.run(run_daemon(config))
    except AutofixError as e:
        logger.error("Fatal error: %s", e)
        return _fatal(str(e))
    except Exception as e:
        logger.exception("Unexpected fatal error.")
        return _fatal(str(e))
    finally:
        lock.release()

    return 0


if __name__ == "__main__":
    sys.exit(main())
