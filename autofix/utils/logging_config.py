import logging
import sys
import os
from datetime import datetime
from typing import Optional

# Config log level names → logging levels
LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

FORMAT_STR = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d - %(message)s"
DATE_FMT = "%Y-%m-%d %H:%M:%S"


def format_context(context) -> str:
    """Render contextual key-values as ' key=value' pairs."""
    if not context:
        return ""
    parts = []
    for key, value in context.items():
        if isinstance(value, (list, tuple, set)):
            value = ",".join(str(v) for v in value)
        parts.append(f"{key}={value}")
    return " " + " ".join(parts)


class ContextFormatter(logging.Formatter):
    """Plain formatter that appends the record's `context` mapping."""

    def __init__(self) -> None:
        super().__init__(FORMAT_STR, datefmt=DATE_FMT)

    def format(self, record):
        line = super().format(record)
        return line + format_context(getattr(record, "context", None))


class ColoredFormatter(ContextFormatter):
    """Custom formatter to add colors to console output."""

    cyan = "\x1b[36m"
    green = "\x1b[32m"
    yellow = "\x1b[33m"
    red = "\x1b[31m"
    bold_red = "\x1b[31;1m"
    reset = "\x1b[0m"

    COLORS = {
        logging.DEBUG: cyan,
        logging.INFO: green,
        logging.WARNING: yellow,
        logging.ERROR: red,
        logging.CRITICAL: bold_red,
    }

    def format(self, record):
        line = super().format(record)
        color = self.COLORS.get(record.levelno)
        # Handle cases where level might be outside standard range
        if not color:
            return line
        return f"{color}{line}{self.reset}"


def setup_logging(level: str = "info", log_dir: Optional[str] = None) -> None:
    """Setup centralized logging configuration."""
    root_logger = logging.getLogger()

    # Clear existing handlers to prevent duplicate logs
    if root_logger.handlers:
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

    root_logger.setLevel(LEVELS.get(level, logging.INFO))

    # 1. Console handler, colored only when attached to a terminal
    console_handler = logging.StreamHandler(sys.stderr)
    if sys.stderr.isatty():
        console_handler.setFormatter(ColoredFormatter())
    else:
        console_handler.setFormatter(ContextFormatter())
    root_logger.addHandler(console_handler)

    # 2. Optional file handler for persistence
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(
            os.path.join(log_dir, f"autofix_{datetime.now().strftime('%Y%m%d')}.log")
        )
        file_handler.setFormatter(ContextFormatter())
        root_logger.addHandler(file_handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    root_logger.debug("Logging initialized.", extra={"context": {"level": level}})
