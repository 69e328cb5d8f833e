"""Structured logging configuration for the pattern learning engine.

Provides a consistent logging setup:
- Console handler: warnings and above
- File handler: debug and above to .patterns/pattern_learning.log
"""

import logging
import os
from pathlib import Path

LOG_FILE = Path(os.environ.get("PATTERN_LEARNING_LOG_FILE", ".patterns/pattern_learning.log"))

# Module-level logger cache
_loggers = {}


def get_logger(name: str = "pattern_learning") -> logging.Logger:
    """Get a configured logger for engine modules.

    Args:
        name: Logger name (typically module name like "pattern_learning.store")

    Returns:
        Configured logger instance
    """
    if name in _loggers:
        return _loggers[name]

    logger = logging.getLogger(name)

    # Only configure if not already configured
    if not logger.handlers:
        logger.setLevel(logging.DEBUG)

        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(logging.Formatter(
            "[%(name)s] %(levelname)s: %(message)s"
        ))
        logger.addHandler(console_handler)

        try:
            LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(LOG_FILE)
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(
                "%(asctime)s [%(name)s] %(levelname)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S"
            ))
            logger.addHandler(file_handler)
        except (IOError, OSError):
            # Can't write to log file - continue with console only
            pass

        logger.propagate = False

    _loggers[name] = logger
    return logger


def get_log_contents(max_lines: int = 100) -> list[str]:
    """Get recent log file contents, most recent last."""
    if not LOG_FILE.exists():
        return []

    try:
        lines = LOG_FILE.read_text().strip().split("\n")
        return lines[-max_lines:]
    except (IOError, OSError):
        return []
