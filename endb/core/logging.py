"""
Logging setup for Endb.

Every module logs through ``logging.getLogger(__name__)``; this helper
attaches handlers to the package logger for applications that want them.
"""

from __future__ import annotations

import logging
from pathlib import Path


def setup_logging(
    console_level: int = logging.WARNING,
    log_file: Path | str | None = None,
    file_level: int = logging.DEBUG,
) -> logging.Logger:
    """
    Setup Endb logging.

    Args:
        console_level: Minimum level for console output
        log_file: Optional path for a detailed log file
        file_level: Minimum level for file output

    Returns:
        The configured logger
    """
    logger = logging.getLogger("endb")
    logger.setLevel(logging.DEBUG)

    # Clear existing handlers
    logger.handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    logger.addHandler(console_handler)

    if log_file is not None:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(file_level)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
