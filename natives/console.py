"""Logging configuration for the command line tool."""
from __future__ import annotations

from pathlib import Path
import logging

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
CONSOLE_FORMAT = "[%(levelname)s] %(message)s"


def configure_logging(level: str = "warning", log_file: str | Path | None = None, *, verbose: bool = False) -> None:
    """Route ``natives`` log records to stderr and, optionally, a log file."""

    resolved = logging.DEBUG if verbose else getattr(logging, str(level).upper(), None)
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")

    logger = logging.getLogger("natives")
    logger.setLevel(logging.DEBUG if log_file else resolved)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(resolved)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)
    logger.propagate = False


__all__ = ["configure_logging"]
