"""Logging setup shared by the devpilot CLI and the analysis service.

Everything devpilot logs goes through the ``devpilot`` logger tree
(``devpilot.workflow``, ``devpilot.agents.generator`` and so on).
uvicorn keeps its own ``uvicorn.*`` loggers; ``uvicorn_log_level`` hands
it the level chosen here so ``devpilot serve --verbose`` affects both.
"""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "devpilot"

CONSOLE_FORMAT = "[%(name)s] %(levelname)s %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``devpilot.<name>``, or the package logger itself."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Attach a console handler (and optionally a file handler) to ``devpilot``.

    Safe to call again, e.g. when the CLI hands over to ``serve``: previous
    handlers are closed and replaced. Records do not propagate to the root
    logger, so uvicorn's root configuration never prints them twice.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


def uvicorn_log_level() -> str:
    """Level name for ``uvicorn.run`` matching the devpilot logger."""
    level = logging.getLogger(_LOGGER_NAME).getEffectiveLevel()
    return "debug" if level <= logging.DEBUG else "info"


__all__ = ["configure_logging", "get_logger", "uvicorn_log_level"]
