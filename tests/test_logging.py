"""Tests for devpilot.logging."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import pytest

from devpilot.logging import configure_logging, get_logger, uvicorn_log_level


@pytest.fixture(autouse=True)
def _restore_devpilot_logger() -> Iterator[None]:
    logger = logging.getLogger("devpilot")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = propagate


def test_get_logger_nests_under_devpilot() -> None:
    assert get_logger().name == "devpilot"
    assert get_logger("workflow").name == "devpilot.workflow"
    assert get_logger("workflow").parent is get_logger()


def test_reconfiguring_replaces_handlers(tmp_path: Path) -> None:
    configure_logging(log_file=tmp_path / "first.log")
    logger = configure_logging(verbose=True)

    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0], logging.StreamHandler)
    assert logger.level == logging.DEBUG
    assert logger.propagate is False


def test_log_file_receives_component_records(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "devpilot.log"
    logger = configure_logging(log_file=log_file)

    get_logger("sessions").info("Removed session %s", "abc")
    get_logger("sessions").debug("not at info level")
    for handler in logger.handlers:
        handler.flush()

    text = log_file.read_text(encoding="utf-8")
    assert "INFO devpilot.sessions: Removed session abc" in text
    assert "not at info level" not in text


def test_uvicorn_level_follows_verbosity() -> None:
    configure_logging()
    assert uvicorn_log_level() == "info"

    configure_logging(verbose=True)
    assert uvicorn_log_level() == "debug"
