"""Tests for reposcope.logging."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from reposcope.logging import bind_repository, configure_logging, get_logger


@pytest.fixture
def restore_logger():
    logger = logging.getLogger("reposcope")
    saved = (logger.level, logger.propagate, list(logger.handlers))
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(saved[0])
    logger.propagate = saved[1]
    for handler in saved[2]:
        logger.addHandler(handler)


def test_bound_logger_prefixes_repository_and_unit(caplog: pytest.LogCaptureFixture) -> None:
    logger = get_logger("processor")

    with caplog.at_level(logging.INFO, logger="reposcope"):
        bind_repository(logger, "acme/widgets", unit=2).info("Processing %s", "lib")
        bind_repository(logger, "acme/widgets").info("Done")

    assert caplog.messages == ["[acme/widgets#2] Processing lib", "[acme/widgets] Done"]
    assert caplog.records[0].name == "reposcope.processor"


def test_configure_logging_writes_log_file(tmp_path: Path, restore_logger) -> None:
    log_file = tmp_path / "logs" / "reposcope.log"

    configure_logging(verbose=True, log_file=log_file)
    configure_logging(verbose=True, log_file=log_file)
    get_logger("cli").debug("hello")

    assert restore_logger.level == logging.DEBUG
    assert len(restore_logger.handlers) == 2
    for handler in restore_logger.handlers:
        handler.flush()
    assert "reposcope.cli: hello" in log_file.read_text(encoding="utf-8")
