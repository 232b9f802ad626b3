"""Logging utilities for reposcope phases."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, MutableMapping, Tuple

_LOGGER_NAME = "reposcope"
_CONSOLE_FORMAT = "[reposcope] %(levelname)s %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class RepositoryLogAdapter(logging.LoggerAdapter):
    """Prefixes every message with the repository (and unit) it concerns."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = self.extra or {}
        label = str(extra.get("repository", ""))
        unit = extra.get("unit")
        if unit is not None:
            label = f"{label}#{unit}"
        return f"[{label}] {msg}", kwargs


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the reposcope hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def bind_repository(
    logger: logging.Logger, repository: str, *, unit: int | None = None
) -> RepositoryLogAdapter:
    """Wrap ``logger`` so its messages name the repository being analyzed."""
    return RepositoryLogAdapter(logger, {"repository": repository, "unit": unit})


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Route reposcope logs to stderr and, optionally, to ``log_file``.

    Verbose mode lowers every handler to DEBUG, which also makes phase
    failures log their traceback.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # Repeated CLI or service start-up must not stack handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


__all__ = ["RepositoryLogAdapter", "bind_repository", "configure_logging", "get_logger"]
