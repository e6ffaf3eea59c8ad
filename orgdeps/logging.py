"""Logging utilities for orgdeps commands.

Records emitted while a repository is being scanned carry that repository's
name, so interleaved output from concurrent workers can still be told apart.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Iterator

_LOGGER_NAME = "orgdeps"
_NO_REPOSITORY = "-"

_CONSOLE_FORMAT = "[orgdeps] %(levelname)s %(repository_prefix)s%(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(repository)s]: %(message)s"

_current_repository: ContextVar[str | None] = ContextVar("orgdeps_repository", default=None)


class RepositoryFilter(logging.Filter):
    """Stamp each record with the repository scanned by the current task."""

    def filter(self, record: logging.LogRecord) -> bool:
        repository = _current_repository.get()
        record.repository = repository or _NO_REPOSITORY
        record.repository_prefix = f"{repository}: " if repository else ""
        return True


@contextmanager
def repository_context(repository: str) -> Iterator[None]:
    """Attribute log records emitted inside the block (and tasks it spawns) to ``repository``."""
    token = _current_repository.set(repository)
    try:
        yield
    finally:
        _current_repository.reset(token)


def current_repository() -> str | None:
    return _current_repository.get()


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the orgdeps hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Configure the orgdeps logger with console output and an optional file sink."""
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # Reset handlers to avoid duplicate output when the CLI is invoked multiple times.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.addFilter(RepositoryFilter())
    stream_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.addFilter(RepositoryFilter())
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


__all__ = [
    "RepositoryFilter",
    "configure_logging",
    "current_repository",
    "get_logger",
    "repository_context",
]
