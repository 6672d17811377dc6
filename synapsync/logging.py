"""Logger hierarchy and handler setup for synapsync."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping, Optional, TextIO

ROOT_LOGGER = "synapsync"
LOG_LEVEL_ENV = "SYNAPSYNC_LOG_LEVEL"

# Marks handlers installed here so reconfiguring leaves foreign handlers alone.
_OWNED_ATTR = "_synapsync_owned"


class _ConsoleFormatter(logging.Formatter):
    """Prefix records with the component that emitted them (``engine``, ``symlink``)."""

    def format(self, record: logging.LogRecord) -> str:
        component = record.name[len(ROOT_LOGGER) + 1 :] if record.name.startswith(f"{ROOT_LOGGER}.") else ""
        prefix = f"[{ROOT_LOGGER}:{component}]" if component else f"[{ROOT_LOGGER}]"
        return f"{prefix} {record.levelname.lower()}: {record.getMessage()}"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``synapsync`` or one of its children; qualified names pass through."""
    if not name or name == ROOT_LOGGER:
        return logging.getLogger(ROOT_LOGGER)
    if name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def resolve_level(
    *, verbose: bool = False, quiet: bool = False, environ: Optional[Mapping[str, str]] = None
) -> int:
    """Pick the log level from ``SYNAPSYNC_LOG_LEVEL`` or the CLI flags.

    A valid level name in the environment wins. Otherwise `verbose` selects
    DEBUG, `quiet` selects WARNING and the default is INFO.
    """
    env = os.environ if environ is None else environ
    configured = env.get(LOG_LEVEL_ENV, "").strip().upper()
    if configured:
        level = logging.getLevelName(configured)
        if isinstance(level, int):
            return level
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return logging.INFO


def configure_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    log_file: Path | None = None,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Install console (and optional file) handlers on the ``synapsync`` logger.

    Safe to call repeatedly: handlers from an earlier call are replaced, not
    stacked. Console output goes to `stream` (stderr by default) so command
    output on stdout stays machine-readable.
    """
    level = resolve_level(verbose=verbose, quiet=quiet)
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        if getattr(handler, _OWNED_ATTR, False):
            logger.removeHandler(handler)
            handler.close()

    console = logging.StreamHandler(stream)
    console.setFormatter(_ConsoleFormatter())
    _attach(logger, console, level)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        sink = logging.FileHandler(log_file, encoding="utf-8")
        sink.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
        # The file keeps debug detail regardless of console verbosity.
        _attach(logger, sink, logging.DEBUG)
        logger.setLevel(min(level, logging.DEBUG))

    return logger


def _attach(logger: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    setattr(handler, _OWNED_ATTR, True)
    logger.addHandler(handler)


__all__ = ["LOG_LEVEL_ENV", "ROOT_LOGGER", "configure_logging", "get_logger", "resolve_level"]
