"""Centralized logging configuration for the ``pluggy_ledger`` package.

Public helpers:

- ``configure_logging(...)``: attach a single ``StreamHandler`` to the package
  root logger (``"pluggy_ledger"``). Called once by entrypoints (the CLI).
- ``get_logger(name)``: acquire a logger by name, making sure the package root
  logger has a ``NullHandler`` when nothing configured it yet.
- ``redact(value)``: shorten a credential-like string for log output.

Library modules never attach their own handlers. They call
``get_logger("pluggy_ledger.<module>")`` and rely on the host application.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "pluggy_ledger"
_CONFIGURED = False

# httpx logs every request at INFO, which would echo query strings (item and
# account ids) next to our own summaries.
_NOISY_LOGGERS = ("httpx", "httpcore")


def _level_from_name(name: str) -> int | None:
    name = name.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = getattr(logging, name, None)
    return numeric if isinstance(numeric, int) else None


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        parsed = _level_from_name(level)
        if parsed is not None:
            return parsed
    env_val = os.getenv("PLUGGY_LEDGER_LOG_LEVEL")
    if env_val:
        parsed = _level_from_name(env_val)
        if parsed is not None:
            return parsed
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Configure the package root logger exactly once.

    Parameters
    ----------
    level:
        Logging level as ``int`` or level-name string. When ``None``, the
        ``PLUGGY_LEDGER_LOG_LEVEL`` environment variable is used, otherwise
        ``logging.INFO``.
    fmt:
        Optional format string. Defaults to
        ``"%(asctime)s %(name)s %(levelname)s %(message)s"``.
    stream:
        Output stream for the handler (defaults to ``sys.stderr``).
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    resolved = _parse_level(level)
    logger = logging.getLogger(_PKG_LOGGER_NAME)

    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(
        logging.Formatter(fmt or "%(asctime)s %(name)s %(levelname)s %(message)s")
    )

    logger.setLevel(resolved)
    logger.addHandler(handler)
    logger.propagate = False

    # Only surface transport chatter when the user asked for DEBUG.
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger by name, ensuring safe defaults for library use."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


def redact(value: str | None, *, keep: int = 8) -> str:
    """Return ``value`` truncated to ``keep`` characters followed by ``...``."""

    if not value:
        return "<unset>"
    if len(value) <= keep:
        return value[:2] + "..."
    return f"{value[:keep]}..."
