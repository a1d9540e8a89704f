"""Pytest configuration for test isolation.

Settings are read from the environment at call time, so a developer's own
``PLUGGY_*`` or ``DATABASE_URL`` values (or a ``.env`` loaded by an earlier CLI
test) would leak into assertions. An autouse fixture clears them for every
test. The shared SQLAlchemy engine and the one-shot logging configuration are
module-level state as well; both are reset after each test.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import pytest
from ledger_db.client import dispose_engine

from pluggy_ledger import logging_setup

_ENV_PREFIXES = ("PLUGGY_",)
_ENV_NAMES = ("DATABASE_URL",)


@pytest.fixture(autouse=True)
def _isolate_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Start every test from a clean environment in an empty working dir."""

    for name in list(os.environ):
        if name.startswith(_ENV_PREFIXES) or name in _ENV_NAMES:
            monkeypatch.delenv(name, raising=False)
    # The CLI loads ``.env`` from the cwd; keep the repo's own file out of reach.
    monkeypatch.chdir(tmp_path)


@pytest.fixture(autouse=True)
def _reset_shared_state():
    yield
    dispose_engine()
    pkg_logger = logging.getLogger("pluggy_ledger")
    for h in list(pkg_logger.handlers):
        pkg_logger.removeHandler(h)
    pkg_logger.setLevel(logging.NOTSET)
    pkg_logger.propagate = True
    logging_setup._CONFIGURED = False
