"""Shared pytest fixtures."""

from __future__ import annotations

import os
from collections.abc import Iterator

import pytest
import structlog

# Keep a developer's own config out of the test run.
for _key in [k for k in os.environ if k.upper().startswith("APPUPGRADE_")]:
    del os.environ[_key]


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    """Restore structlog's default (uncached) configuration after each test."""
    yield
    structlog.reset_defaults()
