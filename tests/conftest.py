"""Shared test fixtures."""

from __future__ import annotations

import os
from contextlib import closing

import pytest

# Ensure tests don't accidentally call real APIs
os.environ.setdefault("OPENROUTER_API_KEY", "test-key")

from scicalc.persistence.db import get_connection  # noqa: E402
from scicalc.terminal.commands import Terminal  # noqa: E402


@pytest.fixture
def terminal() -> Terminal:
    """An opened terminal with a fresh session."""
    term = Terminal()
    term.open()
    return term


@pytest.fixture
def conn():
    with closing(get_connection(":memory:")) as connection:
        yield connection
