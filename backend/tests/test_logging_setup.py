"""Tests for root logger configuration."""

from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest

from tilefolder.core import logging_setup


@pytest.fixture
def root_level() -> Iterator[None]:
    root = logging.getLogger()
    level = root.level
    yield
    root.setLevel(level)


@pytest.mark.usefixtures("root_level")
def test_setup_logging_is_idempotent() -> None:
    """Test that repeated calls do not stack handlers."""
    logging_setup.setup_logging("INFO")
    count = len(logging.getLogger().handlers)
    logging_setup.setup_logging("DEBUG")
    assert len(logging.getLogger().handlers) == count
    assert logging.getLogger().level == logging.DEBUG


@pytest.mark.usefixtures("root_level")
def test_setup_logging_levels() -> None:
    """Test level names, numbers and the INFO fallback."""
    logging_setup.setup_logging("warning")
    assert logging.getLogger().level == logging.WARNING
    logging_setup.setup_logging(logging.ERROR)
    assert logging.getLogger().level == logging.ERROR
    logging_setup.setup_logging("chatty")
    assert logging.getLogger().level == logging.INFO
