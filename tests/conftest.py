"""Shared fixtures."""

from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest


@pytest.fixture(autouse=True)
def _reset_package_logger() -> Iterator[None]:
    """Undo ``configure_logging`` so caplog sees package records."""
    yield
    logger = logging.getLogger("permission_hook")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
