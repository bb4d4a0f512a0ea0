"""Shared pytest fixtures for extpack tests."""

import pytest

from extpack import Factory


@pytest.fixture
def factory() -> Factory:
    """Fresh Factory with nothing registered."""
    return Factory()
