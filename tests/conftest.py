"""Shared pytest fixtures."""

import pytest

from jobalert.persistence import close_database, init_database
from tests.helpers import FrozenClock


@pytest.fixture
def database(tmp_path):
    """Initialize a fresh SQLite database file for one test."""
    init_database(f"sqlite:///{tmp_path / 'test.db'}")
    yield
    close_database()


@pytest.fixture
def clock():
    return FrozenClock()
