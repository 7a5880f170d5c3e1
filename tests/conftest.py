"""Shared pytest configuration and fixtures for the platform test suite."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in the path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from recognition_platform import streaming  # noqa: E402
from tests.fakes import make_config  # noqa: E402


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


@pytest.fixture
def config():
    """Config with fast sampling and no periodic reload."""
    return make_config()


@pytest.fixture(autouse=True)
def clean_streams():
    """Each test starts with empty stream state."""
    streaming.reset_streams()
    yield
    streaming.reset_streams()
