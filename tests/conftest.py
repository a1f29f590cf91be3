"""Shared test fixtures for unitmock tests."""

import sys
from pathlib import Path

import pytest

# Add src to path so tests can import unitmock
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from unitmock.diagnostics import CapturingSink  # noqa: E402
from unitmock.session import TestSession  # noqa: E402


@pytest.fixture
def session():
    """A fresh session with no limits."""
    return TestSession()


@pytest.fixture
def sink():
    """A sink that records every emitted line."""
    return CapturingSink()
