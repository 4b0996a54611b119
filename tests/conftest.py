"""Pytest configuration and shared fixtures for the apexcalc test suite."""

import sys
from pathlib import Path
from typing import Iterator

import pytest

# Add the project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from apexcalc.session.config import SessionConfig
from apexcalc.session.manager import CoprocessSession
from tests.fixtures.sessions import fake_bc_config, real_bc_supported


@pytest.fixture
def fake_config() -> SessionConfig:
    return fake_bc_config()


@pytest.fixture
def session(fake_config: SessionConfig) -> Iterator[CoprocessSession]:
    """Create a fake-worker session that's properly cleaned up."""
    session = CoprocessSession(config=fake_config)
    yield session
    session.teardown()


@pytest.fixture(scope="session")
def bc_supported() -> bool:
    return real_bc_supported()


@pytest.fixture
def bc_session(bc_supported: bool) -> Iterator[CoprocessSession]:
    """Session against the real bc; skipped where ``bc -lLq`` is unavailable."""
    if not bc_supported:
        pytest.skip("bc with -lLq support not installed")
    session = CoprocessSession(config=SessionConfig(shutdown_timeout=2.0))
    yield session
    session.teardown()


# Test markers
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Component integration tests")
    config.addinivalue_line("markers", "e2e: End-to-end tests")
    config.addinivalue_line("markers", "slow: Tests that take >1s")


# Timeout configuration
def pytest_collection_modifyitems(config, items):
    """Modify test collection to add timeout based on markers."""
    for item in items:
        if item.get_closest_marker("slow"):
            item.add_marker(pytest.mark.timeout(30))
        elif item.get_closest_marker("unit"):
            item.add_marker(pytest.mark.timeout(5))
        else:
            item.add_marker(pytest.mark.timeout(10))
