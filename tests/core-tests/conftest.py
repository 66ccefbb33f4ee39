"""
Pytest configuration for core-tests.

This module contains fixtures and configuration for the foundry core tests:
path containment, tool gating, the directory registry, the event pump,
run logs and summaries.
"""
import sys
from pathlib import Path

import pytest

# Add project root and the shared test helpers to path
PROJECT_ROOT = Path(__file__).parent.parent.parent
TESTS_DIR = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))
sys.path.insert(0, str(TESTS_DIR))


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "unit: marks tests as unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (may require external services)"
    )


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """An existing project directory, canonicalized."""
    path = tmp_path / "project"
    path.mkdir()
    return path.resolve()


@pytest.fixture
def outside_dir(tmp_path: Path) -> Path:
    """A sibling directory that is not part of the project."""
    path = tmp_path / "elsewhere"
    path.mkdir()
    return path.resolve()
