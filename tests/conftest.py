"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for control_plane_mock and factories imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from control_plane_mock import MockControlPlaneContext  # noqa: E402
from factories import make_spec  # noqa: E402


@pytest.fixture
def mock_ctx():
    """Fresh in-memory control plane for one test."""
    with MockControlPlaneContext() as ctx:
        yield ctx


@pytest.fixture
def spec():
    """Minimal valid cluster spec with one named warehouse."""
    return make_spec(warehouses=[{"name": "wh1", "compute_node_size": "m6i.xlarge"}])
