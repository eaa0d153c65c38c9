"""Pytest configuration file."""

# Fix import path for test_helpers
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

# Add tests directory to path
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

from test_helpers import IS_WINDOWS, write_fake_cli  # noqa: E402


@pytest.fixture(autouse=True)
def no_cli_path_override(monkeypatch):
    """Keep a developer's CLAUDE_CLI_PATH from leaking into tests."""
    monkeypatch.delenv("CLAUDE_CLI_PATH", raising=False)


@pytest.fixture
def mock_find_cli():
    """Mock CLI finding to avoid actual subprocess calls."""
    with patch("claude_runner.utils.find_tool_in_system_sync", return_value="/usr/bin/claude"):
        yield


@pytest.fixture
def fake_cli(tmp_path):
    """Factory for executable scripts that stand in for the claude CLI."""
    if IS_WINDOWS:
        pytest.skip("Fake CLI scripts rely on a shebang line")

    def _create(body, name="claude"):
        return write_fake_cli(tmp_path, body, name=name)

    return _create
