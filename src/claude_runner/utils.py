"""Utility functions for claude-runner."""

import platform

from claude_runner.exceptions import QueryError
from claude_runner.executors import SyncProcessExecutor

# Lookups of the CLI on PATH should never hang a query
LOOKUP_TIMEOUT = 10.0


def _get_command_for_system(tool_name: str) -> list[str]:
    """Return the 'where' (Windows) or 'which' (Unix) command for ``tool_name``."""
    if platform.system().lower() == "windows":
        return ["where", tool_name]
    return ["which", tool_name]


def _select_best_path(output_lines: list[str], system: str) -> str | None:
    """Pick the best candidate from 'where'/'which' output.

    On Windows a real ``.exe`` wins over ``.cmd``/``.bat`` shims.
    """
    candidates = [line for line in output_lines if line]
    if not candidates:
        return None
    if system != "windows":
        return candidates[0]

    for suffixes in ((".exe",), (".cmd", ".bat")):
        for path in candidates:
            if path.lower().endswith(suffixes):
                return path
    return candidates[0]


def find_tool_in_system_sync(tool_name: str) -> str | None:
    """
    Find tool path in system.

    Args:
        tool_name: Tool name

    Returns:
        Tool path or None
    """
    system = platform.system().lower()
    command = _get_command_for_system(tool_name)

    try:
        executor = SyncProcessExecutor(timeout=LOOKUP_TIMEOUT)
        output_lines = [line.decode().strip() for line in executor.execute(command)]
    except (QueryError, OSError, RuntimeError):
        return None

    return _select_best_path(output_lines, system)
