"""Claude Code CLI options.

Maps a pydantic model onto the CLI's argument list and the subprocess
environment. The core only consumes the result of ``build_command`` and
``build_subprocess_kwargs``.
"""

import json
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from claude_runner.exceptions import CLINotFoundError

# Environment variable that overrides the PATH lookup for the CLI
CLI_PATH_ENV = "CLAUDE_CLI_PATH"

_INSTALL_HINT = (
    "Please install it with:\n"
    "  npm install -g @anthropic-ai/claude-code\n"
    "Or specify the path via: ClaudeOptions(cli_path='/path/to/claude')"
)

# field name -> CLI flag, for options that take one value
_VALUE_FLAGS = {
    "output_format": "--output-format",
    "input_format": "--input-format",
    "model": "--model",
    "fallback_model": "--fallback-model",
    "system_prompt": "--system-prompt",
    "append_system_prompt": "--append-system-prompt",
    "permission_mode": "--permission-mode",
    "resume": "--resume",
    "session_id": "--session-id",
    "max_turns": "--max-turns",
    "max_budget_usd": "--max-budget-usd",
}

# field name -> CLI flag, for on/off switches
_SWITCH_FLAGS = {
    "continue_conversation": "--continue",
    "print_mode": "--print",
    "verbose": "--verbose",
    "include_partial_messages": "--include-partial-messages",
    "dangerously_skip_permissions": "--dangerously-skip-permissions",
    "strict_mcp_config": "--strict-mcp-config",
    "mcp_debug": "--mcp-debug",
    "no_session_persistence": "--no-session-persistence",
}

# field name -> CLI flag, for lists joined with commas
_LIST_FLAGS = {
    "allowed_tools": "--allowedTools",
    "disallowed_tools": "--disallowedTools",
    "setting_sources": "--setting-sources",
}


class ClaudeOptions(BaseModel):
    """Options for invoking the Claude Code CLI.

    Example:
        ```python
        options = ClaudeOptions(
            model="sonnet",
            mcp_config="/path/to/mcp.json",
            permission_mode="acceptEdits",
        )
        cmd = options.build_command("Hello, Claude!")
        ```
    """

    model: str | None = Field(default=None, description="Model alias or name ('sonnet', 'opus')")
    fallback_model: str | None = Field(
        default=None, description="Model to fall back to when the default is overloaded"
    )
    system_prompt: str | None = Field(default=None, description="Replace the system prompt")
    append_system_prompt: str | None = Field(
        default=None, description="Append to the default system prompt"
    )

    allowed_tools: list[str] = Field(default_factory=list, description="Tools to allow")
    disallowed_tools: list[str] = Field(default_factory=list, description="Tools to deny")
    permission_mode: str | None = Field(
        default=None,
        description="'default', 'acceptEdits', 'plan', 'bypassPermissions', 'delegate', 'dontAsk'",
    )
    dangerously_skip_permissions: bool = False

    continue_conversation: bool = Field(default=False, alias="continue")
    resume: str | None = Field(default=None, description="Session ID to resume")
    session_id: str | None = None
    no_session_persistence: bool = False
    max_turns: int | None = None
    max_budget_usd: float | None = None

    print_mode: bool = Field(default=False, alias="print")
    output_format: str = "text"
    input_format: str = "text"
    include_partial_messages: bool = False
    verbose: bool = False

    mcp_config: str | Path | dict[str, Any] | None = Field(
        default=None, description="MCP servers: file path, JSON string, or dict"
    )
    strict_mcp_config: bool = False
    mcp_debug: bool = False
    settings: str | Path | dict[str, Any] | None = None
    setting_sources: list[str] = Field(default_factory=list)
    add_dirs: list[str | Path] = Field(default_factory=list)

    cli_path: str | Path | None = Field(
        default=None, description="Path to the CLI binary (falls back to $CLAUDE_CLI_PATH, then PATH)"
    )
    working_dir: str | Path | None = None
    env: dict[str, str] = Field(
        default_factory=dict, description="Extra environment variables, merged over os.environ"
    )
    extra_args: dict[str, str | None] = Field(
        default_factory=dict,
        description="Arbitrary flags; a None value emits a bare switch",
        examples=[{"some-flag": "value", "boolean-flag": None}],
    )

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    @field_validator("permission_mode")
    def validate_permission_mode(cls, v: str | None) -> str | None:
        valid_modes = {"default", "acceptEdits", "plan", "bypassPermissions", "delegate", "dontAsk"}
        if v is not None and v not in valid_modes:
            raise ValueError(f"Invalid permission_mode: {v}. Must be one of: {sorted(valid_modes)}")
        return v

    @field_validator("output_format")
    def validate_output_format(cls, v: str) -> str:
        if v not in {"text", "json", "stream-json"}:
            raise ValueError(f"Invalid output_format: {v}")
        return v

    @field_validator("input_format")
    def validate_input_format(cls, v: str) -> str:
        if v not in {"text", "stream-json"}:
            raise ValueError(f"Invalid input_format: {v}")
        return v

    def resolve_cli_path(self) -> str:
        """Find the CLI executable.

        Order: ``cli_path``, then ``$CLAUDE_CLI_PATH``, then PATH.

        Raises:
            CLINotFoundError: If no usable executable is found.
        """
        # Import here to avoid circular imports
        from claude_runner.utils import find_tool_in_system_sync

        explicit = self.cli_path or os.environ.get(CLI_PATH_ENV)
        if explicit:
            path = Path(explicit)
            if not path.exists():
                raise CLINotFoundError(
                    f"Specified Claude Code CLI path does not exist: {path}\n{_INSTALL_HINT}"
                )
            if not os.access(path, os.X_OK):
                raise CLINotFoundError(f"Specified path is not executable: {path}")
            return str(path)

        found = find_tool_in_system_sync("claude")
        if found:
            return found

        raise CLINotFoundError(f"Claude Code CLI not found in PATH.\n{_INSTALL_HINT}")

    def build_command(self, prompt: str | None = None) -> list[str]:
        """Build the argument list for one CLI invocation.

        Raises:
            CLINotFoundError: If the CLI cannot be found.
        """
        cmd = [self.resolve_cli_path()]

        for field, flag in _VALUE_FLAGS.items():
            value = getattr(self, field)
            if value is None or (field.endswith("_format") and value == "text"):
                continue
            cmd.extend([flag, str(value)])

        for field, flag in _SWITCH_FLAGS.items():
            if getattr(self, field):
                cmd.append(flag)

        for field, flag in _LIST_FLAGS.items():
            values = getattr(self, field)
            if values:
                cmd.extend([flag, ",".join(values)])

        if self.mcp_config is not None:
            mcp_config = self.mcp_config
            # A bare server mapping is wrapped the way the CLI expects
            if isinstance(mcp_config, dict) and "mcpServers" not in mcp_config:
                mcp_config = {"mcpServers": mcp_config}
            cmd.extend(["--mcp-config", _json_or_path(mcp_config)])
        if self.settings is not None:
            cmd.extend(["--settings", _json_or_path(self.settings)])
        for directory in self.add_dirs:
            cmd.extend(["--add-dir", str(directory)])

        for flag, value in self.extra_args.items():
            cmd.append(f"--{flag}")
            if value is not None:
                cmd.append(str(value))

        if prompt:
            cmd.append(prompt)
        return cmd

    def build_subprocess_kwargs(self) -> dict[str, Any]:
        """Build ``cwd``/``env`` keyword arguments for the launcher."""
        kwargs: dict[str, Any] = {}
        if self.working_dir:
            kwargs["cwd"] = str(self.working_dir)
        if self.env:
            kwargs["env"] = {**os.environ, **self.env}
        return kwargs


def _json_or_path(value: str | Path | dict[str, Any]) -> str:
    if isinstance(value, dict):
        return json.dumps(value)
    return str(value)
