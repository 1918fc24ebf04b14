"""Tests for agent runtime models."""

import pytest

from agentorchestra.models.agent import (
    BackendName,
    Capabilities,
    CommandSpec,
    InteractiveOptions,
    PrintOptions,
    RunMode,
    RunResult,
    ToolConfig,
)


class TestBackendName:
    def test_values(self):
        assert BackendName.CLAUDE_CLI.value == "claude-cli"
        assert BackendName.CODEX_CLI.value == "codex-cli"
        assert BackendName.CODEX_SDK.value == "codex-sdk"

    def test_from_string(self):
        assert BackendName("codex-cli") is BackendName.CODEX_CLI


class TestCapabilities:
    def test_defaults_all_false(self):
        caps = Capabilities()
        assert not any(
            [
                caps.supports_mcp,
                caps.supports_tools,
                caps.supports_model,
                caps.supports_max_turns,
                caps.supports_interactive,
                caps.supports_streaming,
                caps.supports_system_prompt,
            ]
        )

    def test_frozen(self):
        caps = Capabilities(supports_model=True)
        with pytest.raises(AttributeError):
            caps.supports_model = False  # type: ignore[misc]


class TestRunOptions:
    def test_mode_is_carried_by_type(self):
        assert PrintOptions().mode is RunMode.PRINT
        assert InteractiveOptions().mode is RunMode.INTERACTIVE

    def test_as_interactive_keeps_fields(self):
        opts = PrintOptions(
            prompt="go",
            model="opus",
            max_turns=4,
            tools=ToolConfig(allowed=("Read",)),
            raw_args=("--x",),
        )
        converted = opts.as_interactive()
        assert isinstance(converted, InteractiveOptions)
        assert converted.mode is RunMode.INTERACTIVE
        assert converted.prompt == "go"
        assert converted.model == "opus"
        assert converted.max_turns == 4
        assert converted.tools.allowed == ("Read",)
        assert converted.raw_args == ("--x",)

    def test_as_print_is_identity_for_print(self):
        opts = PrintOptions(prompt="go")
        assert opts.as_print() is opts

    def test_tool_config_truthiness(self):
        assert not ToolConfig()
        assert ToolConfig(disallowed=("Write",))


class TestRunResult:
    def test_interactive_style_result(self):
        result = RunResult(exit_code=0)
        assert result.stdout is None
        assert result.stderr is None
        assert result.completion_marker_found is False
        assert result.structured is None

    def test_structured_payload_is_a_mapping(self):
        result = RunResult(exit_code=0, structured={"session_id": "abc", "turns": 3})
        assert result.structured["turns"] == 3


class TestCommandSpec:
    def test_full_command_quotes_arguments(self):
        spec = CommandSpec(program="claude", args=("--print", "--", "fix the bug"))
        assert spec.full_command == "claude --print -- 'fix the bug'"

    def test_defaults(self):
        spec = CommandSpec(program="codex")
        assert spec.args == ()
        assert spec.env is None
        assert spec.cwd is None
