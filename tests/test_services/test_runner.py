"""Tests for the iteration loop controller."""

from __future__ import annotations

import asyncio
import os

import pytest

from agentorchestra.infra.cancellation import CancellationToken
from agentorchestra.models.agent import StreamCallbacks
from agentorchestra.models.chain import AgentConfig, StopReason
from agentorchestra.services.prompt import MODE_AWARENESS_PREFIX
from agentorchestra.services.runner import (
    AgentRunner,
    AgentRunRequest,
    build_runtime_options,
    legacy_command,
)


@pytest.fixture
def output():
    return []


@pytest.fixture
def runner(output):
    return AgentRunner(callbacks=StreamCallbacks(on_stdout=output.append))


def _args_file_agent(make_agent, tmp_path, name="claude", extra=""):
    """Agent that dumps its argv NUL-separated to tmp_path/args.bin."""
    args_file = tmp_path / "args.bin"
    agent = make_agent(name, f"printf '%s\\000' \"$@\" > \"{args_file}\"\n{extra}")
    return agent, args_file


def _read_args(args_file):
    return args_file.read_bytes().decode().split("\0")[:-1]


class TestSingleRun:
    @pytest.mark.asyncio
    async def test_success(self, runner, counting_agent, count_of, output):
        agent, counter = counting_agent("planner")
        result = await runner.run(AgentRunRequest(agent=str(agent)))
        assert result.complete is True
        assert result.iterations == 1
        assert result.exit_code == 0
        assert result.reason == StopReason.SINGLE_RUN
        assert count_of(counter) == 1
        assert "".join(output) == "run 1\n"

    @pytest.mark.asyncio
    async def test_non_zero_exit(self, runner, counting_agent):
        agent, _ = counting_agent("planner", exit_code=2)
        result = await runner.run(AgentRunRequest(agent=str(agent)))
        assert result.complete is False
        assert result.exit_code == 2
        assert result.reason == StopReason.SINGLE_RUN

    @pytest.mark.asyncio
    async def test_marker_ignored_in_single_run(self, runner, counting_agent):
        agent, _ = counting_agent("planner", complete_on=1, exit_code=3)
        result = await runner.run(AgentRunRequest(agent=str(agent)))
        assert result.complete is False
        assert result.reason == StopReason.SINGLE_RUN

    @pytest.mark.asyncio
    async def test_max_iterations_ignored_without_loop(self, runner, counting_agent, count_of):
        agent, counter = counting_agent("planner")
        await runner.run(AgentRunRequest(agent=str(agent), max_iterations=5))
        assert count_of(counter) == 1


class TestLoop:
    @pytest.mark.asyncio
    async def test_stops_on_marker(self, runner, counting_agent, count_of):
        agent, counter = counting_agent("coder", complete_on=3)
        result = await runner.run(AgentRunRequest(agent=str(agent), max_iterations=10, loop=True))
        assert result.complete is True
        assert result.iterations == 3
        assert result.reason == StopReason.MARKER
        assert count_of(counter) == 3

    @pytest.mark.asyncio
    async def test_marker_wins_over_exit_code(self, runner, counting_agent):
        agent, _ = counting_agent("coder", complete_on=1, exit_code=1)
        result = await runner.run(AgentRunRequest(agent=str(agent), max_iterations=3, loop=True))
        assert result.complete is True
        assert result.exit_code == 1
        assert result.reason == StopReason.MARKER

    @pytest.mark.asyncio
    async def test_max_iterations(self, runner, counting_agent, count_of):
        agent, counter = counting_agent("coder")
        result = await runner.run(AgentRunRequest(agent=str(agent), max_iterations=3, loop=True))
        assert result.complete is False
        assert result.iterations == 3
        assert result.reason == StopReason.MAX_ITERATIONS
        assert count_of(counter) == 3

    @pytest.mark.asyncio
    async def test_failed_iterations_keep_looping(self, runner, counting_agent, count_of):
        agent, counter = counting_agent("coder", exit_code=1)
        result = await runner.run(AgentRunRequest(agent=str(agent), max_iterations=2, loop=True))
        assert result.iterations == 2
        assert result.exit_code == 1
        assert count_of(counter) == 2

    @pytest.mark.asyncio
    async def test_progress_when_verbose(self, counting_agent, output):
        messages = []
        runner = AgentRunner(
            callbacks=StreamCallbacks(on_stdout=output.append), on_progress=messages.append
        )
        agent, _ = counting_agent("coder")
        await runner.run(
            AgentRunRequest(agent=str(agent), max_iterations=2, loop=True, verbose=True)
        )
        assert messages == ["Iteration 1/2", "Iteration 2/2"]


class TestFailures:
    @pytest.mark.asyncio
    async def test_missing_binary(self, runner, tmp_path):
        result = await runner.run(AgentRunRequest(agent=str(tmp_path / "ghost")))
        assert result.complete is False
        assert result.iterations == 0
        assert result.exit_code == 1
        assert result.reason == StopReason.ERROR

    @pytest.mark.asyncio
    async def test_missing_system_prompt_file(self, runner, tmp_path):
        request = AgentRunRequest(
            agent="reviewer",
            cwd=str(tmp_path),
            agent_config=AgentConfig(system_prompt="nope.md"),
        )
        result = await runner.run(request)
        assert result.reason == StopReason.ERROR
        assert result.iterations == 0

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, runner, counting_agent, count_of):
        agent, counter = counting_agent("coder")
        token = CancellationToken()
        token.cancel()
        result = await runner.run(
            AgentRunRequest(agent=str(agent), max_iterations=5, loop=True), token
        )
        assert result.cancelled is True
        assert result.complete is False
        assert result.iterations == 0
        assert result.exit_code == 1
        assert result.reason == StopReason.ERROR
        assert count_of(counter) == 0

    @pytest.mark.asyncio
    async def test_cancelled_during_iteration(self, counting_agent, count_of):
        agent, counter = counting_agent("coder")
        token = CancellationToken()
        runner = AgentRunner(callbacks=StreamCallbacks(on_stdout=lambda _text: token.cancel()))
        result = await runner.run(
            AgentRunRequest(agent=str(agent), max_iterations=5, loop=True), token
        )
        assert result.cancelled is True
        assert result.complete is False
        assert result.iterations == 1
        assert result.reason == StopReason.ERROR
        assert count_of(counter) == 1

    @pytest.mark.asyncio
    async def test_output_failure_leaves_no_child_running(self, make_agent, tmp_path):
        pid_file = tmp_path / "agent.pid"
        agent = make_agent("coder", f'echo $$ > "{pid_file}"\necho working\nexec sleep 30\n')

        def broken_pipe(_text: str) -> None:
            raise BrokenPipeError("stdout closed")

        runner = AgentRunner(callbacks=StreamCallbacks(on_stdout=broken_pipe))
        result = await asyncio.wait_for(
            runner.run(AgentRunRequest(agent=str(agent), max_iterations=3, loop=True)), timeout=10
        )
        assert result.reason == StopReason.ERROR
        assert result.iterations == 0
        with pytest.raises(ProcessLookupError):
            os.kill(int(pid_file.read_text().strip()), 0)


class TestLegacyCommand:
    def test_arg_order(self):
        cmd = legacy_command(
            AgentRunRequest(agent="coder", args=("--a", "1"), prompt="do it", cwd="/w")
        )
        assert cmd.program == "coder"
        assert cmd.args == ("--print", "--dangerously-skip-permissions", "--a", "1", "do it")
        assert cmd.cwd == "/w"

    def test_no_prompt(self):
        cmd = legacy_command(AgentRunRequest(agent="coder"))
        assert cmd.args == ("--print", "--dangerously-skip-permissions")

    @pytest.mark.asyncio
    async def test_spawned_with_flags(self, runner, make_agent, tmp_path):
        agent, args_file = _args_file_agent(make_agent, tmp_path, "coder")
        await runner.run(AgentRunRequest(agent=str(agent), args=("-x",), prompt="go"))
        assert _read_args(args_file) == ["--print", "--dangerously-skip-permissions", "-x", "go"]


class TestDirectSpawn:
    def test_build_runtime_options(self, tmp_path):
        config = AgentConfig(
            system_prompt_text="sys",
            mcp_config="mcp.json",
            settings="/abs/settings.json",
            model="opus",
            max_turns=4,
            allowed_tools=("Read",),
        )
        options = build_runtime_options(config, "SYS", str(tmp_path), "go", ("--x",))
        assert options.mcp_config == str(tmp_path / "mcp.json")
        assert options.settings == "/abs/settings.json"
        assert options.skip_permissions is True
        assert options.system_prompt == "SYS"
        assert options.tools.allowed == ("Read",)
        assert options.raw_args == ("--x",)

    @pytest.mark.asyncio
    async def test_spawns_backend_with_composed_system_prompt(
        self, runner, make_agent, tmp_path, monkeypatch
    ):
        agent, args_file = _args_file_agent(
            make_agent, tmp_path, extra="echo ORCHESTRA_COMPLETE\n"
        )
        monkeypatch.setenv("CLAUDE_PATH", str(agent))
        config = AgentConfig(system_prompt_text="You review code.", model="sonnet")
        request = AgentRunRequest(
            agent="reviewer",
            max_iterations=3,
            loop=True,
            cwd=str(tmp_path),
            prompt="review it",
            agent_config=config,
            backend="claude-cli",
        )
        result = await runner.run(request)
        assert result.reason == StopReason.MARKER
        assert result.iterations == 1

        args = _read_args(args_file)
        assert args[0] == "--print"
        assert "--dangerously-skip-permissions" in args
        system_prompt = args[args.index("--append-system-prompt") + 1]
        assert system_prompt == MODE_AWARENESS_PREFIX + "You review code."
        assert args[args.index("--model") + 1] == "sonnet"
        assert args[-2:] == ["--", "review it"]

    @pytest.mark.asyncio
    async def test_agent_backend_beats_request_backend(
        self, runner, make_agent, tmp_path, monkeypatch
    ):
        agent, args_file = _args_file_agent(make_agent, tmp_path, "codex")
        monkeypatch.setenv("CODEX_PATH", str(agent))
        config = AgentConfig(system_prompt_text="S", backend="codex-cli")
        request = AgentRunRequest(
            agent="coder", cwd=str(tmp_path), prompt="p", agent_config=config, backend="claude-cli"
        )
        result = await runner.run(request)
        assert result.complete is True
        args = _read_args(args_file)
        assert args[0] == "exec"
        assert args[-1].endswith("\n\n---\n\np")
