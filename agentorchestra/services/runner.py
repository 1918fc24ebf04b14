"""Iteration loop controller: runs one agent step, looping until the marker."""

from __future__ import annotations

import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from agentorchestra.constants import LEGACY_AGENT_FLAGS
from agentorchestra.infra.agents.registry import get_backend
from agentorchestra.infra.cancellation import CancellationToken
from agentorchestra.infra.subprocess_mgr import SubprocessManager
from agentorchestra.models.agent import (
    DEFAULT_BACKEND,
    CommandSpec,
    PrintOptions,
    RunResult,
    StreamCallbacks,
    ToolConfig,
)
from agentorchestra.models.chain import AgentConfig, LoopResult, StopReason
from agentorchestra.services.prompt import compose_system_prompt, load_agent_system_prompt
from agentorchestra.services.runtime import echo_callbacks

logger = logging.getLogger(__name__)

Invocation = Callable[[CancellationToken], Awaitable[RunResult]]


@dataclass(frozen=True)
class AgentRunRequest:
    """One step's worth of work for the loop controller.

    max_iterations only applies when loop is True.
    """

    agent: str
    max_iterations: int = 1
    loop: bool = False
    args: tuple[str, ...] = ()
    cwd: str | None = None
    verbose: bool = False
    prompt: str | None = None
    agent_config: AgentConfig | None = None
    backend: str | None = None


def _resolve_path(path: str | None, cwd: str) -> str | None:
    if path is None:
        return None
    p = Path(path)
    return str(p if p.is_absolute() else Path(cwd) / p)


def build_runtime_options(
    agent_config: AgentConfig,
    system_prompt: str,
    cwd: str,
    prompt: str | None = None,
    raw_args: tuple[str, ...] = (),
    verbose: bool = False,
) -> PrintOptions:
    """Map an agent config onto headless backend options.

    Relative mcp_config/settings paths resolve against cwd. Direct-spawn
    agents always run unattended, so permission prompts are skipped.
    """
    return PrintOptions(
        prompt=prompt,
        system_prompt=system_prompt,
        cwd=cwd,
        model=agent_config.model,
        max_turns=agent_config.max_turns,
        tools=ToolConfig(
            allowed=tuple(agent_config.allowed_tools or ()),
            disallowed=tuple(agent_config.disallowed_tools or ()),
        ),
        settings=_resolve_path(agent_config.settings, cwd),
        mcp_config=_resolve_path(agent_config.mcp_config, cwd),
        raw_args=tuple(raw_args),
        skip_permissions=True,
        verbose=verbose,
    )


def legacy_command(request: AgentRunRequest) -> CommandSpec:
    """Command for a compiled agent: fixed flags, merged args, then the prompt."""
    args = [*LEGACY_AGENT_FLAGS, *request.args]
    if request.prompt:
        args.append(request.prompt)
    return CommandSpec(program=request.agent, args=tuple(args), cwd=request.cwd or None)


class AgentRunner:
    """Runs a single step in single-run or loop mode.

    Never raises for runtime failures: anything that goes wrong while
    building options or spawning becomes a LoopResult with reason ERROR.
    """

    def __init__(
        self,
        subprocess_mgr: SubprocessManager | None = None,
        callbacks: StreamCallbacks | None = None,
        default_backend: str = DEFAULT_BACKEND.value,
        on_progress: Callable[[str], None] | None = None,
    ) -> None:
        self._procs = subprocess_mgr or SubprocessManager()
        self._callbacks = callbacks if callbacks is not None else echo_callbacks()
        self._default_backend = default_backend
        self._on_progress = on_progress

    async def run(
        self, request: AgentRunRequest, cancel_token: CancellationToken | None = None
    ) -> LoopResult:
        token = cancel_token or CancellationToken()
        completed = 0
        last: RunResult | None = None

        try:
            invoke = self._prepare(request)

            if not request.loop:
                if token.cancelled:
                    return self._cancelled(completed, last)
                last = await invoke(token)
                completed = 1
                return LoopResult(
                    complete=last.exit_code == 0,
                    iterations=1,
                    exit_code=last.exit_code,
                    reason=StopReason.SINGLE_RUN,
                    cancelled=token.cancelled,
                    last_run=last,
                )

            while completed < request.max_iterations:
                if token.cancelled:
                    break
                self._progress(request, f"Iteration {completed + 1}/{request.max_iterations}")
                last = await invoke(token)
                completed += 1
                if last.completion_marker_found:
                    logger.info("%s completed after %d iteration(s)", request.agent, completed)
                    return LoopResult(
                        complete=True,
                        iterations=completed,
                        exit_code=last.exit_code,
                        reason=StopReason.MARKER,
                        last_run=last,
                    )

            if token.cancelled:
                return self._cancelled(completed, last)

            logger.info(
                "%s hit max iterations (%d) without completing", request.agent, completed
            )
            return LoopResult(
                complete=False,
                iterations=completed,
                exit_code=last.exit_code if last else 0,
                reason=StopReason.MAX_ITERATIONS,
                last_run=last,
            )
        except Exception as e:
            logger.error("Agent %s failed: %s", request.agent, e)
            logger.debug("Agent failure details", exc_info=True)
            return LoopResult(
                complete=False,
                iterations=completed,
                exit_code=1,
                reason=StopReason.ERROR,
                last_run=last,
            )

    def _cancelled(self, completed: int, last: RunResult | None) -> LoopResult:
        logger.info("Run cancelled after %d iteration(s)", completed)
        return LoopResult(
            complete=False,
            iterations=completed,
            exit_code=last.exit_code if last else 1,
            reason=StopReason.ERROR,
            cancelled=True,
            last_run=last,
        )

    def _progress(self, request: AgentRunRequest, message: str) -> None:
        logger.info("%s: %s", request.agent, message)
        if request.verbose and self._on_progress:
            self._on_progress(message)

    def _prepare(self, request: AgentRunRequest) -> Invocation:
        config = request.agent_config
        if config is not None and config.is_direct_spawn:
            return self._prepare_direct(request, config)
        return self._prepare_legacy(request)

    def _prepare_direct(self, request: AgentRunRequest, config: AgentConfig) -> Invocation:
        cwd = request.cwd or os.getcwd()
        raw_system_prompt = load_agent_system_prompt(config, cwd)
        system_prompt = compose_system_prompt(raw_system_prompt or "")
        backend = get_backend(config.backend or request.backend or self._default_backend)
        options = build_runtime_options(
            config, system_prompt, cwd, request.prompt, request.args, request.verbose
        )
        logger.debug("Direct spawn %s via %s", request.agent, backend.name)
        callbacks = self._callbacks

        async def invoke(token: CancellationToken) -> RunResult:
            if request.loop or backend.capabilities().supports_streaming:
                return await backend.run_streaming(options, callbacks, token)
            result = await backend.run(options, token)
            if result.stdout and callbacks.on_stdout:
                callbacks.on_stdout(result.stdout)
            if result.stderr and callbacks.on_stderr:
                callbacks.on_stderr(result.stderr)
            return result

        return invoke

    def _prepare_legacy(self, request: AgentRunRequest) -> Invocation:
        command = legacy_command(request)
        callbacks = self._callbacks

        async def invoke(token: CancellationToken) -> RunResult:
            result = await self._procs.run_streaming(command, callbacks, token)
            return RunResult(
                exit_code=result.exit_code,
                stdout=result.stdout,
                stderr=result.stderr,
                completion_marker_found=result.completion_marker_found,
            )

        return invoke


async def run_agent(
    request: AgentRunRequest, cancel_token: CancellationToken | None = None
) -> LoopResult:
    """Run one step with a default AgentRunner."""
    return await AgentRunner(default_backend=request.backend or DEFAULT_BACKEND.value).run(
        request, cancel_token
    )
