"""Agent runtime backend protocol and shared CLI backend behaviour."""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Protocol, runtime_checkable

from agentorchestra.infra.cancellation import CancellationToken
from agentorchestra.infra.subprocess_mgr import SubprocessManager
from agentorchestra.models.agent import (
    BaseRunOptions,
    Capabilities,
    CommandSpec,
    InteractiveOptions,
    PrintOptions,
    RunMode,
    RunOptions,
    RunResult,
    StreamCallbacks,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class AgentBackend(Protocol):
    """Protocol for agent runtime backends.

    A backend turns RunOptions into a running agent process and reports
    what it did. Options the backend cannot honour are logged as
    warnings and ignored, never raised.
    """

    name: str

    def is_available(self) -> bool:
        """Check whether the backend can be used. Never raises."""
        ...

    def capabilities(self) -> Capabilities:
        """Return the static capability flags for this backend."""
        ...

    async def run(
        self, options: RunOptions, cancel_token: CancellationToken | None = None
    ) -> RunResult:
        """Run once, dispatching on the options' mode."""
        ...

    async def run_streaming(
        self,
        options: BaseRunOptions,
        callbacks: StreamCallbacks | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> RunResult:
        """Run in print mode, forwarding output and watching for the marker."""
        ...

    async def run_interactive(
        self, options: BaseRunOptions, cancel_token: CancellationToken | None = None
    ) -> RunResult:
        """Run with inherited stdio."""
        ...


def capability_mismatches(caps: Capabilities, options: BaseRunOptions) -> list[str]:
    """Describe each option in use that caps says the backend cannot honour."""
    mismatches: list[str] = []
    if options.mcp_config and not caps.supports_mcp:
        mismatches.append("mcp_config: MCP configuration not supported")
    if options.tools and not caps.supports_tools:
        mismatches.append("tools: Tool allow/deny lists not supported")
    if options.model and not caps.supports_model:
        mismatches.append("model: Model selection not supported")
    if options.max_turns is not None and not caps.supports_max_turns:
        mismatches.append("max_turns: Max turns not supported")
    if options.system_prompt and not caps.supports_system_prompt:
        mismatches.append("system_prompt: Limited system prompt support")
    if options.mode is RunMode.INTERACTIVE and not caps.supports_interactive:
        mismatches.append("mode: Interactive mode not supported")
    return mismatches


class CliBackend:
    """Base for backends that drive an agent CLI as a subprocess.

    Subclasses set ``name``, ``program`` and ``path_env_var`` and
    implement capabilities() and build_command().
    """

    name: str = ""
    program: str = ""
    path_env_var: str = ""

    def __init__(self, subprocess_mgr: SubprocessManager | None = None) -> None:
        self._procs = subprocess_mgr or SubprocessManager()

    def executable(self) -> str:
        """Path to the agent binary; the env var override wins over PATH lookup."""
        return os.environ.get(self.path_env_var) or self.program

    def is_available(self) -> bool:
        if os.environ.get(self.path_env_var):
            logger.debug("%s found via %s", self.name, self.path_env_var)
            return True
        try:
            found = shutil.which(self.program)
        except OSError as e:
            logger.debug("%s availability check failed: %s", self.name, e)
            return False
        logger.debug("%s availability: %s", self.name, found or "not on PATH")
        return found is not None

    def capabilities(self) -> Capabilities:
        raise NotImplementedError

    def build_command(self, options: BaseRunOptions) -> CommandSpec:
        raise NotImplementedError

    def unsupported_options(self, options: BaseRunOptions) -> list[str]:
        return capability_mismatches(self.capabilities(), options)

    def warn_unsupported(self, options: BaseRunOptions) -> None:
        for mismatch in self.unsupported_options(options):
            logger.warning('Backend "%s" ignores option %s', self.name, mismatch)

    @contextmanager
    def prepared_command(self, options: BaseRunOptions) -> Iterator[CommandSpec]:
        """Yield the command for options; subclasses may hold resources around it."""
        yield self.build_command(options)

    async def run(
        self, options: RunOptions, cancel_token: CancellationToken | None = None
    ) -> RunResult:
        if options.mode is RunMode.INTERACTIVE:
            return await self.run_interactive(options, cancel_token)
        return await self.run_streaming(options, None, cancel_token)

    async def run_streaming(
        self,
        options: BaseRunOptions,
        callbacks: StreamCallbacks | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> RunResult:
        print_options: PrintOptions = options.as_print()
        self.warn_unsupported(print_options)
        with self.prepared_command(print_options) as command:
            result = await self._procs.run_streaming(command, callbacks, cancel_token)
        return RunResult(
            exit_code=result.exit_code,
            stdout=result.stdout,
            stderr=result.stderr,
            completion_marker_found=result.completion_marker_found,
        )

    async def run_interactive(
        self, options: BaseRunOptions, cancel_token: CancellationToken | None = None
    ) -> RunResult:
        interactive: InteractiveOptions = options.as_interactive()
        self.warn_unsupported(interactive)
        with self.prepared_command(interactive) as command:
            exit_code = await self._procs.run_interactive(command, cancel_token)
        return RunResult(exit_code=exit_code)
