"""Chain executor: runs steps strictly in sequence, stopping at the first failure."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from agentorchestra.infra.cancellation import CancellationToken
from agentorchestra.models.chain import (
    AgentConfig,
    ChainConfig,
    ChainResult,
    ChainStep,
    StepResult,
)
from agentorchestra.services.prompt import prompt_sources, resolve_prompt
from agentorchestra.services.runner import AgentRunner, AgentRunRequest

logger = logging.getLogger(__name__)


@dataclass
class ChainOptions:
    """Everything needed to execute one chain.

    global_args are placed before each step's own args, so step args win
    for agents that take the last occurrence of a flag.
    """

    steps: Sequence[ChainStep]
    cwd: str | None = None
    verbose: bool = False
    global_args: tuple[str, ...] = ()
    cli_prompt: str | None = None
    cli_prompt_file: str | None = None
    chain_config: ChainConfig | None = None
    agent_defaults: dict[str, AgentConfig] = field(default_factory=dict)
    backend: str | None = None
    cancel_token: CancellationToken | None = None
    install_signal_handlers: bool = True


class ChainExecutor:
    """Executes chains of agent steps."""

    def __init__(
        self,
        runner: AgentRunner | None = None,
        on_progress: Callable[[str], None] | None = None,
    ) -> None:
        self._runner = runner or AgentRunner(on_progress=on_progress)
        self._on_progress = on_progress

    async def execute(self, options: ChainOptions) -> ChainResult:
        """Run options.steps in order.

        SIGINT/SIGTERM are routed to the chain's cancellation token for the
        duration of the call and restored on every exit path. Prompt file
        and backend registration errors propagate to the caller.
        """
        token = options.cancel_token or CancellationToken()
        if not options.install_signal_handlers:
            return await self._execute(options, token)
        with token.install_signal_handlers():
            return await self._execute(options, token)

    async def _execute(self, options: ChainOptions, token: CancellationToken) -> ChainResult:
        cwd = options.cwd or os.getcwd()
        total = len(options.steps)
        results: list[StepResult] = []

        for index, step in enumerate(options.steps):
            if token.cancelled:
                logger.warning("Chain cancelled before step %d/%d", index + 1, total)
                return ChainResult(success=False, steps=tuple(results), failed_at=index)

            self._progress(options, f"Step {index + 1}/{total}: {step.agent}")
            agent_config = options.agent_defaults.get(step.agent)
            prompt = resolve_prompt(
                prompt_sources(
                    options.cli_prompt,
                    options.cli_prompt_file,
                    step,
                    options.chain_config,
                    agent_config,
                ),
                cwd,
            )
            request = AgentRunRequest(
                agent=step.agent,
                max_iterations=step.iterations,
                loop=step.loop,
                args=(*options.global_args, *step.args),
                cwd=cwd,
                verbose=options.verbose,
                prompt=prompt,
                agent_config=agent_config,
                backend=options.backend,
            )

            result = await self._runner.run(request, token)
            results.append(StepResult(agent=step.agent, result=result))

            if token.cancelled or not result.complete:
                logger.warning(
                    "Chain stopped at step %d/%d (%s): %s",
                    index + 1, total, step.agent, result.reason.value,
                )
                return ChainResult(success=False, steps=tuple(results), failed_at=index)

        logger.info("Chain completed: %d step(s)", total)
        return ChainResult(success=True, steps=tuple(results))

    def _progress(self, options: ChainOptions, message: str) -> None:
        logger.info(message)
        if options.verbose and self._on_progress:
            self._on_progress(message)


async def execute_chain(options: ChainOptions, runner: AgentRunner | None = None) -> ChainResult:
    """Execute a chain with a default ChainExecutor."""
    return await ChainExecutor(runner).execute(options)
