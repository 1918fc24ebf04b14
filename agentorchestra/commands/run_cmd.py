"""CLI handler for running agents and chains."""

from __future__ import annotations

import asyncio
import os
import re
from collections.abc import Sequence
from pathlib import Path

import click

from agentorchestra.chain_config import get_chain, load_chain_config, substitute_vars_in_chain
from agentorchestra.errors import OrchestraError
from agentorchestra.models.chain import ChainResult, ChainStep, OrchestraConfig
from agentorchestra.parser import parse_dsl
from agentorchestra.services.chain_service import ChainExecutor, ChainOptions
from agentorchestra.services.runner import AgentRunner
from agentorchestra.services.runtime import resolve_backend

EXIT_COMPLETE = 0
EXIT_INCOMPLETE = 1
EXIT_ERROR = 2

VAR_NAME_PATTERN = re.compile(r"^[A-Z_][A-Z0-9_]*$")


def _run(coro):
    return asyncio.run(coro)


def split_positionals(items: Sequence[str]) -> tuple[list[str], dict[str, str]]:
    """Separate VAR=value assignments from DSL words."""
    words: list[str] = []
    variables: dict[str, str] = {}
    for item in items:
        key, eq, value = item.partition("=")
        if eq and VAR_NAME_PATTERN.match(key):
            variables[key] = value
        else:
            words.append(item)
    return words, variables


def format_dry_run(steps: Sequence[ChainStep], cwd: str, config: OrchestraConfig | None) -> list[str]:
    lines = ["Dry run - would execute the following chain:", "", f"Working directory: {cwd}", ""]
    agents = config.agents if config else {}
    for i, step in enumerate(steps, 1):
        mode = f"loop up to {step.iterations} iterations" if step.loop else "run once"
        line = f"  {i}. {step.agent} - {mode}"
        if step.args:
            line += f" args: [{', '.join(step.args)}]"
        agent_config = agents.get(step.agent)
        if agent_config is not None and agent_config.is_direct_spawn:
            line += f" (direct spawn via {agent_config.backend or 'default backend'})"
        lines.append(line)
    lines.extend(["", "Dry run complete. No agents were executed."])
    return lines


def format_summary(result: ChainResult, steps: Sequence[ChainStep]) -> list[str]:
    done = sum(1 for s in result.steps if s.result.complete)
    lines = ["", "Summary:"]
    for i, step_result in enumerate(result.steps):
        step = steps[i]
        status = "done" if step_result.result.complete else "incomplete"
        iterations = (
            f" ({step_result.result.iterations}/{step.iterations} iterations)" if step.loop else ""
        )
        lines.append(
            f"  {i + 1}. {step_result.agent}: {status}{iterations} [{step_result.result.reason.value}]"
        )
    for i in range(len(result.steps), len(steps)):
        lines.append(f"  {i + 1}. {steps[i].agent}: skipped")

    state = "complete" if result.success else "incomplete"
    lines.append("")
    lines.append(f"Chain {state} ({done}/{len(steps)} steps)")
    if result.failed_at is not None and result.failed_at < len(steps):
        lines.append(f"Failed at step {result.failed_at + 1}: {steps[result.failed_at].agent}")
    return lines


@click.command("run", context_settings={"ignore_unknown_options": True})
@click.argument("items", nargs=-1)
@click.option("--chain", "chain_name", default=None, help="Run a named chain from the chains config")
@click.option("--cwd", default=None, help="Working directory for all agents")
@click.option("--verbose", "-v", is_flag=True, help="Show iteration and step progress")
@click.option("--dry-run", is_flag=True, help="Show what would run without executing")
@click.option("--prompt", default=None, help="Prompt for every step (highest priority)")
@click.option("--prompt-file", default=None, help="File holding the prompt for every step")
@click.option("--backend", default=None, help="Runtime backend for direct-spawn agents")
@click.option("--arg", "-a", "extra_args", multiple=True, help="Extra argument passed to every agent")
@click.pass_context
def run_command(
    ctx,
    items: tuple[str, ...],
    chain_name: str | None,
    cwd: str | None,
    verbose: bool,
    dry_run: bool,
    prompt: str | None,
    prompt_file: str | None,
    backend: str | None,
    extra_args: tuple[str, ...],
):
    """Run an agent DSL (e.g. "planner:3 -> coder:10") or a named chain.

    VAR=value arguments are substituted into ${VAR} placeholders of a
    named chain. Exits 0 when every step completed, 1 when a step did not
    complete and 2 on configuration or runtime errors.
    """
    app_config = ctx.obj["config"]
    work_dir = str(Path(cwd).expanduser().resolve()) if cwd else os.getcwd()
    words, variables = split_positionals(items)

    def progress(message: str) -> None:
        click.echo(f"[orchestra] {message}")

    async def _execute() -> int:
        backend_name = resolve_backend(
            cli_flag=backend,
            env_var=app_config.runtime.backend_env_var,
            default=app_config.runtime.default_backend,
        )
        orchestra_config = await load_chain_config(
            work_dir, app_config.chains.local_path, app_config.chains.resolver_command
        )

        chain_config = None
        if chain_name:
            if orchestra_config is None:
                click.echo(f"Error: No chains config found for {work_dir}", err=True)
                return EXIT_ERROR
            chain_config = substitute_vars_in_chain(
                get_chain(orchestra_config, chain_name), variables
            )
            steps = chain_config.steps
            if verbose:
                progress(f"Loaded chain '{chain_name}' from config")
        else:
            if not words:
                click.echo("Error: No agent or chain specified", err=True)
                return EXIT_ERROR
            steps = parse_dsl(" ".join(words))

        if dry_run:
            for line in format_dry_run(steps, work_dir, orchestra_config):
                click.echo(line)
            return EXIT_COMPLETE

        if len(steps) == 1 and steps[0].loop:
            progress(f"Starting: {steps[0].agent} (max {steps[0].iterations} iterations)")
        elif len(steps) == 1:
            progress(f"Running: {steps[0].agent}")
        else:
            progress(f"Starting chain with {len(steps)} steps")

        runner = AgentRunner(default_backend=backend_name, on_progress=progress)
        executor = ChainExecutor(runner, on_progress=progress)
        result = await executor.execute(
            ChainOptions(
                steps=steps,
                cwd=work_dir,
                verbose=verbose,
                global_args=extra_args,
                cli_prompt=prompt,
                cli_prompt_file=prompt_file,
                chain_config=chain_config,
                agent_defaults=orchestra_config.agents if orchestra_config else {},
                backend=backend_name,
            )
        )
        for line in format_summary(result, steps):
            click.echo(line)
        return EXIT_COMPLETE if result.success else EXIT_INCOMPLETE

    try:
        code = _run(_execute())
    except OrchestraError as e:
        click.echo(f"Error: {e}", err=True)
        code = EXIT_ERROR
    ctx.exit(code)
