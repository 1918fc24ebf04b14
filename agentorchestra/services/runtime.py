"""Backend resolution, availability checks and one-shot run helpers."""

from __future__ import annotations

import logging
import os
import sys

from agentorchestra.errors import BackendNotAvailableError, BackendNotRegisteredError
from agentorchestra.infra.agents.base import AgentBackend, capability_mismatches
from agentorchestra.infra.agents.registry import get_backend, has_backend, registered_backends
from agentorchestra.infra.cancellation import CancellationToken
from agentorchestra.models.agent import (
    DEFAULT_BACKEND,
    BackendName,
    BaseRunOptions,
    RunResult,
    StreamCallbacks,
)

logger = logging.getLogger(__name__)

BACKEND_ENV_VAR = "ORCHESTRA_BACKEND"

INSTALL_INSTRUCTIONS: dict[str, str] = {
    BackendName.CLAUDE_CLI.value: (
        "Install Claude Code CLI with: npm install -g @anthropic-ai/claude-code\n"
        "Then authenticate with: claude login"
    ),
    BackendName.CODEX_CLI.value: (
        "Install Codex CLI with: npm install -g @openai/codex\n"
        "Then authenticate with: codex auth"
    ),
    BackendName.CODEX_SDK.value: (
        "Note: the codex-sdk backend is not implemented yet.\n"
        "Use codex-cli for now."
    ),
}

PATH_HINT = (
    "If the CLI is installed but not found, ensure it is in your PATH "
    "or set the appropriate environment variable:\n"
    "  - claude-cli: CLAUDE_PATH=/path/to/claude\n"
    "  - codex-cli: CODEX_PATH=/path/to/codex"
)


def install_instructions(name: str) -> str:
    return INSTALL_INSTRUCTIONS.get(name, "")


def resolve_backend(
    override: str | None = None,
    cli_flag: str | None = None,
    env_var: str = BACKEND_ENV_VAR,
    default: str = DEFAULT_BACKEND.value,
    environ: dict[str, str] | None = None,
) -> str:
    """Pick the backend name: override > CLI flag > env var > default.

    The winner must be a registered backend; anything else raises
    BackendNotRegisteredError before a process is spawned.
    """
    env = os.environ if environ is None else environ
    if override:
        name, source = override, "explicit override"
    elif cli_flag:
        name, source = cli_flag, "--backend flag"
    elif env.get(env_var):
        name, source = env[env_var], f"{env_var} environment variable"
    else:
        name, source = default, "default"

    if not has_backend(name):
        raise BackendNotRegisteredError(name, registered_backends())
    logger.debug("Resolved backend: %s (source: %s)", name, source)
    return name


def is_backend_available(name: str) -> bool:
    """Availability check that never raises."""
    try:
        return get_backend(name).is_available()
    except BackendNotRegisteredError:
        return False


def ensure_backend_available(name: str) -> AgentBackend:
    """Return the backend instance, or raise with install instructions."""
    backend = get_backend(name)
    available = backend.is_available()
    logger.debug("Backend %s available: %s", name, available)
    if not available:
        raise BackendNotAvailableError(name, f"{install_instructions(name)}\n\n{PATH_HINT}")
    return backend


def check_capabilities(backend: AgentBackend, options: BaseRunOptions) -> list[str]:
    """Log a warning for each option the backend cannot honour and return them."""
    mismatches = capability_mismatches(backend.capabilities(), options)
    for mismatch in mismatches:
        logger.warning('Backend "%s": %s; option will be ignored', backend.name, mismatch)
    return mismatches


def echo_callbacks() -> StreamCallbacks:
    """Callbacks that pass agent output straight through to our own stdio."""

    def _out(data: str) -> None:
        sys.stdout.write(data)
        sys.stdout.flush()

    def _err(data: str) -> None:
        sys.stderr.write(data)
        sys.stderr.flush()

    return StreamCallbacks(on_stdout=_out, on_stderr=_err)


async def run_agent_once(
    options: BaseRunOptions,
    backend: str | None = None,
    cancel_token: CancellationToken | None = None,
) -> RunResult:
    """Run a print-mode agent once and capture its output."""
    runtime = ensure_backend_available(resolve_backend(backend))
    return await runtime.run(options.as_print(), cancel_token)


async def run_agent_streaming(
    options: BaseRunOptions,
    callbacks: StreamCallbacks | None = None,
    backend: str | None = None,
    cancel_token: CancellationToken | None = None,
) -> RunResult:
    """Run a print-mode agent, forwarding output as it arrives."""
    runtime = ensure_backend_available(resolve_backend(backend))
    return await runtime.run_streaming(options.as_print(), callbacks, cancel_token)


async def run_agent_interactive(
    options: BaseRunOptions,
    backend: str | None = None,
    cancel_token: CancellationToken | None = None,
) -> RunResult:
    """Run an agent with inherited stdio.

    Backends without interactive support fall back to print mode with
    output echoed to the terminal.
    """
    runtime = ensure_backend_available(resolve_backend(backend))
    if not runtime.capabilities().supports_interactive:
        logger.warning(
            'Backend "%s" does not support interactive mode; falling back to print mode',
            runtime.name,
        )
        return await runtime.run_streaming(options.as_print(), echo_callbacks(), cancel_token)
    return await runtime.run_interactive(options.as_interactive(), cancel_token)
