"""Prompt resolution: invocation > step > chain > agent default."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from agentorchestra.constants import COMPLETION_MARKER
from agentorchestra.errors import ConfigError, PromptFileNotFoundError
from agentorchestra.models.chain import AgentConfig, ChainConfig, ChainStep

logger = logging.getLogger(__name__)

MODE_AWARENESS_PREFIX = f"""\
You are running in HEADLESS mode via agentorchestra orchestration.

IMPORTANT CONSTRAINTS:
- You are in non-interactive mode and CANNOT ask the user questions
- You must make autonomous decisions based on the information available
- If you need clarification, make a reasonable assumption and proceed
- Do not wait for user input or confirmation

COMPLETION CONTRACT:
When you have finished your task, you MUST output the following marker on its own line:
{COMPLETION_MARKER}

This marker signals to the orchestrator that you have completed your work.
Output this marker ONLY when you are truly done with your assigned task.

---

"""


@dataclass(frozen=True)
class PromptSource:
    """One priority level: inline text beats the file reference."""

    inline: str | None = None
    file: str | None = None
    level: str = ""


def read_prompt_file(file_ref: str, cwd: str | Path, kind: str = "Prompt") -> str:
    """Read file_ref, relative to cwd unless absolute."""
    path = Path(file_ref)
    if not path.is_absolute():
        path = Path(cwd) / path
    if not path.is_file():
        raise PromptFileNotFoundError(str(path), kind)
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read {kind.lower()} file '{path}': {e}") from e


def resolve_prompt(sources: Iterable[PromptSource], cwd: str | Path) -> str | None:
    """Return the first prompt any level yields, or None when none does."""
    for source in sources:
        if source.inline is not None:
            logger.debug("Prompt from %s (inline)", source.level or "source")
            return source.inline
        if source.file is not None:
            logger.debug("Prompt from %s file %s", source.level or "source", source.file)
            return read_prompt_file(source.file, cwd)
    return None


def prompt_sources(
    cli_prompt: str | None = None,
    cli_prompt_file: str | None = None,
    step: ChainStep | None = None,
    chain: ChainConfig | None = None,
    agent_config: AgentConfig | None = None,
) -> list[PromptSource]:
    """Build the priority-ordered prompt sources for one step."""
    sources = [PromptSource(cli_prompt, cli_prompt_file, "invocation")]
    if step is not None:
        sources.append(PromptSource(step.prompt, step.prompt_file, "step"))
    if chain is not None:
        sources.append(PromptSource(chain.prompt, chain.prompt_file, "chain"))
    if agent_config is not None:
        sources.append(
            PromptSource(agent_config.default_prompt, agent_config.default_prompt_file, "agent")
        )
    return sources


def load_agent_system_prompt(agent_config: AgentConfig, cwd: str | Path) -> str | None:
    """Inline system prompt text wins; otherwise read the system prompt file."""
    source = PromptSource(
        agent_config.system_prompt_text, agent_config.system_prompt, "system prompt"
    )
    if source.inline is not None:
        return source.inline
    if source.file is not None:
        return read_prompt_file(source.file, cwd, kind="System prompt")
    return None


def compose_system_prompt(agent_prompt: str) -> str:
    return MODE_AWARENESS_PREFIX + agent_prompt
