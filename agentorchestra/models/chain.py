"""Chain, agent-config and loop-result domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from agentorchestra.models.agent import RunResult


@dataclass(frozen=True)
class ChainStep:
    """One step of a chain. loop is True iff iterations was given explicitly."""

    agent: str
    iterations: int = 1
    loop: bool = False
    args: tuple[str, ...] = ()
    prompt: str | None = None
    prompt_file: str | None = None


@dataclass(frozen=True)
class ChainConfig:
    steps: tuple[ChainStep, ...] = ()
    prompt: str | None = None
    prompt_file: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class AgentConfig:
    """Per-agent defaults from the chains document."""

    default_prompt: str | None = None
    default_prompt_file: str | None = None
    system_prompt: str | None = None
    system_prompt_text: str | None = None
    mcp_config: str | None = None
    settings: str | None = None
    model: str | None = None
    max_turns: int | None = None
    allowed_tools: tuple[str, ...] | None = None
    disallowed_tools: tuple[str, ...] | None = None
    backend: str | None = None

    @property
    def is_direct_spawn(self) -> bool:
        """Agents with a system prompt source are run through a backend directly."""
        return self.system_prompt is not None or self.system_prompt_text is not None

    @classmethod
    def from_doc(cls, doc: dict) -> AgentConfig:
        def _tuple(value):
            return tuple(value) if value is not None else None

        return cls(
            default_prompt=doc.get("defaultPrompt"),
            default_prompt_file=doc.get("defaultPromptFile"),
            system_prompt=doc.get("systemPrompt"),
            system_prompt_text=doc.get("systemPromptText"),
            mcp_config=doc.get("mcpConfig"),
            settings=doc.get("settings"),
            model=doc.get("model"),
            max_turns=doc.get("maxTurns"),
            allowed_tools=_tuple(doc.get("allowedTools")),
            disallowed_tools=_tuple(doc.get("disallowedTools")),
            backend=doc.get("backend"),
        )


@dataclass(frozen=True)
class OrchestraConfig:
    chains: dict[str, ChainConfig] = field(default_factory=dict)
    agents: dict[str, AgentConfig] = field(default_factory=dict)


class StopReason(str, Enum):
    MARKER = "marker"
    MAX_ITERATIONS = "max_iterations"
    ERROR = "error"
    SINGLE_RUN = "single_run"


@dataclass(frozen=True)
class LoopResult:
    """Outcome of running one step through the loop controller."""

    complete: bool
    iterations: int
    exit_code: int
    reason: StopReason
    cancelled: bool = False
    last_run: RunResult | None = None


@dataclass(frozen=True)
class StepResult:
    agent: str
    result: LoopResult


@dataclass(frozen=True)
class ChainResult:
    success: bool
    steps: tuple[StepResult, ...] = ()
    failed_at: int | None = None
