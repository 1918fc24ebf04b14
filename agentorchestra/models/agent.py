"""Agent runtime domain models."""

from __future__ import annotations

import shlex
from collections.abc import Callable
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar


class BackendName(str, Enum):
    CLAUDE_CLI = "claude-cli"
    CODEX_CLI = "codex-cli"
    CODEX_SDK = "codex-sdk"


DEFAULT_BACKEND = BackendName.CLAUDE_CLI


class RunMode(str, Enum):
    PRINT = "print"
    INTERACTIVE = "interactive"


@dataclass(frozen=True)
class Capabilities:
    """What a runtime backend can honour. Queried, never mutated."""

    supports_mcp: bool = False
    supports_tools: bool = False
    supports_model: bool = False
    supports_max_turns: bool = False
    supports_interactive: bool = False
    supports_streaming: bool = False
    supports_system_prompt: bool = False


@dataclass(frozen=True)
class ToolConfig:
    allowed: tuple[str, ...] = ()
    disallowed: tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.allowed or self.disallowed)


@dataclass(frozen=True)
class BaseRunOptions:
    """Options shared by every run mode.

    Concrete runs use PrintOptions or InteractiveOptions; the class
    carries the mode so a print-only flag never leaks into an
    interactive run by accident.
    """

    mode: ClassVar[RunMode]

    prompt: str | None = None
    system_prompt: str | None = None
    cwd: str | None = None
    env: dict[str, str] | None = None
    model: str | None = None
    max_turns: int | None = None
    tools: ToolConfig = field(default_factory=ToolConfig)
    settings: str | None = None
    mcp_config: str | None = None
    raw_args: tuple[str, ...] = ()
    skip_permissions: bool = False
    verbose: bool = False

    def _values(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def as_print(self) -> PrintOptions:
        if isinstance(self, PrintOptions):
            return self
        return PrintOptions(**self._values())

    def as_interactive(self) -> InteractiveOptions:
        if isinstance(self, InteractiveOptions):
            return self
        return InteractiveOptions(**self._values())


@dataclass(frozen=True)
class PrintOptions(BaseRunOptions):
    """Non-interactive run: stdout/stderr are piped and scanned for the marker."""

    mode: ClassVar[RunMode] = RunMode.PRINT


@dataclass(frozen=True)
class InteractiveOptions(BaseRunOptions):
    """Interactive run: stdio is inherited from the orchestrator."""

    mode: ClassVar[RunMode] = RunMode.INTERACTIVE


RunOptions = PrintOptions | InteractiveOptions


@dataclass(frozen=True)
class RunResult:
    """Outcome of a single agent process invocation.

    stdout/stderr are None for interactive runs, whose output goes
    straight to the terminal and is never scanned for the marker.
    """

    exit_code: int
    stdout: str | None = None
    stderr: str | None = None
    completion_marker_found: bool = False
    structured: dict[str, Any] | None = None


@dataclass
class StreamCallbacks:
    on_stdout: Callable[[str], None] | None = None
    on_stderr: Callable[[str], None] | None = None
    on_marker_detected: Callable[[], None] | None = None


@dataclass(frozen=True)
class CommandSpec:
    """Specification for launching an agent subprocess."""

    program: str
    args: tuple[str, ...] = ()
    env: dict[str, str] | None = None
    cwd: str | None = None

    @property
    def full_command(self) -> str:
        """Return the full command string, quoted for copy-paste into a shell."""
        parts = [self.program, *self.args]
        return " ".join(shlex.quote(p) for p in parts)
