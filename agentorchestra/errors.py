"""Exception types raised by the orchestrator."""

from __future__ import annotations


class OrchestraError(Exception):
    """Base class for all orchestrator errors."""


class ConfigError(OrchestraError, ValueError):
    """Chain/agent configuration is malformed or references something missing."""


class VariableNotFoundError(ConfigError):
    def __init__(self, name: str, context: str) -> None:
        self.name = name
        self.context = context
        super().__init__(
            f"Variable '{name}' referenced in '{context}' but not provided. "
            "Pass it via CLI: VAR_NAME=value"
        )


class PromptFileNotFoundError(ConfigError):
    def __init__(self, path: str, kind: str = "Prompt") -> None:
        self.path = path
        super().__init__(f"{kind} file not found: {path}")


class ChainNotFoundError(ConfigError):
    def __init__(self, name: str, available: list[str]) -> None:
        self.name = name
        self.available = available
        if available:
            hint = f"Available chains: {', '.join(available)}"
        else:
            hint = "No chains defined in configuration"
        super().__init__(f"Chain '{name}' not found in configuration. {hint}")


class DSLParseError(ConfigError):
    """A chain DSL string could not be parsed."""


class BackendError(OrchestraError):
    """A runtime backend could not be resolved or used."""


class BackendNotRegisteredError(BackendError, ValueError):
    def __init__(self, name: str, registered: list[str]) -> None:
        self.name = name
        self.registered = registered
        super().__init__(
            f'Runtime backend "{name}" is not registered. '
            f"Available backends: {', '.join(registered)}"
        )


class BackendNotAvailableError(BackendError):
    def __init__(self, name: str, instructions: str = "") -> None:
        self.name = name
        self.instructions = instructions
        message = f'Runtime backend "{name}" is not available.'
        if instructions:
            message = f"{message}\n\n{instructions}"
        super().__init__(message)
