"""Agent runtime backend factory/registry."""

from __future__ import annotations

from collections.abc import Callable

from agentorchestra.errors import BackendNotRegisteredError
from agentorchestra.infra.agents.base import AgentBackend
from agentorchestra.infra.agents.claude_cli import ClaudeCliBackend
from agentorchestra.infra.agents.codex_cli import CodexCliBackend
from agentorchestra.infra.agents.codex_sdk import CodexSdkBackend
from agentorchestra.models.agent import BackendName

BackendFactory = Callable[[], AgentBackend]

_BACKENDS: dict[str, BackendFactory] = {
    BackendName.CLAUDE_CLI.value: ClaudeCliBackend,
    BackendName.CODEX_CLI.value: CodexCliBackend,
    BackendName.CODEX_SDK.value: CodexSdkBackend,
}


def register_backend(name: BackendName | str, factory: BackendFactory) -> None:
    """Register (or replace) the factory for a backend name."""
    _BACKENDS[_key(name)] = factory


def unregister_backend(name: BackendName | str) -> None:
    _BACKENDS.pop(_key(name), None)


def has_backend(name: BackendName | str) -> bool:
    return _key(name) in _BACKENDS


def registered_backends() -> list[str]:
    return list(_BACKENDS)


def get_backend(name: BackendName | str) -> AgentBackend:
    """Get a fresh backend instance by name.

    Raises BackendNotRegisteredError listing every registered name.
    """
    key = _key(name)
    factory = _BACKENDS.get(key)
    if factory is None:
        raise BackendNotRegisteredError(key, registered_backends())
    return factory()


def _key(name: BackendName | str) -> str:
    return name.value if isinstance(name, BackendName) else name
