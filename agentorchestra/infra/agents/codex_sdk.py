"""Placeholder for a programmatic Codex SDK backend."""

from __future__ import annotations

import logging

from agentorchestra.infra.cancellation import CancellationToken
from agentorchestra.models.agent import (
    BackendName,
    BaseRunOptions,
    Capabilities,
    RunResult,
    StreamCallbacks,
)

logger = logging.getLogger(__name__)

NOT_IMPLEMENTED_MESSAGE = "codex-sdk backend is not implemented yet. Use codex-cli instead."

CODEX_SDK_CAPABILITIES = Capabilities(
    supports_mcp=False,
    supports_tools=False,
    supports_model=True,
    supports_max_turns=True,
    supports_interactive=False,
    supports_streaming=False,
    supports_system_prompt=True,
)


class CodexSdkBackend:
    """Reserved backend name. Never available; every run fails with exit code 1."""

    name = BackendName.CODEX_SDK.value

    def is_available(self) -> bool:
        return False

    def capabilities(self) -> Capabilities:
        return CODEX_SDK_CAPABILITIES

    def _not_implemented(self) -> RunResult:
        logger.error(NOT_IMPLEMENTED_MESSAGE)
        return RunResult(exit_code=1, stdout="", stderr=NOT_IMPLEMENTED_MESSAGE)

    async def run(
        self, options: BaseRunOptions, cancel_token: CancellationToken | None = None
    ) -> RunResult:
        return self._not_implemented()

    async def run_streaming(
        self,
        options: BaseRunOptions,
        callbacks: StreamCallbacks | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> RunResult:
        if callbacks and callbacks.on_stderr:
            callbacks.on_stderr(NOT_IMPLEMENTED_MESSAGE + "\n")
        return self._not_implemented()

    async def run_interactive(
        self, options: BaseRunOptions, cancel_token: CancellationToken | None = None
    ) -> RunResult:
        return self._not_implemented()
