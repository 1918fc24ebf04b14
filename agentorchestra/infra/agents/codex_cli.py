"""OpenAI Codex CLI runtime backend."""

from __future__ import annotations

import logging

from agentorchestra.infra.agents.base import CliBackend
from agentorchestra.models.agent import (
    BackendName,
    BaseRunOptions,
    Capabilities,
    CommandSpec,
    RunMode,
)

logger = logging.getLogger(__name__)

CODEX_CAPABILITIES = Capabilities(
    supports_mcp=False,
    supports_tools=False,
    supports_model=True,
    supports_max_turns=False,
    supports_interactive=True,
    supports_streaming=True,
    supports_system_prompt=False,
)

SYSTEM_PROMPT_SEPARATOR = "\n\n---\n\n"


class CodexCliBackend(CliBackend):
    """Backend for the Codex CLI.

    Generates commands like:
        codex exec [--model M] [raw args] PROMPT
        codex [--model M] [raw args] PROMPT

    Codex has no system prompt flag, so the system prompt is folded into
    the user prompt.
    """

    name = BackendName.CODEX_CLI.value
    program = "codex"
    path_env_var = "CODEX_PATH"

    def capabilities(self) -> Capabilities:
        return CODEX_CAPABILITIES

    def unsupported_options(self, options: BaseRunOptions) -> list[str]:
        mismatches = super().unsupported_options(options)
        if options.settings:
            mismatches.append("settings: Settings files not supported")
        if options.skip_permissions:
            mismatches.append("skip_permissions: Permission bypass not supported")
        return mismatches

    @staticmethod
    def build_prompt(options: BaseRunOptions) -> str:
        prompt = options.prompt or ""
        if options.system_prompt:
            return f"{options.system_prompt}{SYSTEM_PROMPT_SEPARATOR}{prompt}"
        return prompt

    def build_command(self, options: BaseRunOptions) -> CommandSpec:
        args: list[str] = []

        if options.mode is RunMode.PRINT:
            args.append("exec")

        if options.model:
            args.extend(["--model", options.model])

        args.extend(options.raw_args)

        prompt = self.build_prompt(options)
        if prompt:
            args.append(prompt)

        env = dict(options.env) if options.env else None

        return CommandSpec(
            program=self.executable(),
            args=tuple(args),
            env=env,
            cwd=options.cwd or None,
        )
