"""Claude Code CLI runtime backend."""

from __future__ import annotations

import logging
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace

from agentorchestra.infra.agents.base import CliBackend
from agentorchestra.models.agent import (
    BackendName,
    BaseRunOptions,
    Capabilities,
    CommandSpec,
    RunMode,
)

logger = logging.getLogger(__name__)

CLAUDE_CAPABILITIES = Capabilities(
    supports_mcp=True,
    supports_tools=True,
    supports_model=True,
    supports_max_turns=True,
    supports_interactive=True,
    supports_streaming=True,
    supports_system_prompt=True,
)


class ClaudeCliBackend(CliBackend):
    """Backend for the Claude Code CLI.

    Generates commands like:
        claude --print [--dangerously-skip-permissions] [--append-system-prompt S]
               [--model M] [--max-turns N] [--allowedTools a,b] ... -- PROMPT
        claude [same flags without --print] -- PROMPT
    """

    name = BackendName.CLAUDE_CLI.value
    program = "claude"
    path_env_var = "CLAUDE_PATH"

    def capabilities(self) -> Capabilities:
        return CLAUDE_CAPABILITIES

    def build_command(self, options: BaseRunOptions) -> CommandSpec:
        args: list[str] = []

        if options.mode is RunMode.PRINT:
            args.append("--print")

        if options.skip_permissions:
            args.append("--dangerously-skip-permissions")

        if options.system_prompt:
            args.extend(["--append-system-prompt", options.system_prompt])

        if options.model:
            args.extend(["--model", options.model])

        if options.max_turns is not None:
            args.extend(["--max-turns", str(options.max_turns)])

        if options.tools.allowed:
            args.extend(["--allowedTools", ",".join(options.tools.allowed)])

        if options.tools.disallowed:
            args.extend(["--disallowedTools", ",".join(options.tools.disallowed)])

        if options.settings:
            args.extend(["--settings", options.settings])

        if options.mcp_config:
            args.extend(["--mcp-config", options.mcp_config])

        args.extend(options.raw_args)

        # "--" keeps a prompt starting with "-" from being read as a flag
        if options.prompt:
            args.extend(["--", options.prompt])

        env = dict(options.env) if options.env else None

        return CommandSpec(
            program=self.executable(),
            args=tuple(args),
            env=env,
            cwd=options.cwd or None,
        )

    @contextmanager
    def prepared_command(self, options: BaseRunOptions) -> Iterator[CommandSpec]:
        """Run claude with a private TMPDIR, removed once the process is done.

        Claude's file watcher trips over sockets left in a shared temp dir.
        """
        with tempfile.TemporaryDirectory(
            prefix="claude-runtime-", ignore_cleanup_errors=True
        ) as tmp_dir:
            command = self.build_command(options)
            env = {**(command.env or {}), "TMPDIR": tmp_dir}
            logger.debug("Using clean TMPDIR %s", tmp_dir)
            yield replace(command, env=env)
