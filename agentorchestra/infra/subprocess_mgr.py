"""Subprocess manager: agent spawning + stdout/stderr multiplexing."""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass

from agentorchestra.constants import BUFFER_KEEP, BUFFER_MAX, COMPLETION_MARKER
from agentorchestra.infra.cancellation import CancellationToken
from agentorchestra.models.agent import CommandSpec, StreamCallbacks

logger = logging.getLogger(__name__)

READ_SIZE = 4096
TERMINATE_GRACE_SECONDS = 5.0


@dataclass
class StreamResult:
    """Result of streaming a subprocess to completion."""

    exit_code: int
    stdout: str
    stderr: str
    completion_marker_found: bool


class MarkerDetector:
    """Watches a text stream for the completion marker.

    Keeps a bounded rolling buffer so a marker split across chunk
    boundaries is still found, without holding the whole output.
    """

    def __init__(
        self,
        marker: str = COMPLETION_MARKER,
        on_detected: Callable[[], None] | None = None,
    ) -> None:
        self.marker = marker
        self.found = False
        self._buffer = ""
        self._on_detected = on_detected

    def feed(self, text: str) -> bool:
        self._buffer += text
        if not self.found and self.marker in self._buffer:
            self.found = True
            logger.debug("Completion marker detected")
            if self._on_detected:
                self._on_detected()
        if len(self._buffer) > BUFFER_MAX:
            self._buffer = self._buffer[-BUFFER_KEEP:]
        return self.found


class SubprocessManager:
    """Spawns agent processes and multiplexes their output."""

    def __init__(self, marker: str = COMPLETION_MARKER, read_size: int = READ_SIZE) -> None:
        self.marker = marker
        self.read_size = read_size

    async def spawn(
        self, command: CommandSpec, interactive: bool = False
    ) -> asyncio.subprocess.Process:
        """Start command. Print-mode children get piped stdout/stderr and no stdin."""
        env = os.environ.copy()
        if command.env:
            env.update(command.env)
            logger.debug("Env overrides: %s", ", ".join(sorted(command.env)))
        logger.debug("Spawning: %s (cwd=%s)", command.full_command, command.cwd or os.getcwd())

        if interactive:
            return await asyncio.create_subprocess_exec(
                command.program,
                *command.args,
                cwd=command.cwd,
                env=env,
            )
        return await asyncio.create_subprocess_exec(
            command.program,
            *command.args,
            cwd=command.cwd,
            env=env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

    async def run_streaming(
        self,
        command: CommandSpec,
        callbacks: StreamCallbacks | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> StreamResult:
        """Spawn command, stream its output and wait for it to exit."""
        proc = await self.spawn(command)
        if cancel_token is None:
            return await self.stream_and_detect(proc, callbacks)
        with cancel_token.track(proc):
            return await self.stream_and_detect(proc, callbacks)

    async def run_interactive(
        self, command: CommandSpec, cancel_token: CancellationToken | None = None
    ) -> int:
        """Spawn command with inherited stdio and return its exit code."""
        proc = await self.spawn(command, interactive=True)
        if cancel_token is None:
            return await proc.wait()
        with cancel_token.track(proc):
            return await proc.wait()

    async def stream_and_detect(
        self,
        process: asyncio.subprocess.Process,
        callbacks: StreamCallbacks | None = None,
    ) -> StreamResult:
        """Read stdout and stderr concurrently until both close and the process exits.

        stdout chunks are forwarded, then scanned for the marker; stderr is
        only forwarded.
        """
        callbacks = callbacks or StreamCallbacks()
        detector = MarkerDetector(self.marker, callbacks.on_marker_detected)
        stdout_parts: list[str] = []
        stderr_parts: list[str] = []

        def on_stdout(text: str) -> None:
            stdout_parts.append(text)
            if callbacks.on_stdout:
                callbacks.on_stdout(text)
            detector.feed(text)

        def on_stderr(text: str) -> None:
            stderr_parts.append(text)
            if callbacks.on_stderr:
                callbacks.on_stderr(text)

        pumps = [
            asyncio.ensure_future(self._pump(process.stdout, on_stdout)),
            asyncio.ensure_future(self._pump(process.stderr, on_stderr)),
        ]
        try:
            await asyncio.gather(*pumps)
            exit_code = await process.wait()
        finally:
            for task in pumps:
                task.cancel()
            await asyncio.gather(*pumps, return_exceptions=True)
            if process.returncode is None:
                await self._terminate(process)
        logger.debug("Process %s exited with %s", process.pid, exit_code)

        return StreamResult(
            exit_code=exit_code,
            stdout="".join(stdout_parts),
            stderr="".join(stderr_parts),
            completion_marker_found=detector.found,
        )

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """Stop a child whose output is no longer being read, then reap it."""
        logger.warning("Terminating pid %s after output streaming failed", process.pid)
        try:
            process.terminate()
        except ProcessLookupError:
            pass
        try:
            await asyncio.wait_for(process.wait(), TERMINATE_GRACE_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("pid %s ignored SIGTERM, killing", process.pid)
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

    async def _pump(
        self, stream: asyncio.StreamReader | None, sink: Callable[[str], None]
    ) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(self.read_size)
            if not chunk:
                break
            text = decoder.decode(chunk)
            if text:
                sink(text)
        tail = decoder.decode(b"", final=True)
        if tail:
            sink(tail)
