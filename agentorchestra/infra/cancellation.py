"""Per-chain cancellation token with signal forwarding to the running child."""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class CancellationToken:
    """Latched cancellation flag scoped to one chain invocation.

    The loop controller checks ``cancelled`` between iterations and the
    chain executor checks it between steps. While a child process is
    tracked, cancel() forwards the signal to it so it can shut down on
    its own terms; its remaining output is still drained by the reader.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._signal: signal.Signals | None = None
        self._process: asyncio.subprocess.Process | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def received_signal(self) -> signal.Signals | None:
        return self._signal

    def cancel(self, sig: signal.Signals = signal.SIGTERM) -> None:
        """Latch cancellation and forward sig to the tracked child, if any."""
        self._cancelled = True
        self._signal = sig
        logger.info("Cancellation requested (%s)", sig.name)

        proc = self._process
        if proc is None or proc.returncode is not None:
            return
        try:
            proc.send_signal(sig)
            logger.debug("Forwarded %s to pid %s", sig.name, proc.pid)
        except ProcessLookupError:
            logger.debug("Child %s already exited", proc.pid)

    @contextmanager
    def track(self, process: asyncio.subprocess.Process) -> Iterator[asyncio.subprocess.Process]:
        """Mark process as the current child for the duration of the block."""
        self._process = process
        try:
            yield process
        finally:
            self._process = None

    @contextmanager
    def install_signal_handlers(
        self, signals: tuple[signal.Signals, ...] = DEFAULT_SIGNALS
    ) -> Iterator[CancellationToken]:
        """Route SIGINT/SIGTERM to this token until the block exits.

        Must be entered from inside a running event loop. Platforms without
        loop signal support (Windows, non-main threads) skip installation.
        On exit the handlers are removed, not restored: any handler installed
        earlier on the same loop for these signals is gone afterwards.
        """
        loop = asyncio.get_running_loop()
        installed: list[signal.Signals] = []
        for sig in signals:
            try:
                loop.add_signal_handler(sig, self.cancel, sig)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                logger.debug("Cannot install handler for %s: %s", sig.name, e)
                continue
            installed.append(sig)
        try:
            yield self
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)
