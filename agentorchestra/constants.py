"""Shared constants for the orchestrator."""

from __future__ import annotations

# Literal an agent prints on its own stdout line once its work is done.
COMPLETION_MARKER = "ORCHESTRA_COMPLETE"

# Rolling stdout buffer used for marker detection: once it grows past
# BUFFER_MAX characters only the trailing BUFFER_KEEP are retained.
BUFFER_MAX = 2000
BUFFER_KEEP = 1000

# Flags handed to legacy (compiled) agents so they run unattended.
LEGACY_AGENT_FLAGS = ("--print", "--dangerously-skip-permissions")


def detect_completion_marker(text: str) -> bool:
    """Return True if the completion marker appears anywhere in text."""
    return COMPLETION_MARKER in text
