"""Shared fixtures: fake agent executables written as shell scripts."""

from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture
def make_agent(tmp_path):
    """Return a factory that writes an executable /bin/sh script into tmp_path/bin."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()

    def _make(name: str, body: str) -> Path:
        path = bin_dir / name
        path.write_text("#!/bin/sh\n" + body)
        path.chmod(0o755)
        return path

    return _make


@pytest.fixture
def counting_agent(make_agent, tmp_path):
    """Agent that counts its invocations and prints the marker from run N on.

    Usage: counting_agent("name", complete_on=3) -> (path, counter_file)
    """

    def _make(name: str, complete_on: int | None = None, exit_code: int = 0):
        counter = tmp_path / f"{name}.count"
        marker = (
            f'if [ "$n" -ge {complete_on} ]; then echo ORCHESTRA_COMPLETE; fi\n'
            if complete_on is not None
            else ""
        )
        body = (
            f'n=$(cat "{counter}" 2>/dev/null || echo 0)\n'
            "n=$((n+1))\n"
            f'echo "$n" > "{counter}"\n'
            'echo "run $n"\n'
            f"{marker}"
            f"exit {exit_code}\n"
        )
        return make_agent(name, body), counter

    return _make


def read_count(counter: Path) -> int:
    return int(counter.read_text().strip()) if counter.exists() else 0


@pytest.fixture
def count_of():
    return read_count
