"""CLI handler for inspecting runtime backends."""

from __future__ import annotations

from dataclasses import asdict

import click

from agentorchestra.infra.agents.registry import get_backend, registered_backends
from agentorchestra.services.runtime import install_instructions


@click.command("backends")
@click.option("--verbose", "-v", is_flag=True, help="Show capabilities and install hints")
def backends_command(verbose: bool):
    """List registered runtime backends and whether they are available."""
    for name in registered_backends():
        backend = get_backend(name)
        status = "available" if backend.is_available() else "not available"
        click.echo(f"{name}: {status}")
        if not verbose:
            continue
        caps = asdict(backend.capabilities())
        supported = [k.removeprefix("supports_") for k, v in caps.items() if v]
        click.echo(f"  supports: {', '.join(supported) or 'nothing'}")
        if status == "not available" and (hint := install_instructions(name)):
            for line in hint.splitlines():
                click.echo(f"  {line}")
