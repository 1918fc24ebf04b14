"""Click CLI definitions - main entry point."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from agentorchestra.commands.backend_cmd import backends_command
from agentorchestra.commands.config_cmd import config_group
from agentorchestra.commands.run_cmd import run_command
from agentorchestra.config import load_config


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to config.toml",
)
@click.pass_context
def cli(ctx, debug: bool, config_path: Path | None) -> None:
    """agentorchestra - loop and chain agent CLIs until they report completion."""
    config = load_config(config_path)
    level = logging.DEBUG if debug or config.logging.debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["config"] = config


cli.add_command(run_command, "run")
cli.add_command(backends_command, "backends")
cli.add_command(config_group, "config")


if __name__ == "__main__":
    cli()
