"""CLI handlers for config commands."""

from __future__ import annotations

import tomllib
from dataclasses import fields

import click
import tomli_w

from agentorchestra.config import (
    ChainsConfig,
    LoggingConfig,
    RuntimeConfig,
    init_config,
    load_config,
)
from agentorchestra.infra.agents.registry import has_backend, registered_backends

_SECTIONS = {"runtime": RuntimeConfig, "chains": ChainsConfig, "logging": LoggingConfig}


def _valid_keys() -> list[str]:
    return [f"{section}.{f.name}" for section, cls in _SECTIONS.items() for f in fields(cls)]


def _coerce(key: str, value: str) -> str | bool:
    """Convert a command-line value to the type of the config field it sets."""
    section, _, name = key.partition(".")
    cls = _SECTIONS.get(section)
    if cls is None or name not in {f.name for f in fields(cls)}:
        raise click.BadParameter(
            f"Unknown key '{key}'. Valid keys: {', '.join(_valid_keys())}", param_hint="KEY"
        )

    if isinstance(getattr(cls(), name), bool):
        if value.lower() not in ("true", "false"):
            raise click.BadParameter(f"'{key}' must be true or false", param_hint="VALUE")
        return value.lower() == "true"

    if key == "runtime.default_backend" and not has_backend(value):
        raise click.BadParameter(
            f"Unknown backend '{value}'. Available: {', '.join(registered_backends())}",
            param_hint="VALUE",
        )
    return value


@click.group("config")
def config_group():
    """Manage configuration."""
    pass


@config_group.command("init")
@click.pass_context
def config_init(ctx):
    """Create default configuration file."""
    path = init_config(ctx.obj["config"].config_path)
    click.echo(f"Configuration created at: {path}")


@config_group.command("show")
@click.pass_context
def config_show(ctx):
    """Show current configuration."""
    config = load_config(ctx.obj["config"].config_path)
    click.echo(f"Config file: {config.config_path}")
    click.echo(f"  Default backend: {config.runtime.default_backend}")
    click.echo(f"  Backend env var: {config.runtime.backend_env_var}")
    click.echo(f"  Chains file: {config.chains.local_path}")
    click.echo(f"  Chains resolver: {config.chains.resolver_command or '(none)'}")
    click.echo(f"  Debug logging: {'enabled' if config.logging.debug else 'disabled'}")


@config_group.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx, key: str, value: str):
    """Set a configuration value.

    KEY is section.field, e.g. runtime.default_backend, chains.local_path
    or logging.debug. An empty chains.resolver_command disables the resolver.
    """
    path = ctx.obj["config"].config_path
    if not path.exists():
        click.echo("No config file found. Run 'agentorchestra config init' first.", err=True)
        return

    coerced = _coerce(key, value)
    with open(path, "rb") as f:
        data = tomllib.load(f)

    section, _, name = key.partition(".")
    data.setdefault(section, {})[name] = coerced

    with open(path, "wb") as f:
        tomli_w.dump(data, f)

    click.echo(f"Set {key} = {value}")
