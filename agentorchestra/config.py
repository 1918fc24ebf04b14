"""Configuration loading: TOML file + environment variable overlay."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "agentorchestra"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.toml"

DEFAULT_CONFIG_TOML = """\
[runtime]
default_backend = "claude-cli"
backend_env_var = "ORCHESTRA_BACKEND"

[chains]
local_path = "forge/orch/chains.json"
resolver_command = "forge config chains"

[logging]
debug = false
"""


@dataclass
class RuntimeConfig:
    default_backend: str = "claude-cli"
    backend_env_var: str = "ORCHESTRA_BACKEND"


@dataclass
class ChainsConfig:
    local_path: str = "forge/orch/chains.json"
    resolver_command: str = "forge config chains"


@dataclass
class LoggingConfig:
    debug: bool = False


@dataclass
class AppConfig:
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    chains: ChainsConfig = field(default_factory=ChainsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    config_path: Path = DEFAULT_CONFIG_PATH


def debug_from_env(environ: dict[str, str] | None = None) -> bool:
    """Debug logging is on for ORCHESTRA_DEBUG=1 or DEBUG containing 'orchestra'."""
    env = os.environ if environ is None else environ
    if env.get("ORCHESTRA_DEBUG") == "1":
        return True
    return "orchestra" in env.get("DEBUG", "")


def _env_overlay(config: AppConfig) -> None:
    """Override config values with environment variables where applicable."""
    if debug_from_env():
        config.logging.debug = True
    if path := os.environ.get("ORCHESTRA_CHAINS_PATH"):
        config.chains.local_path = path


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration from TOML file with env var overlay."""
    path = config_path or DEFAULT_CONFIG_PATH

    if path.exists():
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    else:
        raw = tomllib.loads(DEFAULT_CONFIG_TOML)

    runtime_raw = raw.get("runtime", {})
    chains_raw = raw.get("chains", {})
    logging_raw = raw.get("logging", {})

    config = AppConfig(
        runtime=RuntimeConfig(
            default_backend=runtime_raw.get("default_backend", "claude-cli"),
            backend_env_var=runtime_raw.get("backend_env_var", "ORCHESTRA_BACKEND"),
        ),
        chains=ChainsConfig(
            local_path=chains_raw.get("local_path", "forge/orch/chains.json"),
            resolver_command=chains_raw.get("resolver_command", "forge config chains"),
        ),
        logging=LoggingConfig(
            debug=logging_raw.get("debug", False),
        ),
        config_path=path,
    )

    _env_overlay(config)
    return config


def init_config(config_path: Path | None = None) -> Path:
    """Create default config file."""
    path = config_path or DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG_TOML)
    return path
