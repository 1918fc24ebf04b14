"""Chain configuration: loading, validation and ${VAR} substitution.

Resolution order for the chains document:
1. a project-local JSON file (default ``forge/orch/chains.json``)
2. stdout of an external resolver command (default ``forge config chains``)
3. None, meaning no configuration was found
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import shlex
from dataclasses import replace
from pathlib import Path

from agentorchestra.errors import ChainNotFoundError, ConfigError, VariableNotFoundError
from agentorchestra.models.agent import BackendName
from agentorchestra.models.chain import AgentConfig, ChainConfig, ChainStep, OrchestraConfig

logger = logging.getLogger(__name__)

DEFAULT_LOCAL_PATH = "forge/orch/chains.json"
DEFAULT_RESOLVER_COMMAND = "forge config chains"

VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")

_VALID_BACKENDS = [b.value for b in BackendName]
_AGENT_STRING_FIELDS = (
    "defaultPrompt",
    "defaultPromptFile",
    "systemPrompt",
    "systemPromptText",
    "mcpConfig",
    "settings",
    "model",
)


async def load_chain_config(
    cwd: str | Path,
    local_path: str = DEFAULT_LOCAL_PATH,
    resolver_command: str | None = DEFAULT_RESOLVER_COMMAND,
) -> OrchestraConfig | None:
    """Load the chains document for cwd, or None if no source provides one.

    A local file that exists but is unreadable, not JSON or structurally
    invalid raises ConfigError. A resolver that cannot be run, exits
    non-zero or prints nothing or non-JSON yields None; a resolver that
    prints JSON which fails schema validation raises ConfigError naming
    the resolver command.
    """
    path = Path(local_path)
    if not path.is_absolute():
        path = Path(cwd) / path

    if path.exists():
        logger.info("Loading chains config from %s", path)
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Failed to read config file at {path}: {e}") from e
        try:
            raw = json.loads(content)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in config file at {path}: {e}") from e
        return parse_orchestra_config(raw, str(path))

    logger.debug("No local config at %s", path)
    if not resolver_command:
        return None

    config = await _load_from_resolver(resolver_command, cwd)
    if config is None:
        logger.info("No chains config found from any source")
    return config


async def _load_from_resolver(command: str, cwd: str | Path) -> OrchestraConfig | None:
    argv = shlex.split(command)
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate()
    except OSError as e:
        logger.debug("Config resolver %r not available: %s", command, e)
        return None

    if proc.returncode != 0:
        logger.debug(
            "Config resolver %r exited with %s: %s",
            command, proc.returncode, stderr.decode(errors="replace").strip(),
        )
        return None

    output = stdout.decode(errors="replace").strip()
    if not output:
        logger.debug("Config resolver %r returned empty output", command)
        return None

    try:
        raw = json.loads(output)
    except json.JSONDecodeError as e:
        logger.debug("Config resolver %r returned invalid JSON: %s", command, e)
        return None

    logger.info("Loaded chains config from %r", command)
    return parse_orchestra_config(raw, command)


def parse_orchestra_config(raw: object, source: str) -> OrchestraConfig:
    """Validate a parsed chains document. Errors name source and offending field."""
    prefix = f"Invalid config schema at {source}:"

    if not isinstance(raw, dict):
        raise ConfigError(f"{prefix} config must be an object")
    if "chains" not in raw:
        raise ConfigError(f"{prefix} missing required 'chains' property")
    if not isinstance(raw["chains"], dict):
        raise ConfigError(f"{prefix} 'chains' must be an object")

    chains = {
        name: _parse_chain(data, name, prefix) for name, data in raw["chains"].items()
    }

    agents: dict[str, AgentConfig] = {}
    agents_raw = raw.get("agents")
    if agents_raw is not None:
        if not isinstance(agents_raw, dict):
            raise ConfigError(f"{prefix} 'agents' must be an object")
        agents = {
            name: _parse_agent(data, name, prefix) for name, data in agents_raw.items()
        }

    return OrchestraConfig(chains=chains, agents=agents)


def _positive_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, int) and value >= 1:
        return value
    return None


def _string_list(value: object, where: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ConfigError(f"{where} must be an array")
    for i, item in enumerate(value):
        if not isinstance(item, str):
            raise ConfigError(f"{where}[{i}] must be a string")
    return tuple(value)


def _optional_string(data: dict, key: str, where: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ConfigError(f"{where} must be a string")
    return value


def _parse_chain(data: object, name: str, prefix: str) -> ChainConfig:
    where = f"{prefix} chain '{name}'"
    if not isinstance(data, dict):
        raise ConfigError(f"{where} must be an object")
    if "steps" not in data:
        raise ConfigError(f"{where} is missing required 'steps' property")
    if not isinstance(data["steps"], list):
        raise ConfigError(f"{where} steps must be an array")

    description = _optional_string(data, "description", f"{where} description")
    prompt = _optional_string(data, "prompt", f"{where} prompt")
    prompt_file = _optional_string(data, "promptFile", f"{where} promptFile")
    steps = tuple(
        _parse_step(step, f"{where} step {i + 1}") for i, step in enumerate(data["steps"])
    )
    return ChainConfig(
        steps=steps, prompt=prompt, prompt_file=prompt_file, description=description
    )


def _parse_step(data: object, where: str) -> ChainStep:
    if not isinstance(data, dict):
        raise ConfigError(f"{where} must be an object")
    if "agent" not in data:
        raise ConfigError(f"{where} is missing required 'agent' property")
    agent = data["agent"]
    if not isinstance(agent, str):
        raise ConfigError(f"{where} 'agent' must be a string")
    if not agent.strip():
        raise ConfigError(f"{where} 'agent' cannot be empty")

    iterations, loop = 1, False
    if data.get("iterations") is not None:
        value = data["iterations"]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"{where} 'iterations' must be a number")
        count = _positive_int(value)
        if count is None:
            raise ConfigError(f"{where} 'iterations' must be a positive integer")
        iterations, loop = count, True

    args: tuple[str, ...] = ()
    if data.get("args") is not None:
        args = _string_list(data["args"], f"{where} 'args'")

    return ChainStep(
        agent=agent,
        iterations=iterations,
        loop=loop,
        args=args,
        prompt=_optional_string(data, "prompt", f"{where} 'prompt'"),
        prompt_file=_optional_string(data, "promptFile", f"{where} 'promptFile'"),
    )


def _parse_agent(data: object, name: str, prefix: str) -> AgentConfig:
    where = f"{prefix} agent '{name}'"
    if not isinstance(data, dict):
        raise ConfigError(f"{where} must be an object")

    for key in _AGENT_STRING_FIELDS:
        _optional_string(data, key, f"{where} {key}")

    doc = dict(data)
    if doc.get("maxTurns") is not None:
        value = doc["maxTurns"]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"{where} maxTurns must be a number")
        turns = _positive_int(value)
        if turns is None:
            raise ConfigError(f"{where} maxTurns must be a positive integer")
        doc["maxTurns"] = turns

    for key in ("allowedTools", "disallowedTools"):
        if doc.get(key) is not None:
            _string_list(doc[key], f"{where} {key}")

    backend = doc.get("backend")
    if backend is not None:
        if not isinstance(backend, str):
            raise ConfigError(f"{where} backend must be a string")
        if backend not in _VALID_BACKENDS:
            raise ConfigError(f"{where} backend must be one of: {', '.join(_VALID_BACKENDS)}")

    return AgentConfig.from_doc(doc)


def get_chain(config: OrchestraConfig, name: str) -> ChainConfig:
    """Look up a named chain; raise ChainNotFoundError listing the alternatives."""
    chain = config.chains.get(name)
    if chain is None:
        raise ChainNotFoundError(name, list(config.chains))
    return chain


def substitute_string(text: str, variables: dict[str, str], context: str) -> str:
    """Replace every ${NAME} in text; an unbound name raises VariableNotFoundError."""

    def _sub(match: re.Match) -> str:
        name = match.group(1)
        if name not in variables:
            raise VariableNotFoundError(name, context)
        return variables[name]

    return VAR_PATTERN.sub(_sub, text)


def substitute_vars(
    steps: tuple[ChainStep, ...] | list[ChainStep], variables: dict[str, str]
) -> tuple[ChainStep, ...]:
    """Substitute variables in each step's args, prompt and prompt_file."""
    result = []
    for step in steps:
        result.append(
            replace(
                step,
                args=tuple(substitute_string(a, variables, step.agent) for a in step.args),
                prompt=(
                    substitute_string(step.prompt, variables, step.agent)
                    if step.prompt else step.prompt
                ),
                prompt_file=(
                    substitute_string(step.prompt_file, variables, step.agent)
                    if step.prompt_file else step.prompt_file
                ),
            )
        )
    return tuple(result)


def substitute_vars_in_chain(chain: ChainConfig, variables: dict[str, str]) -> ChainConfig:
    """Substitute variables in the chain-level prompt fields and in every step."""
    return replace(
        chain,
        prompt=(
            substitute_string(chain.prompt, variables, "chain") if chain.prompt else chain.prompt
        ),
        prompt_file=(
            substitute_string(chain.prompt_file, variables, "chain")
            if chain.prompt_file else chain.prompt_file
        ),
        steps=substitute_vars(chain.steps, variables),
    )
