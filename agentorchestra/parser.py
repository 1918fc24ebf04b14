"""Parser for the inline chain DSL: ``planner:3 -> coder:10 -> reviewer``.

A bare agent name runs once; ``agent:N`` loops up to N iterations.
"""

from __future__ import annotations

import re

from agentorchestra.errors import DSLParseError
from agentorchestra.models.chain import ChainStep

AGENT_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_-]*$")
STEP_SEPARATOR = "->"


def _parse_step(text: str) -> ChainStep:
    text = text.strip()
    if not text:
        raise DSLParseError("Invalid syntax: empty agent name")

    agent, colon, count = text.rpartition(":")
    if not colon:
        agent, iterations, loop = text, 1, False
    else:
        agent, count = agent.strip(), count.strip()
        if not count:
            raise DSLParseError(
                f'Invalid syntax: missing iteration count after colon in "{text}"'
            )
        if not re.fullmatch(r"-?\d+", count):
            raise DSLParseError(
                f'Invalid iteration count "{count}" in "{text}": must be an integer'
            )
        iterations = int(count)
        if iterations <= 0:
            raise DSLParseError(
                f'Invalid iteration count "{iterations}" in "{text}": must be a positive integer'
            )
        loop = True

    if not agent:
        raise DSLParseError("Invalid syntax: empty agent name")
    if not AGENT_NAME_PATTERN.match(agent):
        raise DSLParseError(
            f'Invalid agent name "{agent}": must start with alphanumeric and contain '
            "only alphanumeric characters, hyphens, and underscores"
        )
    return ChainStep(agent=agent, iterations=iterations, loop=loop)


def parse_dsl(dsl: str) -> tuple[ChainStep, ...]:
    """Parse a DSL string into chain steps. Errors are prefixed with the step number."""
    if not dsl.strip():
        raise DSLParseError("Invalid syntax: empty DSL string")

    steps = []
    for index, part in enumerate(dsl.strip().split(STEP_SEPARATOR)):
        try:
            steps.append(_parse_step(part))
        except DSLParseError as e:
            raise DSLParseError(f"Step {index + 1}: {e}") from e
    return tuple(steps)
