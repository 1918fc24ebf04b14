"""Tests for the chain DSL parser."""

import pytest

from agentorchestra.errors import ConfigError, DSLParseError
from agentorchestra.models.chain import ChainStep
from agentorchestra.parser import parse_dsl


class TestParseDsl:
    def test_single_agent_runs_once(self):
        assert parse_dsl("planner") == (ChainStep(agent="planner"),)

    def test_iterations_enable_loop(self):
        (step,) = parse_dsl("coder:10")
        assert step.agent == "coder"
        assert step.iterations == 10
        assert step.loop is True

    def test_explicit_one_still_loops(self):
        (step,) = parse_dsl("coder:1")
        assert step.iterations == 1
        assert step.loop is True

    def test_chain_with_whitespace(self):
        steps = parse_dsl("  task-manager:3 ->task_coordinator:10 ->  reviewer ")
        assert [s.agent for s in steps] == ["task-manager", "task_coordinator", "reviewer"]
        assert [s.iterations for s in steps] == [3, 10, 1]
        assert [s.loop for s in steps] == [True, True, False]

    def test_empty_string(self):
        with pytest.raises(DSLParseError, match="empty DSL string"):
            parse_dsl("   ")

    def test_empty_step_is_numbered(self):
        with pytest.raises(DSLParseError, match="^Step 2: Invalid syntax: empty agent name"):
            parse_dsl("a -> -> b")

    def test_missing_count(self):
        with pytest.raises(DSLParseError, match="Step 1: .*missing iteration count"):
            parse_dsl("a:")

    @pytest.mark.parametrize("count", ["0", "-2"])
    def test_non_positive_count(self, count):
        with pytest.raises(DSLParseError, match="must be a positive integer"):
            parse_dsl(f"a:{count}")

    @pytest.mark.parametrize("count", ["x", "1.5", "3abc"])
    def test_non_integer_count(self, count):
        with pytest.raises(DSLParseError, match="must be an integer"):
            parse_dsl(f"a:{count}")

    def test_invalid_agent_name(self):
        with pytest.raises(DSLParseError, match='Invalid agent name "-bad"'):
            parse_dsl("-bad")

    def test_missing_agent_before_colon(self):
        with pytest.raises(DSLParseError, match="empty agent name"):
            parse_dsl(":3")

    def test_is_config_error(self):
        with pytest.raises(ConfigError):
            parse_dsl("a:0")
