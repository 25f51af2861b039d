"""Tests for the policy engine module."""

import re
import threading

import pytest
from pydantic import ValidationError

from toolgate.policy import (
    UNDEFINED,
    PolicyDecision,
    PolicyEngine,
    PolicyEngineConfig,
    PolicyRule,
    ToolCall,
)


def make_engine(*rules: PolicyRule, **kwargs) -> PolicyEngine:
    return PolicyEngine(PolicyEngineConfig(rules=list(rules), **kwargs))


class TestPolicyRule:
    """Tests for PolicyRule model."""

    def test_defaults(self):
        """Test a rule with only a decision is a priority-0 wildcard."""
        rule = PolicyRule(decision=PolicyDecision.DENY)
        assert rule.tool_name is None
        assert rule.args_pattern is None
        assert rule.priority == 0
        assert rule.is_wildcard is True

    def test_empty_tool_name_is_wildcard(self):
        """Test an empty tool name constrains nothing."""
        rule = PolicyRule(tool_name="", decision=PolicyDecision.DENY)
        assert rule.tool_name is None
        assert rule.is_wildcard is True

        engine = make_engine(rule, default_decision=PolicyDecision.ALLOW)
        assert engine.check(ToolCall(name="shell")) == PolicyDecision.DENY
        engine.remove_rules_for_tool("")
        assert len(engine.get_rules()) == 1

    def test_pattern_string_is_compiled(self):
        """Test a string args_pattern is compiled at construction."""
        rule = PolicyRule(tool_name="shell", args_pattern=r"rm\s+-rf", decision=PolicyDecision.DENY)
        assert isinstance(rule.args_pattern, re.Pattern)
        assert rule.args_pattern.search('{"command":"rm  -rf /"}')

    def test_compiled_pattern_accepted(self):
        """Test a precompiled pattern keeps its flags."""
        pattern = re.compile("secret", re.IGNORECASE)
        rule = PolicyRule(args_pattern=pattern, decision=PolicyDecision.DENY)
        assert rule.args_pattern.search("SECRET")

    def test_invalid_pattern_rejected_at_construction(self):
        """Test malformed regex fails when the rule is built, not at check time."""
        with pytest.raises(ValidationError):
            PolicyRule(tool_name="shell", args_pattern="(unclosed", decision=PolicyDecision.DENY)

    def test_rule_is_frozen(self):
        """Test rules cannot be modified after construction."""
        rule = PolicyRule(tool_name="shell", decision=PolicyDecision.ALLOW)
        with pytest.raises(ValidationError):
            rule.decision = PolicyDecision.DENY

    def test_describe(self):
        """Test human-readable summary."""
        rule = PolicyRule(
            name="block-rm",
            tool_name="shell",
            args_pattern="rm -rf",
            decision=PolicyDecision.DENY,
            priority=5,
        )
        assert rule.describe() == "block-rm: shell args~/rm -rf/ -> deny (priority 5)"
        assert PolicyRule(decision=PolicyDecision.ALLOW).describe() == "<unnamed>: * -> allow (priority 0)"


class TestPolicyEngineInit:
    """Tests for engine construction."""

    def test_default_config(self):
        """Test engine without config asks the user."""
        engine = PolicyEngine()
        assert engine.check(ToolCall(name="test")) == PolicyDecision.ASK_USER
        assert engine.get_rules() == ()
        assert engine.non_interactive is False

    def test_custom_default_decision(self):
        """Test custom default decision is returned when nothing matches."""
        engine = make_engine(default_decision=PolicyDecision.DENY)
        assert engine.check(ToolCall(name="test")) == PolicyDecision.DENY
        assert engine.default_decision == PolicyDecision.DENY

    def test_sorts_rules_by_priority(self):
        """Test rules inserted as [1, 10, 5] come out as [10, 5, 1]."""
        engine = make_engine(
            PolicyRule(tool_name="tool1", decision=PolicyDecision.DENY, priority=1),
            PolicyRule(tool_name="tool2", decision=PolicyDecision.ALLOW, priority=10),
            PolicyRule(tool_name="tool3", decision=PolicyDecision.ASK_USER, priority=5),
        )
        assert [r.priority for r in engine.get_rules()] == [10, 5, 1]

    def test_sort_is_stable_for_equal_priority(self):
        """Test equal-priority rules keep their insertion order."""
        first = PolicyRule(name="first", decision=PolicyDecision.DENY, priority=3)
        second = PolicyRule(name="second", decision=PolicyDecision.ALLOW, priority=3)
        third = PolicyRule(name="third", decision=PolicyDecision.ASK_USER)
        engine = make_engine(third, first, second)
        assert [r.name for r in engine.get_rules()] == ["first", "second", "third"]
        # The earlier of two overlapping equal-priority rules wins
        assert engine.check(ToolCall(name="anything")) == PolicyDecision.DENY

    def test_does_not_reorder_callers_list(self):
        """Test the config's rule list is left untouched."""
        rules = [
            PolicyRule(tool_name="low", decision=PolicyDecision.DENY, priority=1),
            PolicyRule(tool_name="high", decision=PolicyDecision.ALLOW, priority=10),
        ]
        config = PolicyEngineConfig(rules=rules)
        PolicyEngine(config)
        assert [r.tool_name for r in config.rules] == ["low", "high"]


class TestPolicyEngineCheck:
    """Tests for check()."""

    def test_match_tool_by_name(self):
        """Test exact tool name matching."""
        engine = make_engine(
            PolicyRule(tool_name="shell", decision=PolicyDecision.ALLOW),
            PolicyRule(tool_name="edit", decision=PolicyDecision.DENY),
        )
        assert engine.check(ToolCall(name="shell")) == PolicyDecision.ALLOW
        assert engine.check(ToolCall(name="edit")) == PolicyDecision.DENY
        assert engine.check(ToolCall(name="other")) == PolicyDecision.ASK_USER

    def test_tool_name_is_exact_not_prefix(self):
        """Test a rule for 'shell' does not match 'shell_exec'."""
        engine = make_engine(PolicyRule(tool_name="shell", decision=PolicyDecision.ALLOW))
        assert engine.check(ToolCall(name="shell_exec")) == PolicyDecision.ASK_USER

    def test_match_by_args_pattern(self):
        """Test args pattern separates dangerous from safe calls."""
        engine = make_engine(
            PolicyRule(tool_name="shell", args_pattern="rm -rf", decision=PolicyDecision.DENY),
            PolicyRule(tool_name="shell", decision=PolicyDecision.ALLOW),
        )
        assert engine.check(ToolCall(name="shell", args={"command": "rm -rf /"})) == PolicyDecision.DENY
        assert engine.check(ToolCall(name="shell", args={"command": "ls -la"})) == PolicyDecision.ALLOW

    def test_pattern_matches_regardless_of_key_order(self):
        """Test patterns see keys in sorted order whatever the insertion order."""
        engine = make_engine(
            PolicyRule(
                tool_name="shell",
                args_pattern=r'"command":"git push".*"force":true',
                decision=PolicyDecision.DENY,
            ),
            default_decision=PolicyDecision.ALLOW,
        )
        call_a = ToolCall(name="shell", args={"force": True, "command": "git push"})
        call_b = ToolCall(name="shell", args={"command": "git push", "force": True})
        assert engine.check(call_a) == PolicyDecision.DENY
        assert engine.check(call_b) == PolicyDecision.DENY

    def test_pattern_is_unanchored(self):
        """Test patterns use search semantics, not a full match."""
        engine = make_engine(PolicyRule(args_pattern="secret", decision=PolicyDecision.DENY))
        call = ToolCall(name="read", args={"path": "/home/me/secret.txt"})
        assert engine.check(call) == PolicyDecision.DENY

    def test_pattern_fails_closed_without_args(self):
        """Test a pattern rule never matches a call with no args."""
        engine = make_engine(
            PolicyRule(tool_name="read", args_pattern="secret", decision=PolicyDecision.DENY),
            default_decision=PolicyDecision.ALLOW,
        )
        assert engine.check(ToolCall(name="read")) == PolicyDecision.ALLOW
        assert engine.check(ToolCall(name="read", args=None)) == PolicyDecision.ALLOW
        assert engine.check(ToolCall(name="read", args=UNDEFINED)) == PolicyDecision.ALLOW

    def test_empty_args_are_present(self):
        """Test an empty mapping still counts as args and is matched."""
        engine = make_engine(PolicyRule(tool_name="read", args_pattern=r"^\{\}$", decision=PolicyDecision.DENY))
        assert engine.check(ToolCall(name="read", args={})) == PolicyDecision.DENY

    def test_higher_priority_wins(self):
        """Test a priority-10 ALLOW overrides a priority-1 DENY."""
        engine = make_engine(
            PolicyRule(tool_name="shell", decision=PolicyDecision.DENY, priority=1),
            PolicyRule(tool_name="shell", decision=PolicyDecision.ALLOW, priority=10),
        )
        assert engine.check(ToolCall(name="shell")) == PolicyDecision.ALLOW

    def test_wildcard_rules(self):
        """Test a wildcard DENY with a specific high-priority ALLOW exception."""
        engine = make_engine(
            PolicyRule(decision=PolicyDecision.DENY),
            PolicyRule(tool_name="safe-tool", decision=PolicyDecision.ALLOW, priority=10),
        )
        assert engine.check(ToolCall(name="safe-tool")) == PolicyDecision.ALLOW
        assert engine.check(ToolCall(name="anything-else")) == PolicyDecision.DENY

    def test_allow_by_default_with_specific_deny(self):
        """Test the reverse setup: allow everything except a dangerous pattern."""
        engine = make_engine(
            PolicyRule(decision=PolicyDecision.ALLOW),
            PolicyRule(args_pattern=r"/etc/shadow", decision=PolicyDecision.DENY, priority=100),
        )
        assert engine.check(ToolCall(name="read", args={"path": "/etc/shadow"})) == PolicyDecision.DENY
        assert engine.check(ToolCall(name="read", args={"path": "/tmp/x"})) == PolicyDecision.ALLOW

    def test_cyclic_args_do_not_break_check(self):
        """Test self-referencing args are matched against the circular marker."""
        args = {"command": "ls"}
        args["self"] = args
        engine = make_engine(
            PolicyRule(tool_name="shell", args_pattern=r"\[Circular\]", decision=PolicyDecision.DENY),
        )
        assert engine.check(ToolCall(name="shell", args=args)) == PolicyDecision.DENY

    def test_check_does_not_mutate(self):
        """Test check leaves rules untouched."""
        engine = make_engine(PolicyRule(tool_name="shell", decision=PolicyDecision.ALLOW))
        before = engine.get_rules()
        engine.check(ToolCall(name="shell", args={"a": 1}))
        assert engine.get_rules() == before


class TestNonInteractiveMode:
    """Tests for ASK_USER downgrade."""

    def test_ask_user_becomes_deny(self):
        """Test rule and default ASK_USER both resolve to DENY."""
        engine = make_engine(
            PolicyRule(tool_name="interactive-tool", decision=PolicyDecision.ASK_USER),
            PolicyRule(tool_name="allowed-tool", decision=PolicyDecision.ALLOW),
            non_interactive=True,
        )
        assert engine.check(ToolCall(name="interactive-tool")) == PolicyDecision.DENY
        assert engine.check(ToolCall(name="allowed-tool")) == PolicyDecision.ALLOW
        assert engine.check(ToolCall(name="unknown-tool")) == PolicyDecision.DENY

    def test_allow_default_unaffected(self):
        """Test an ALLOW default stays ALLOW."""
        engine = make_engine(default_decision=PolicyDecision.ALLOW, non_interactive=True)
        assert engine.check(ToolCall(name="x")) == PolicyDecision.ALLOW

    def test_interactive_mode_keeps_ask_user(self):
        """Test ASK_USER is returned when a human is available."""
        engine = make_engine(PolicyRule(tool_name="t", decision=PolicyDecision.ASK_USER))
        assert engine.check(ToolCall(name="t")) == PolicyDecision.ASK_USER


class TestAddRule:
    """Tests for add_rule()."""

    def test_maintains_priority_order(self):
        """Test added rules are placed by priority."""
        engine = PolicyEngine()
        engine.add_rule(PolicyRule(tool_name="tool1", decision=PolicyDecision.ALLOW, priority=5))
        engine.add_rule(PolicyRule(tool_name="tool2", decision=PolicyDecision.DENY, priority=10))
        engine.add_rule(PolicyRule(tool_name="tool3", decision=PolicyDecision.ASK_USER, priority=1))

        rules = engine.get_rules()
        assert [r.tool_name for r in rules] == ["tool2", "tool1", "tool3"]

    def test_added_rule_takes_effect(self):
        """Test an 'always allow' rule added at runtime changes the outcome."""
        engine = PolicyEngine()
        assert engine.check(ToolCall(name="edit")) == PolicyDecision.ASK_USER
        engine.add_rule(PolicyRule(tool_name="edit", decision=PolicyDecision.ALLOW))
        assert engine.check(ToolCall(name="edit")) == PolicyDecision.ALLOW

    def test_equal_priority_appended_after_existing(self):
        """Test a new rule goes after existing rules of the same priority."""
        engine = make_engine(PolicyRule(tool_name="shell", decision=PolicyDecision.DENY))
        engine.add_rule(PolicyRule(tool_name="shell", decision=PolicyDecision.ALLOW))
        assert engine.check(ToolCall(name="shell")) == PolicyDecision.DENY

    def test_duplicates_allowed(self):
        """Test identical rules can coexist."""
        rule = PolicyRule(tool_name="shell", decision=PolicyDecision.ALLOW)
        engine = PolicyEngine()
        engine.add_rule(rule)
        engine.add_rule(rule)
        assert len(engine.get_rules()) == 2


class TestRemoveRulesForTool:
    """Tests for remove_rules_for_tool()."""

    def test_removes_all_matching_rules(self):
        """Test every rule for the tool goes, others and wildcards stay."""
        engine = make_engine(
            PolicyRule(tool_name="tool1", decision=PolicyDecision.ALLOW),
            PolicyRule(tool_name="tool1", args_pattern="x", decision=PolicyDecision.DENY, priority=5),
            PolicyRule(tool_name="tool2", decision=PolicyDecision.DENY),
            PolicyRule(decision=PolicyDecision.ASK_USER),
        )
        engine.remove_rules_for_tool("tool1")

        rules = engine.get_rules()
        assert len(rules) == 2
        assert all(r.tool_name != "tool1" for r in rules)
        assert any(r.tool_name == "tool2" for r in rules)
        assert any(r.is_wildcard for r in rules)

    def test_nonexistent_tool_is_noop(self):
        """Test removing an unknown tool changes nothing and does not raise."""
        engine = make_engine(
            PolicyRule(tool_name="tool1", decision=PolicyDecision.ALLOW),
            PolicyRule(decision=PolicyDecision.DENY),
        )
        before = engine.get_rules()
        engine.remove_rules_for_tool("nonexistent")
        assert engine.get_rules() == before

    def test_never_removes_wildcards(self):
        """Test wildcard rules survive removal by any name."""
        engine = make_engine(PolicyRule(decision=PolicyDecision.DENY))
        engine.remove_rules_for_tool("")
        assert len(engine.get_rules()) == 1


class TestGetRules:
    """Tests for get_rules()."""

    def test_returns_immutable_snapshot(self):
        """Test the returned view cannot change engine state."""
        engine = make_engine(PolicyRule(tool_name="shell", decision=PolicyDecision.ALLOW))
        rules = engine.get_rules()
        assert isinstance(rules, tuple)
        with pytest.raises(AttributeError):
            rules.append(PolicyRule(decision=PolicyDecision.DENY))  # type: ignore[attr-defined]

    def test_snapshot_not_affected_by_later_mutation(self):
        """Test a snapshot taken earlier keeps its contents."""
        engine = make_engine(PolicyRule(tool_name="shell", decision=PolicyDecision.ALLOW))
        snapshot = engine.get_rules()
        engine.add_rule(PolicyRule(tool_name="edit", decision=PolicyDecision.DENY))
        assert len(snapshot) == 1
        assert len(engine.get_rules()) == 2


class TestConcurrency:
    """Tests for concurrent mutation and reads."""

    def test_concurrent_add_rule(self):
        """Test parallel add_rule calls lose no rules and stay sorted."""
        engine = PolicyEngine()

        def worker(offset: int):
            for i in range(50):
                engine.add_rule(
                    PolicyRule(tool_name=f"t{offset}-{i}", decision=PolicyDecision.ALLOW, priority=i)
                )
                engine.check(ToolCall(name="t0-0"))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        rules = engine.get_rules()
        assert len(rules) == 200
        priorities = [r.priority for r in rules]
        assert priorities == sorted(priorities, reverse=True)
