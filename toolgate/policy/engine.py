"""Policy engine for toolgate.

The PolicyEngine decides, for every tool call an agent proposes, whether
it runs without confirmation, is refused, or has to be confirmed by a
human. Rules are evaluated in priority order and the first match wins.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import Any

from .models import PolicyDecision, PolicyEngineConfig, PolicyRule, ToolCall
from .stable_json import UNDEFINED, stable_stringify

logger = logging.getLogger("toolgate.policy")


def _sort_rules(rules: Iterable[PolicyRule]) -> tuple[PolicyRule, ...]:
    """Order rules by descending priority, keeping insertion order on ties."""
    return tuple(sorted(rules, key=lambda r: -r.priority))


class PolicyEngine:
    """Evaluates tool calls against an ordered set of policy rules.

    The engine holds no per-call state: ``check`` is a pure function of the
    current rules, the default decision and the non-interactive flag. The
    rule set is the only mutable part and changes only through
    ``add_rule`` and ``remove_rules_for_tool``.

    The rules live in an immutable tuple that is replaced wholesale on every
    mutation, so a ``check`` running in another thread always sees a
    complete, sorted rule list.

    Usage:
        engine = PolicyEngine(PolicyEngineConfig(rules=[
            PolicyRule(tool_name="shell", args_pattern=r"rm -rf", decision=PolicyDecision.DENY),
            PolicyRule(tool_name="shell", decision=PolicyDecision.ALLOW),
        ]))
        engine.check(ToolCall(name="shell", args={"command": "ls"}))  # ALLOW
    """

    def __init__(self, config: PolicyEngineConfig | None = None):
        """Initialize the policy engine.

        Args:
            config: Engine configuration. If None, no rules and ASK_USER default.
        """
        config = config or PolicyEngineConfig()
        self._rules: tuple[PolicyRule, ...] = _sort_rules(config.rules)
        self._default_decision = config.default_decision
        self._non_interactive = config.non_interactive
        self._write_lock = threading.Lock()
        logger.info(
            f"Policy engine initialized: {len(self._rules)} rules "
            f"(default={self._default_decision.value}, non_interactive={self._non_interactive})"
        )

    @property
    def default_decision(self) -> PolicyDecision:
        return self._default_decision

    @property
    def non_interactive(self) -> bool:
        return self._non_interactive

    def check(self, tool_call: ToolCall) -> PolicyDecision:
        """Check if a tool call is allowed based on the configured policies.

        Args:
            tool_call: The proposed call (anything with ``name`` and ``args``)

        Returns:
            The decision of the first matching rule, or the default decision,
            with ASK_USER downgraded to DENY in non-interactive mode
        """
        rules = self._rules
        # Serialize at most once per call, and only if a pattern rule needs it
        args_string: str | None = None

        for rule in rules:
            if rule.tool_name is not None and rule.tool_name != tool_call.name:
                continue

            if rule.args_pattern is not None:
                if not self._has_args(tool_call):
                    # A pattern constraint is never satisfied by missing args
                    continue
                if args_string is None:
                    args_string = stable_stringify(tool_call.args)
                if not rule.args_pattern.search(args_string):
                    continue

            decision = self._apply_non_interactive_mode(rule.decision)
            logger.debug(
                f"Tool '{tool_call.name}' matched rule "
                f"{rule.name or rule.tool_name or '*'}: {decision.value}"
            )
            return decision

        decision = self._apply_non_interactive_mode(self._default_decision)
        logger.debug(f"Tool '{tool_call.name}' matched no rule, default: {decision.value}")
        return decision

    def add_rule(self, rule: PolicyRule) -> None:
        """Add a new rule, keeping the set ordered by priority.

        Duplicate and overlapping rules are allowed; priority and insertion
        order decide between them at evaluation time.
        """
        with self._write_lock:
            self._rules = _sort_rules((*self._rules, rule))
        logger.info(f"Policy rule added: {rule.describe()}")

    def remove_rules_for_tool(self, tool_name: str) -> None:
        """Remove every rule targeting ``tool_name``.

        Wildcard rules are never removed. Removing a tool that has no rules
        is a no-op.
        """
        with self._write_lock:
            kept = tuple(r for r in self._rules if r.tool_name != tool_name)
            removed = len(self._rules) - len(kept)
            self._rules = kept
        if removed:
            logger.info(f"Removed {removed} policy rule(s) for tool '{tool_name}'")

    def get_rules(self) -> tuple[PolicyRule, ...]:
        """Get all current rules in evaluation order.

        The returned tuple is a snapshot; rules themselves are frozen.
        """
        return self._rules

    # -------------------------------------------------------------------------
    # Internal Methods
    # -------------------------------------------------------------------------

    @staticmethod
    def _has_args(tool_call: Any) -> bool:
        args = getattr(tool_call, "args", None)
        return args is not None and args is not UNDEFINED

    def _apply_non_interactive_mode(self, decision: PolicyDecision) -> PolicyDecision:
        # Nobody is there to answer, so ASK_USER has to fail closed
        if self._non_interactive and decision == PolicyDecision.ASK_USER:
            return PolicyDecision.DENY
        return decision


__all__ = [
    "PolicyEngine",
]
