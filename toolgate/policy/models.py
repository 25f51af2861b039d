"""Policy models for toolgate.

This module defines the data models for the policy engine including:
- PolicyDecision: The outcome of evaluating a tool call
- PolicyRule: A single rule matching tool names and argument patterns
- PolicyEngineConfig: Initial rules, default decision and interactivity
- ToolCall: The proposed invocation handed in by the agent loop
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PolicyDecision(str, Enum):
    """Decision rendered for a proposed tool call."""

    ALLOW = "allow"  # Execute without confirmation
    DENY = "deny"  # Refuse and report back to the agent
    ASK_USER = "ask_user"  # Require human confirmation first


# -----------------------------------------------------------------------------
# Rule Model
# -----------------------------------------------------------------------------


class PolicyRule(BaseModel):
    """A single policy rule that evaluates tool calls.

    Rules are immutable once built so the engine can hand them out without
    exposing its internal state.

    Attributes:
        tool_name: Exact tool identifier (None = applies to every tool)
        args_pattern: Regex searched in the canonical serialization of the args
        decision: Decision to return when the rule matches
        priority: Rule priority (higher = evaluated first)
        name: Optional label for logs and listings
    """

    model_config = ConfigDict(frozen=True)

    tool_name: str | None = Field(
        default=None,
        description="Exact tool name, or None for a wildcard rule",
    )
    args_pattern: re.Pattern | None = Field(
        default=None,
        description="Regex matched (unanchored) against the canonical args string",
    )
    decision: PolicyDecision = Field(..., description="Decision when rule matches")
    priority: int = Field(default=0, description="Rule priority (higher = first)")
    name: str | None = Field(default=None, description="Optional rule label")

    @field_validator("tool_name")
    @classmethod
    def empty_tool_name_is_wildcard(cls, v: str | None) -> str | None:
        """An empty tool name places no constraint on the call."""
        return v or None

    @property
    def is_wildcard(self) -> bool:
        """Whether this rule applies to every tool name."""
        return self.tool_name is None

    def describe(self) -> str:
        """Short human-readable summary used in logs and the CLI."""
        label = self.name or "<unnamed>"
        tool = self.tool_name or "*"
        pattern = f" args~/{self.args_pattern.pattern}/" if self.args_pattern else ""
        return f"{label}: {tool}{pattern} -> {self.decision.value} (priority {self.priority})"


# -----------------------------------------------------------------------------
# Engine Configuration Model
# -----------------------------------------------------------------------------


class PolicyEngineConfig(BaseModel):
    """Configuration used to build a PolicyEngine.

    Attributes:
        rules: Initial rules, in any order
        default_decision: Decision when no rule matches
        non_interactive: Whether no human is available to answer prompts
    """

    rules: list[PolicyRule] = Field(default_factory=list, description="Policy rules")
    default_decision: PolicyDecision = Field(
        default=PolicyDecision.ASK_USER,
        description="Decision when no rules match",
    )
    non_interactive: bool = Field(
        default=False,
        description="Downgrade ASK_USER to DENY when no human is present",
    )


@dataclass
class ToolCall:
    """A tool invocation proposed by the agent.

    ``args`` is kept exactly as received; it may be any structure,
    including cyclic ones.
    """

    name: str
    args: Any = None


__all__ = [
    "PolicyDecision",
    "PolicyRule",
    "PolicyEngineConfig",
    "ToolCall",
]
