"""Policy engine for toolgate.

The policy module decides, for every tool call an agent wants to run,
whether it is allowed outright, denied, or has to be confirmed by a human.

Key components:
- PolicyEngine: Evaluates tool calls against priority-ordered rules
- PolicyRule: Tool-name and argument-pattern constraints plus a decision
- PolicyDecision: ALLOW, DENY or ASK_USER
- stable_stringify: Canonical argument serialization used for pattern matching

Usage:
    from toolgate.policy import PolicyEngine, ToolCall, load_policy

    engine = PolicyEngine(load_policy())
    decision = engine.check(ToolCall(name="shell", args={"command": "ls"}))

Configuration:
    Policy is loaded from (in order of precedence):
    1. TOOLGATE_POLICY_PATH environment variable
    2. ./toolgate_policy.yaml
    3. ./config/toolgate_policy.yaml
    4. ~/.config/toolgate/policy.yaml
    5. Built-in default policy (no rules, ask the user)

Non-interactive mode (TOOLGATE_NON_INTERACTIVE=1):
    Any ASK_USER outcome is turned into DENY, since there is nobody to ask.
"""

from .engine import PolicyEngine
from .loader import (
    PolicyLoadError,
    apply_settings_overrides,
    get_default_policy,
    load_policy,
    load_policy_from_file,
    save_policy_to_file,
)
from .models import (
    PolicyDecision,
    PolicyEngineConfig,
    PolicyRule,
    ToolCall,
)
from .stable_json import (
    UNDEFINED,
    is_undefined,
    stable_stringify,
)

__all__ = [
    # Engine
    "PolicyEngine",
    # Models
    "PolicyDecision",
    "PolicyRule",
    "PolicyEngineConfig",
    "ToolCall",
    # Serialization
    "UNDEFINED",
    "is_undefined",
    "stable_stringify",
    # Loader
    "PolicyLoadError",
    "load_policy",
    "load_policy_from_file",
    "apply_settings_overrides",
    "get_default_policy",
    "save_policy_to_file",
]
