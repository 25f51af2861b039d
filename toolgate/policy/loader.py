"""Policy loader for toolgate.

Loads policy configuration from YAML files and applies settings overrides.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from ..config.settings import Settings, get_settings
from .models import PolicyDecision, PolicyEngineConfig

logger = logging.getLogger("toolgate.policy")

# Default policy file locations (in order of precedence)
DEFAULT_POLICY_PATHS = [
    "./toolgate_policy.yaml",
    "./config/toolgate_policy.yaml",
    "~/.config/toolgate/policy.yaml",
]


class PolicyLoadError(Exception):
    """Error loading policy configuration."""

    pass


def load_policy_from_file(path: str | Path) -> PolicyEngineConfig:
    """Load policy configuration from a YAML file.

    Args:
        path: Path to the policy YAML file

    Returns:
        PolicyEngineConfig instance

    Raises:
        PolicyLoadError: If the file cannot be loaded or parsed, or a rule
            is invalid (for example a malformed args_pattern)
    """
    path = Path(path).expanduser().resolve()

    if not path.exists():
        raise PolicyLoadError(f"Policy file not found: {path}")

    if not path.is_file():
        raise PolicyLoadError(f"Policy path is not a file: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise PolicyLoadError(f"Invalid YAML in policy file: {e}") from e
    except OSError as e:
        raise PolicyLoadError(f"Cannot read policy file: {e}") from e

    # An empty file is an empty policy
    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise PolicyLoadError("Policy file must contain a YAML mapping")

    try:
        config = PolicyEngineConfig.model_validate(data)
    except ValidationError as e:
        raise PolicyLoadError(f"Invalid policy configuration: {e}") from e

    logger.info(f"Loaded policy from {path}: {len(config.rules)} rules")
    return config


def apply_settings_overrides(config: PolicyEngineConfig, settings: Settings) -> PolicyEngineConfig:
    """Apply settings overrides to a policy config.

    Settings take precedence over the policy file so operators can force
    unattended runs to fail closed regardless of what the file says.

    Supported overrides:
    - TOOLGATE_NON_INTERACTIVE: forces non_interactive on (never off)
    - TOOLGATE_DEFAULT_DECISION: replaces default_decision

    Args:
        config: Base policy configuration
        settings: Process settings

    Returns:
        PolicyEngineConfig with overrides applied
    """
    updates: dict[str, object] = {}

    if settings.non_interactive and not config.non_interactive:
        logger.info("TOOLGATE_NON_INTERACTIVE override: non_interactive -> True")
        updates["non_interactive"] = True

    if settings.default_decision is not None:
        decision = PolicyDecision(settings.default_decision)
        if decision != config.default_decision:
            logger.info(
                f"TOOLGATE_DEFAULT_DECISION override: "
                f"{config.default_decision.value} -> {decision.value}"
            )
            updates["default_decision"] = decision

    if updates:
        config = config.model_copy(update=updates)

    return config


def load_policy(settings: Settings | None = None) -> PolicyEngineConfig:
    """Load policy configuration from default locations.

    Precedence:
    1. TOOLGATE_POLICY_PATH setting
    2. ./toolgate_policy.yaml
    3. ./config/toolgate_policy.yaml
    4. ~/.config/toolgate/policy.yaml
    5. Default policy (built-in)

    An explicitly configured path that fails to load is an error; the
    default locations are skipped with a debug message instead.

    Args:
        settings: Process settings. If None, uses the cached settings.

    Returns:
        PolicyEngineConfig instance

    Raises:
        PolicyLoadError: If TOOLGATE_POLICY_PATH points at an invalid policy
    """
    settings = settings or get_settings()
    config: PolicyEngineConfig | None = None

    if settings.policy_path is not None:
        config = load_policy_from_file(settings.policy_path)

    if config is None:
        for path_str in DEFAULT_POLICY_PATHS:
            path = Path(path_str).expanduser()
            if not path.exists():
                continue
            try:
                config = load_policy_from_file(path)
                break
            except PolicyLoadError as e:
                logger.warning(f"Skipping policy path {path_str}: {e}")
                continue

    if config is None:
        logger.info("No policy file found, using default policy")
        config = get_default_policy()

    return apply_settings_overrides(config, settings)


def get_default_policy() -> PolicyEngineConfig:
    """Get the default policy configuration.

    No rules: every tool call needs a human, and fails closed when there
    is none.

    Returns:
        Default PolicyEngineConfig
    """
    return PolicyEngineConfig(
        rules=[],
        default_decision=PolicyDecision.ASK_USER,
        non_interactive=False,
    )


def save_policy_to_file(config: PolicyEngineConfig, path: str | Path) -> None:
    """Save a policy configuration to a YAML file.

    Patterns are written as their source strings; flags set on a compiled
    pattern are not preserved, use inline flags such as ``(?i)`` instead.

    Args:
        config: Policy configuration to save
        path: Path to save the file

    Raises:
        PolicyLoadError: If the file cannot be written
    """
    path = Path(path).expanduser().resolve()

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        # mode='json' turns enums and patterns into plain strings
        data = config.model_dump(exclude_none=True, mode="json")
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        logger.info(f"Saved policy to {path}")
    except OSError as e:
        raise PolicyLoadError(f"Cannot write policy file: {e}") from e


__all__ = [
    "DEFAULT_POLICY_PATHS",
    "PolicyLoadError",
    "load_policy_from_file",
    "load_policy",
    "apply_settings_overrides",
    "get_default_policy",
    "save_policy_to_file",
]
