"""Configuration settings using Pydantic."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# User-level env file, read before the working directory's .env
CONFIG_ENV_FILE = Path.home() / ".config" / "toolgate" / "toolgate.env"


class Settings(BaseSettings):
    """Process settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=(CONFIG_ENV_FILE, ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Policy
    policy_path: Path | None = Field(
        default=None,
        alias="TOOLGATE_POLICY_PATH",
        description="Path to policy YAML file",
    )
    non_interactive: bool = Field(
        default=False,
        alias="TOOLGATE_NON_INTERACTIVE",
        description="No human available: ASK_USER decisions become DENY",
    )
    default_decision: Literal["allow", "deny", "ask_user"] | None = Field(
        default=None,
        alias="TOOLGATE_DEFAULT_DECISION",
        description="Override the policy file's default decision",
    )

    # Logging
    log_level: str = Field(default="WARNING", alias="TOOLGATE_LOG_LEVEL")


@lru_cache
def get_settings() -> Settings:
    """Get process settings (cached)."""
    return Settings()
