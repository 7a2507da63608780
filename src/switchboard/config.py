"""Configuration loading and validation for Switchboard."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator


class ModelProfile(BaseModel):
    """Configuration for an LLM model profile."""

    provider: str
    model: str


class ModelsConfig(BaseModel):
    """Configuration for LLM models and providers."""

    profiles: dict[str, ModelProfile | str]
    providers: dict[str, dict[str, Any]] = Field(default_factory=dict)

    def resolve_profile(self, name: str) -> ModelProfile:
        """Resolve a profile name (may be alias) to actual profile.

        Args:
            name: Profile name to resolve.

        Returns:
            The resolved ModelProfile.

        Raises:
            KeyError: If profile name not found.
            ValueError: If alias chain is circular or too deep.
        """
        seen: set[str] = set()
        current = name

        while True:
            if current in seen:
                raise ValueError(f"Circular alias detected: {current}")
            seen.add(current)

            if len(seen) > 10:
                raise ValueError(f"Alias chain too deep for profile: {name}")

            profile = self.profiles.get(current)
            if profile is None:
                raise KeyError(f"Unknown model profile: {current}")

            if isinstance(profile, str):
                current = profile
            else:
                return profile

    def get_api_key(self, provider: str) -> str | None:
        """Get API key for a provider from environment.

        Args:
            provider: Provider name (e.g., 'anthropic').

        Returns:
            API key from environment, or None if not found.
        """
        provider_config = self.providers.get(provider, {})
        env_var = provider_config.get("api_key_env")
        if env_var:
            return os.environ.get(env_var)
        return None


class DiscordConfig(BaseModel):
    """Discord connection configuration."""

    token_env: str = "DISCORD_BOT_TOKEN"


class DispatchConfig(BaseModel):
    """Event dispatch behavior."""

    default_star_reply: bool = True
    ignore_other_bots: bool = True


class AgentsConfig(BaseModel):
    """Which agents run, and the channels and people they work with."""

    ping_test: bool = True
    moderation: bool = True
    support_redirect: bool = True
    star_reply: bool = True

    support_forum_channel_id: str | None = None
    introduce_yourself_channel_id: str | None = None
    support_team_user_ids: list[str] = Field(default_factory=list)
    model_profile: str = "simple"

    @field_validator(
        "support_forum_channel_id", "introduce_yourself_channel_id", mode="before"
    )
    @classmethod
    def coerce_channel_id(cls, v: Any) -> Any:
        """Snowflakes written unquoted in YAML load as ints."""
        if isinstance(v, int):
            return str(v)
        return v

    @field_validator("support_team_user_ids", mode="before")
    @classmethod
    def coerce_user_ids(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [str(item) for item in v]
        return v

    def selected(self) -> list[str]:
        """Names of the enabled agents, in start order."""
        flags = {
            "ping-test": self.ping_test,
            "moderation": self.moderation,
            "support-redirect": self.support_redirect,
            "star-reply": self.star_reply,
        }
        return [name for name, enabled in flags.items() if enabled]


class HealthConfig(BaseModel):
    """Health check HTTP endpoint."""

    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 5432


class Config(BaseModel):
    """Root configuration for Switchboard."""

    log_level: str = "INFO"
    log_json: bool = True

    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    agents: AgentsConfig = Field(default_factory=AgentsConfig)
    models: ModelsConfig | None = None
    health: HealthConfig = Field(default_factory=HealthConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log_level is valid."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of: {allowed}")
        return v_upper

    @property
    def discord_token(self) -> str | None:
        """Get Discord token from environment."""
        return os.environ.get(self.discord.token_env) or None

    def resolve_model_profile(self, name: str) -> ModelProfile:
        """Resolve a model profile by name.

        Args:
            name: Profile name to resolve.

        Returns:
            The resolved ModelProfile.

        Raises:
            ValueError: If models config is not set or profile not found.
        """
        if self.models is None:
            raise ValueError("Models configuration not set")
        return self.models.resolve_profile(name)

    @classmethod
    def load(cls, config_path: Path | str = Path("config.yaml")) -> "Config":
        """Load configuration from YAML file with env var overlay.

        Args:
            config_path: Path to YAML configuration file.

        Returns:
            Validated Config instance.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            ValueError: If config is invalid.
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}

        return cls.model_validate(apply_env_overrides(yaml_config))

    @classmethod
    def load_or_default(cls, config_path: Path | str | None = None) -> "Config":
        """Load configuration, falling back to defaults if file not found.

        Args:
            config_path: Optional path to YAML configuration file.

        Returns:
            Config instance (from file or defaults).
        """
        if config_path is None:
            for path in [Path("config.yaml"), Path("config.yml")]:
                if path.exists():
                    return cls.load(path)
            return cls.model_validate(apply_env_overrides({}))

        try:
            return cls.load(config_path)
        except FileNotFoundError:
            return cls.model_validate(apply_env_overrides({}))


def apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Overlay environment variables onto raw config data."""
    if "SWITCHBOARD_LOG_LEVEL" in os.environ:
        raw["log_level"] = os.environ["SWITCHBOARD_LOG_LEVEL"]
    if "SWITCHBOARD_LOG_JSON" in os.environ:
        raw["log_json"] = os.environ["SWITCHBOARD_LOG_JSON"].lower() == "true"
    if os.environ.get("SUPPORT_FORUM_CHANNEL_ID"):
        agents = raw.setdefault("agents", {}) or {}
        agents["support_forum_channel_id"] = os.environ["SUPPORT_FORUM_CHANNEL_ID"]
        raw["agents"] = agents
    return raw
