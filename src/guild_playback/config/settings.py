"""Application Settings and Configuration

Pydantic-based settings management using environment variables.
Settings are loaded from environment variables with support for .env files,
type validation, and sensible defaults. All settings are frozen after
initialization.

Nested groups use ``__`` as the delimiter, e.g. ``DISCORD__TOKEN`` or
``PLAYBACK__DEFAULT_VOLUME``. Lavalink nodes are a JSON list::

    LAVALINK__NODES='[{"identifier": "main", "host": "lavalink", "port": 2333}]'
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..domain.music.entities import AudioNode
from ..domain.shared.messages import ErrorMessages


class DiscordSettings(BaseModel):
    """Discord bot configuration."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    token: SecretStr = Field(
        default=SecretStr(""), validation_alias=AliasChoices("token", "bot_token", "discord_token")
    )
    command_prefix: str = Field(
        default="!",
        min_length=1,
        max_length=5,
        validation_alias=AliasChoices("command_prefix", "prefix"),
    )
    client_name: str = Field(default="guild-playback/0.1", min_length=1)
    embed_color: str = Field(default="#0061ff", pattern=r"^#[0-9a-fA-F]{6}$")


class NodeSettings(BaseModel):
    """One Lavalink server."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    identifier: str = Field(
        default="main", min_length=1, validation_alias=AliasChoices("identifier", "name")
    )
    host: str = Field(default="localhost", min_length=1)
    port: int = Field(default=2333, ge=1, le=65535)
    password: SecretStr = SecretStr("youshallnotpass")
    secure: bool = False

    def to_domain(self) -> AudioNode:
        return AudioNode(
            id=self.identifier,
            host=self.host,
            port=self.port,
            password=self.password,
            secure=self.secure,
        )


class LavalinkSettings(BaseModel):
    """Audio node pool configuration."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    nodes: tuple[NodeSettings, ...] = Field(default_factory=lambda: (NodeSettings(),))
    request_timeout_s: float = Field(default=10.0, gt=0, le=120)
    reconnect_attempts: int = Field(default=5, ge=0, le=100)
    reconnect_base_delay_s: float = Field(default=1.0, gt=0, le=60)
    default_search_platform: str = Field(
        default="ytmsearch",
        pattern=r"^[a-z]+search$",
        validation_alias=AliasChoices("default_search_platform", "search_platform"),
    )

    @field_validator("nodes")
    @classmethod
    def validate_unique_nodes(cls, v: tuple[NodeSettings, ...]) -> tuple[NodeSettings, ...]:
        names = [node.identifier for node in v]
        if len(names) != len(set(names)):
            raise ValueError("Lavalink node identifiers must be unique")
        return v


class PlaybackSettings(BaseModel):
    """Per-guild playback behaviour."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    default_volume: int = Field(default=100, ge=0, le=100)
    max_consecutive_failures: int = Field(default=3, ge=1, le=50)
    max_queue_size: int | None = Field(default=None, ge=1, le=10000)
    auto_destroy_on_queue_end: bool = True
    voice_connect_timeout_s: float = Field(default=10.0, gt=0, le=120)


class Settings(BaseSettings):
    """Application settings container.

    Automatically loads configuration from environment variables.

    Environment variable naming:
    - ENVIRONMENT, DEBUG, LOG_LEVEL (top-level)
    - DISCORD__TOKEN, DISCORD__COMMAND_PREFIX, etc. (nested)
    - LAVALINK__NODES (JSON list), LAVALINK__REQUEST_TIMEOUT_S, etc.
    - PLAYBACK__DEFAULT_VOLUME, PLAYBACK__MAX_CONSECUTIVE_FAILURES, etc.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Literal["development", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    discord: DiscordSettings = Field(default_factory=DiscordSettings)
    lavalink: LavalinkSettings = Field(default_factory=LavalinkSettings)
    playback: PlaybackSettings = Field(default_factory=PlaybackSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(
                ErrorMessages.INVALID_LOG_LEVEL.format(level=v, valid_levels=sorted(valid_levels))
            )
        return v_upper

    def require_runnable(self) -> None:
        """Fail fast on settings that only matter once the bot actually starts."""
        if not self.discord.token.get_secret_value():
            raise ValueError(ErrorMessages.DISCORD_TOKEN_REQUIRED)
        if not self.lavalink.nodes:
            raise ValueError(ErrorMessages.NO_NODES_CONFIGURED)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings.

    Settings are automatically loaded from:
    1. .env file (if present)
    2. Environment variables
    3. Default values
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
