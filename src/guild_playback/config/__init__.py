"""Configuration and dependency wiring."""

from guild_playback.config.container import Container, create_container
from guild_playback.config.settings import Settings, clear_settings_cache, get_settings

__all__ = ["Container", "Settings", "clear_settings_cache", "create_container", "get_settings"]
