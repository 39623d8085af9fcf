"""Lavalink v4 audio node adapter."""

from guild_playback.infrastructure.lavalink.client import LavalinkNodeClient

__all__ = ["LavalinkNodeClient"]
