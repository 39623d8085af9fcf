"""Discord cogs - command handlers."""

from guild_playback.infrastructure.discord.cogs.music_cog import MusicCog

__all__ = ["MusicCog"]
