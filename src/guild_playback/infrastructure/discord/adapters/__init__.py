from guild_playback.infrastructure.discord.adapters.voice_gateway import (
    DiscordVoiceGateway,
    LavalinkVoiceProtocol,
)

__all__ = ["DiscordVoiceGateway", "LavalinkVoiceProtocol"]
