"""
Application Interfaces (Ports)

Abstract interfaces that define contracts between the application
layer and infrastructure adapters. These are the "ports" in
hexagonal architecture.
"""

from guild_playback.application.interfaces.audio_node import (
    AudioNodeClient,
    LoadResult,
    LoadType,
    NodeRequestError,
    NodeUnavailableError,
)
from guild_playback.application.interfaces.voice_gateway import VoiceConnectionError, VoiceGateway

__all__ = [
    "AudioNodeClient",
    "LoadResult",
    "LoadType",
    "NodeRequestError",
    "NodeUnavailableError",
    "VoiceConnectionError",
    "VoiceGateway",
]
