"""Guild Playback Coordinator - per-guild audio sessions over Lavalink nodes."""

__version__ = "0.1.0"
