"""
Application Layer

Orchestrates domain objects against the audio-node and voice ports:
track resolution, node pooling, per-guild playback and command dispatch.
"""
