"""Application services: resolution, node pooling and per-guild playback."""
