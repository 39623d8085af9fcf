"""
Domain Layer

Pure playback state: tracks, queues, sessions, audio nodes, events and errors.
Nothing here talks to the network.
"""
