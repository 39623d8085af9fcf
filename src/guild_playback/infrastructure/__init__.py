"""
Infrastructure Layer

Adapters for the Lavalink audio nodes, Discord and in-memory persistence.
"""
