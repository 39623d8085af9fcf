"""
Application Commands

Chat command parsing and dispatch onto the playback service.
"""

from guild_playback.application.commands.dispatcher import (
    Command,
    CommandDispatcher,
    CommandError,
    DispatchResult,
    Feedback,
    FeedbackKind,
)

__all__ = [
    "Command",
    "CommandDispatcher",
    "CommandError",
    "DispatchResult",
    "Feedback",
    "FeedbackKind",
]
