"""Utility functions for formatting Discord messages."""

from __future__ import annotations

from functools import cache


@cache
def format_duration(milliseconds: int | None) -> str:
    if milliseconds is None:
        return "–"

    total_seconds = max(0, int(milliseconds)) // 1000
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    secs = total_seconds % 60

    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def truncate(text: str, limit: int, suffix: str = "…") -> str:
    if len(text) <= limit:
        return text
    return text[: max(0, limit - len(suffix))] + suffix


def progress_bar(position_ms: int, duration_ms: int, width: int = 16) -> str:
    """Render ``▬▬🔘▬▬`` style progress; streams and unknown lengths get an empty bar."""
    if duration_ms <= 0:
        return "▬" * width
    filled = min(width - 1, int(width * position_ms / duration_ms))
    return "▬" * filled + "🔘" + "▬" * (width - filled - 1)
