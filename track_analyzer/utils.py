"""
Utility functions for track-analyzer.

Small formatting helpers shared by the models and the analysis layer.

Usage:
    from track_analyzer.utils import format_duration
"""


def format_duration(duration_ms: int) -> str:
    """
    Format milliseconds as M:SS (or H:MM:SS past an hour).

    Args:
        duration_ms: Duration in milliseconds. Negative values read as 0.

    Returns:
        Formatted string like "3:05" or "1:02:05".

    Examples:
        format_duration(185000)   # "3:05"
        format_duration(3725000)  # "1:02:05"
    """
    total_seconds = max(0, round(duration_ms / 1000))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)

    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"
