"""Human-readable duration formatting."""


def format_clock(seconds: float) -> str:
    """Format a file position as ``MM:SS`` or ``H:MM:SS``."""
    hours = int(seconds // 3600)
    mins = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    if hours > 0:
        return f"{hours}:{mins:02d}:{secs:02d}"
    return f"{mins:02d}:{secs:02d}"


def format_short_duration(seconds: float | None) -> str:
    """``2h 15m`` or ``45m``; ``unknown`` when there is no value."""
    if seconds is None:
        return "unknown"
    total_minutes = int(seconds // 60)
    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{total_minutes}m"


def format_scan_time(seconds: float) -> str:
    """Adaptive elapsed-time format: ``45s``, ``1m 23s`` or ``2h 15m``."""
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if total < 60:
        return f"{secs}s"
    if hours == 0:
        return f"{minutes}m {secs}s"
    return f"{hours}h {minutes}m"


def format_book_length(seconds: float) -> str:
    """Audio length format: ``45m 30s`` or ``2h 15m``."""
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m {secs}s"
