"""Summary formatting utilities for consistent terminal output.

Design principles:
- Durations read like "1m 4.2s", never raw milliseconds
"""

from __future__ import annotations

_MS_PER_SECOND = 1000
_MS_PER_MINUTE = 60 * _MS_PER_SECOND
_MS_PER_HOUR = 60 * _MS_PER_MINUTE
_MS_PER_DAY = 24 * _MS_PER_HOUR


def format_duration(milliseconds: float) -> str:
    """Format a duration in milliseconds as a compact human readable string.

    Examples:
        0 -> 0ms
        850 -> 850ms
        1500 -> 1.5s
        61500 -> 1m 1.5s
        3723000 -> 1h 2m 3s
    """
    if milliseconds < 0:
        milliseconds = 0
    if milliseconds < _MS_PER_SECOND:
        return f"{round(milliseconds)}ms"

    remaining = float(milliseconds)
    parts: list[str] = []
    for unit, size in (("d", _MS_PER_DAY), ("h", _MS_PER_HOUR), ("m", _MS_PER_MINUTE)):
        count = int(remaining // size)
        if count:
            parts.append(f"{count}{unit}")
            remaining -= count * size

    seconds = round(remaining / _MS_PER_SECOND, 1)
    if seconds:
        text = f"{seconds:.1f}".rstrip("0").rstrip(".")
        parts.append(f"{text}s")

    return " ".join(parts)
