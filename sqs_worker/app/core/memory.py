"""Process memory reporting for the worker's per-iteration progress events."""
from __future__ import annotations

import math
import resource
import sys

_UNITS = ("b", "kb", "mb", "gb", "tb", "pb")


def format_bytes(size: int) -> str:
    if size <= 0:
        return "0 b"
    exponent = min(int(math.floor(math.log(size, 1024))), len(_UNITS) - 1)
    return f"{round(size / 1024 ** exponent, 2)} {_UNITS[exponent]}"


def peak_memory_bytes() -> int:
    """Peak resident set size of this process. ru_maxrss is bytes on macOS, kilobytes elsewhere."""
    rss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    if sys.platform == "darwin":
        return int(rss)
    return int(rss) * 1024


def peak_memory_usage() -> str:
    """Formatted peak RSS. Not the current usage; the value never decreases."""
    return format_bytes(peak_memory_bytes())
