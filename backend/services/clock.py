"""
Time source injected into caches, governors and the rebuild scheduler.
"""

import time
from datetime import datetime, timezone


class SystemClock:
    """Wall clock returning epoch seconds."""

    def now(self) -> float:
        return time.time()


def utc_day(timestamp: float) -> str:
    """Calendar day (UTC) of an epoch timestamp as ``YYYY-MM-DD``."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d")
