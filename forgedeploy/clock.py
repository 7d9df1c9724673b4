"""
Injectable time sources (unix seconds)
"""

import time


class SystemClock:
    """Wall clock"""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """Clock that only moves when told to"""

    def __init__(self, start: int = 1_700_000_000):
        self._now = int(start)

    def now(self) -> int:
        return self._now

    def set(self, timestamp: int) -> None:
        self._now = int(timestamp)

    def advance(self, seconds: int) -> int:
        self._now += int(seconds)
        return self._now


_UNITS = (('day', 86_400), ('hour', 3_600), ('minute', 60), ('second', 1))


def format_duration(seconds: int) -> str:
    """Largest whole unit, e.g. 2592000 -> '30 days', 300 -> '5 minutes'"""
    seconds = max(int(seconds), 0)
    for unit, size in _UNITS:
        if seconds >= size:
            count = seconds // size
            return f"{count} {unit}{'s' if count != 1 else ''}"
    return "0 seconds"
