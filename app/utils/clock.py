import time


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
