"""Time window helpers shared by the rate limiter, memory and pagination."""
import math
import time
from datetime import datetime
from typing import Callable, Iterable, List, Optional

Clock = Callable[[], float]

MINUTE = 60.0
HOUR = 60 * MINUTE
DAY = 24 * HOUR


def system_clock() -> float:
    return time.time()


def in_window(timestamps: Iterable[float], window: float, now: float) -> List[float]:
    """Return the timestamps younger than ``window``.

    A timestamp exactly ``window`` seconds old is already expired.
    """
    return [ts for ts in timestamps if now - ts < window]


def oldest_in_window(timestamps: Iterable[float], window: float, now: float) -> Optional[float]:
    recent = in_window(timestamps, window, now)
    return min(recent) if recent else None


def seconds_until_expiry(oldest: float, window: float, now: float) -> int:
    return max(math.ceil(oldest + window - now), 0)


def next_reset(last_reset: float, period: float = DAY) -> datetime:
    return datetime.fromtimestamp(last_reset + period)
