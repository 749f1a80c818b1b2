"""Wall clock helpers (epoch milliseconds)."""

import time
from collections.abc import Callable

Clock = Callable[[], int]


def epoch_ms() -> int:
    """当前时间戳（毫秒）。"""
    return int(time.time() * 1000)
