"""Millisecond wall clock shared by the store and the limiters."""

from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], int]


def system_clock() -> int:
    """Return the current UNIX time in epoch milliseconds."""
    return int(time.time() * 1000)
