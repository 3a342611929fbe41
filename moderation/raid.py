from __future__ import annotations

import time
from collections import deque
from typing import Callable

from config.defaults import RAID_JOIN_THRESHOLD
from config.defaults import RAID_WINDOW_SECONDS


class JoinRateTracker:
    """Sliding window of member joins per guild; trips once per burst."""

    def __init__(
        self,
        *,
        threshold: int = RAID_JOIN_THRESHOLD,
        window_seconds: float = RAID_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.threshold = max(1, int(threshold))
        self.window_seconds = float(window_seconds)
        self.clock = clock
        self._joins: dict[int, deque[float]] = {}

    def record_join(self, guild_id: int) -> bool:
        now = self.clock()
        joins = self._joins.setdefault(int(guild_id), deque())
        joins.append(now)
        while joins and now - joins[0] > self.window_seconds:
            joins.popleft()
        if len(joins) < self.threshold:
            return False
        # Start counting the next burst from zero.
        joins.clear()
        return True
