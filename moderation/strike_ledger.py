from __future__ import annotations

import time
from typing import Callable

from config.defaults import STRIKE_DECAY_SECONDS
from moderation.models import StrikeRecord
from moderation.state_store import InMemoryStateStore

STRIKES_NAMESPACE = "strikes"


class StrikeLedger:
    """Per-user strike counter. Decay is lazy: checked on every read."""

    def __init__(
        self,
        store: InMemoryStateStore,
        *,
        decay_seconds: float = STRIKE_DECAY_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.decay_seconds = float(decay_seconds)
        self.clock = clock

    def _record(self, user_id: int) -> StrikeRecord | None:
        return self.store.get(STRIKES_NAMESPACE, int(user_id))

    def get_count(self, user_id: int) -> int:
        record = self._record(user_id)
        if record is None:
            return 0
        if record.last_strike_at is not None and self.clock() - record.last_strike_at > self.decay_seconds:
            if record.count:
                self.store.set(STRIKES_NAMESPACE, int(user_id), StrikeRecord(0, record.last_strike_at))
            return 0
        return int(record.count)

    def record_strike(self, user_id: int) -> int:
        count = self.get_count(user_id) + 1
        self.store.set(STRIKES_NAMESPACE, int(user_id), StrikeRecord(count, self.clock()))
        return count

    def forgive(self, user_id: int) -> None:
        # last_strike_at is left alone; the next record_strike restarts the clock.
        record = self._record(user_id)
        if record is None:
            return
        self.store.set(STRIKES_NAMESPACE, int(user_id), StrikeRecord(0, record.last_strike_at))
