from __future__ import annotations

import time
from typing import Callable

from config.defaults import BEHAVIOR_RESET_SECONDS
from config.defaults import BEHAVIOR_TIMEOUT_AFTER_WARNINGS
from config.defaults import BEHAVIOR_TIMEOUT_MAX_MINUTES
from config.defaults import BEHAVIOR_TIMEOUT_STEP_MINUTES
from config.defaults import TONE_COOLDOWN_REPEAT_AFTER_WARNINGS
from config.defaults import TONE_COOLDOWN_REPEAT_SECONDS
from config.defaults import TONE_COOLDOWN_SECONDS
from moderation.models import BehaviorRecord
from moderation.models import PATTERN_CHRONIC
from moderation.models import PATTERN_CLEAN
from moderation.models import PATTERN_FIRST
from moderation.models import PATTERN_REPEAT
from moderation.models import ToneSignal
from moderation.state_store import InMemoryStateStore

BEHAVIOR_NAMESPACE = "behavior"
CALLOUT_NAMESPACE = "tone_callouts"


def tone_cooldown_seconds(warning_count: int) -> float:
    if int(warning_count) >= TONE_COOLDOWN_REPEAT_AFTER_WARNINGS:
        return TONE_COOLDOWN_REPEAT_SECONDS
    return TONE_COOLDOWN_SECONDS


def pattern_for(warning_count: int) -> str:
    if warning_count <= 1:
        return PATTERN_FIRST
    if warning_count <= 3:
        return PATTERN_REPEAT
    return PATTERN_CHRONIC


def escalation_timeout_minutes(warning_count: int, toxicity: str) -> int | None:
    if toxicity != "high" and warning_count < BEHAVIOR_TIMEOUT_AFTER_WARNINGS:
        return None
    return min(int(warning_count) * BEHAVIOR_TIMEOUT_STEP_MINUTES, BEHAVIOR_TIMEOUT_MAX_MINUTES)


class BehaviorTracker:
    """
    Escalating-timeout sub-policy for tone callouts.

    Separate from the strike ledger: it counts callouts (warnings), resets
    after a quiet week, and imposes its own timeouts.
    """

    def __init__(
        self,
        store: InMemoryStateStore,
        *,
        reset_seconds: float = BEHAVIOR_RESET_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.reset_seconds = float(reset_seconds)
        self.clock = clock

    def get(self, user_id: int) -> BehaviorRecord:
        existing = self.store.get(BEHAVIOR_NAMESPACE, int(user_id))
        if existing is None:
            return BehaviorRecord()
        record = BehaviorRecord(
            warning_count=existing.warning_count,
            last_incident_at=existing.last_incident_at,
            timeout_until=existing.timeout_until,
            pattern=existing.pattern,
        )
        if record.last_incident_at is not None and self.clock() - record.last_incident_at > self.reset_seconds:
            record.warning_count = 0
            record.pattern = PATTERN_CLEAN
        return record

    def record_warning(self, user_id: int, tone: ToneSignal) -> tuple[BehaviorRecord, int | None]:
        now = self.clock()
        record = self.get(user_id)
        record.warning_count += 1
        record.last_incident_at = now
        record.pattern = pattern_for(record.warning_count)

        minutes = escalation_timeout_minutes(record.warning_count, tone.toxicity)
        if minutes:
            record.timeout_until = now + minutes * 60
        self.store.set(BEHAVIOR_NAMESPACE, int(user_id), record)
        return record, minutes

    def is_in_timeout(self, user_id: int) -> bool:
        return self.clock() < self.get(user_id).timeout_until

    def last_callout_at(self, user_id: int) -> float | None:
        return self.store.get(CALLOUT_NAMESPACE, int(user_id))

    def mark_callout(self, user_id: int, at: float | None = None) -> None:
        self.store.set(CALLOUT_NAMESPACE, int(user_id), self.clock() if at is None else float(at))
