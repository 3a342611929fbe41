from __future__ import annotations

from config.defaults import STRIKE_TIMEOUT_MINUTES
from moderation.models import ACTION_BAN
from moderation.models import ACTION_KICK
from moderation.models import ACTION_TIMEOUT
from moderation.models import ACTION_WARN
from moderation.models import PolicyDecision

STRIKE_LIMITS = {ACTION_WARN: 1, ACTION_TIMEOUT: 2, ACTION_KICK: 3, ACTION_BAN: 4}


def decide(count: int) -> PolicyDecision:
    """Map a post-increment strike count onto the warn/timeout/kick/ban ladder."""
    count = int(count)
    if count < STRIKE_LIMITS[ACTION_WARN]:
        raise ValueError(f"strike count must be >= 1, got {count}")
    if count == STRIKE_LIMITS[ACTION_WARN]:
        return PolicyDecision(ACTION_WARN)
    if count == STRIKE_LIMITS[ACTION_TIMEOUT]:
        return PolicyDecision(ACTION_TIMEOUT, duration_minutes=STRIKE_TIMEOUT_MINUTES)
    if count == STRIKE_LIMITS[ACTION_KICK]:
        return PolicyDecision(ACTION_KICK)
    return PolicyDecision(ACTION_BAN)
