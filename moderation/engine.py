from __future__ import annotations

from dataclasses import dataclass

from moderation.behavior import tone_cooldown_seconds
from moderation.models import InboundMessage
from moderation.models import ModerationSignal
from moderation.rules import ModerationRules

REASON_HARASSMENT = "Harassment"
REASON_SEVERE = "Severe hate/violence"
REASON_BOT_INSULT = "Insulting the bot"


@dataclass(slots=True)
class StandingSnapshot:
    warning_count: int = 0
    last_callout_at: float | None = None
    in_timeout: bool = False


@dataclass(slots=True)
class Evaluation:
    strike_reason: str | None
    send_callout: bool
    delete_message: bool


def explicit_strike_reason(signal: ModerationSignal) -> str | None:
    categories = signal.categories
    if categories.harassment:
        return REASON_HARASSMENT
    if categories.hate or categories.violence:
        return REASON_SEVERE
    return None


def evaluate_message(
    message: InboundMessage,
    signal: ModerationSignal,
    standing: StandingSnapshot,
    *,
    now: float,
    rules: ModerationRules,
) -> Evaluation:
    """
    Decide what a classified message earns, without touching any state.

    A message records at most one strike; the ladder step is left to the
    strike ledger at enforcement time. Reason precedence: explicit category,
    then hostile tone, then the bot-insult phrase list (which applies whatever
    the classifier said). Tone handling is skipped when an explicit category
    fired or the author is sitting out a behavior timeout; in the latter case
    the message is deleted.
    """
    strike_reason = explicit_strike_reason(signal)
    send_callout = False
    delete_message = False

    if standing.in_timeout:
        delete_message = True
    elif strike_reason is None:
        tone = signal.tone
        if tone.has_issues():
            cooldown = tone_cooldown_seconds(standing.warning_count)
            send_callout = standing.last_callout_at is None or now - standing.last_callout_at >= cooldown
        if tone.is_hostile():
            strike_reason = f"Hostile tone ({tone.toxicity})"

    if strike_reason is None and rules.mentions_bot_insult(message.content):
        strike_reason = REASON_BOT_INSULT

    return Evaluation(strike_reason, send_callout, delete_message)
