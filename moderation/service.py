from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from config.defaults import COMMUNITY_VOTE_THRESHOLD
from config.defaults import DEFAULT_EXTERNAL_TIMEOUT_SECONDS
from config.defaults import DEFAULT_STATE_MAX_KEYS
from moderation.behavior import BEHAVIOR_NAMESPACE
from moderation.behavior import BehaviorTracker
from moderation.behavior import CALLOUT_NAMESPACE
from moderation.classifier import ContentClassifier
from moderation.engine import StandingSnapshot
from moderation.engine import evaluate_message
from moderation.models import ACTION_BAN
from moderation.models import ACTION_DELETE
from moderation.models import ACTION_KICK
from moderation.models import ACTION_NONE
from moderation.models import ACTION_TIMEOUT
from moderation.models import ACTION_WARN
from moderation.models import BehaviorRecord
from moderation.models import HistoryEntry
from moderation.models import InboundMessage
from moderation.models import IncidentLogEntry
from moderation.models import ModerationSignal
from moderation.models import PolicyDecision
from moderation.models import most_severe_action
from moderation.policy import decide
from moderation.rules import ModerationRules
from moderation.spam import CHANNEL_HISTORY_NAMESPACE
from moderation.spam import ChannelHistory
from moderation.spam import SpamVerdict
from moderation.spam import detect_spam
from moderation.state_store import InMemoryStateStore
from moderation.strike_ledger import STRIKES_NAMESPACE
from moderation.strike_ledger import StrikeLedger

DISABLED_GUILDS_NAMESPACE = "disabled_guilds"
SHADOWBAN_NAMESPACE = "shadowban"
COMMUNITY_VOTES_NAMESPACE = "community_votes"

REASON_SHADOWBANNED = "Shadowbanned"
REASON_COMMUNITY_VOTE = "Community voted \U0001F6AB"
REASON_IMAGE = "Image posted"

# Keyed by user, channel or message id; owner-managed gates stay unbounded.
BOUNDED_NAMESPACES = (
    STRIKES_NAMESPACE,
    BEHAVIOR_NAMESPACE,
    CALLOUT_NAMESPACE,
    CHANNEL_HISTORY_NAMESPACE,
    COMMUNITY_VOTES_NAMESPACE,
)

IncidentAppender = Callable[[dict[str, Any]], Awaitable[Any]]


def build_state_store(max_keys: int = DEFAULT_STATE_MAX_KEYS) -> InMemoryStateStore:
    return InMemoryStateStore(capacities={ns: int(max_keys) for ns in BOUNDED_NAMESPACES})


@dataclass(slots=True)
class ModerationOutcome:
    action_taken: str = ACTION_NONE
    reason: str | None = None
    deleted: bool = False
    strike_count: int | None = None
    spam_kind: str | None = None
    action_error: str | None = None
    skipped: str | None = None


class ModerationService:
    """
    Per-message moderation pipeline.

    Gates (disabled guild, shadowban) -> spam heuristics -> explicit and tone
    classification -> evaluation -> side effects -> exactly one incident row.
    All per-user state lives in the injected state store.
    """

    def __init__(
        self,
        *,
        store: InMemoryStateStore,
        classifier: ContentClassifier,
        actions,
        rules: ModerationRules,
        append_incident: IncidentAppender,
        ledger: StrikeLedger | None = None,
        behavior: BehaviorTracker | None = None,
        history: ChannelHistory | None = None,
        clock: Callable[[], float] = time.time,
        timeout_seconds: float = DEFAULT_EXTERNAL_TIMEOUT_SECONDS,
        vote_threshold: int = COMMUNITY_VOTE_THRESHOLD,
    ) -> None:
        self.store = store
        self.classifier = classifier
        self.actions = actions
        self.rules = rules
        self.append_incident = append_incident
        self.clock = clock
        self.ledger = ledger or StrikeLedger(store, clock=clock)
        self.behavior = behavior or BehaviorTracker(store, clock=clock)
        self.history = history or ChannelHistory(store)
        self.timeout_seconds = float(timeout_seconds)
        self.vote_threshold = max(1, int(vote_threshold))

    # ---- owner overrides ----

    def is_disabled(self, guild_id: int | None) -> bool:
        return guild_id is not None and self.store.contains(DISABLED_GUILDS_NAMESPACE, int(guild_id))

    def set_disabled(self, guild_id: int, disabled: bool) -> None:
        if disabled:
            self.store.set(DISABLED_GUILDS_NAMESPACE, int(guild_id), True)
        else:
            self.store.delete(DISABLED_GUILDS_NAMESPACE, int(guild_id))

    def is_shadowbanned(self, user_id: int) -> bool:
        return self.store.contains(SHADOWBAN_NAMESPACE, int(user_id))

    def set_shadowbanned(self, user_id: int, banned: bool) -> None:
        if banned:
            self.store.set(SHADOWBAN_NAMESPACE, int(user_id), True)
        else:
            self.store.delete(SHADOWBAN_NAMESPACE, int(user_id))

    def forgive(self, user_id: int) -> None:
        self.ledger.forgive(user_id)

    def standing_for(self, user_id: int) -> tuple[int, BehaviorRecord]:
        return self.ledger.get_count(user_id), self.behavior.get(user_id)

    # ---- pipeline ----

    async def handle_message(self, message: InboundMessage) -> ModerationOutcome:
        if self.is_disabled(message.guild_id):
            return ModerationOutcome(skipped="disabled")

        now = self.clock()
        uid = message.author_id
        if self.is_shadowbanned(uid):
            await self.actions.delete(message)
            await self._append(
                IncidentLogEntry.for_message(message, action_taken=ACTION_DELETE, reason=REASON_SHADOWBANNED, now=now)
            )
            return ModerationOutcome(action_taken=ACTION_DELETE, reason=REASON_SHADOWBANNED, deleted=True)

        self.history.push(message.channel_id, HistoryEntry(uid, message.content, now))
        verdict = detect_spam(message.content, self.history.user_entries(message.channel_id, uid), now)
        if verdict is not None:
            return await self._handle_spam(message, verdict, now)

        categories, tone = await asyncio.gather(
            self.classifier.classify_explicit(message.content),
            self.classifier.classify_tone(message.content),
        )
        signal = ModerationSignal(categories=categories, tone=tone)
        behavior = self.behavior.get(uid)
        standing = StandingSnapshot(
            warning_count=behavior.warning_count,
            last_callout_at=self.behavior.last_callout_at(uid),
            in_timeout=self.behavior.is_in_timeout(uid),
        )
        evaluation = evaluate_message(message, signal, standing, now=now, rules=self.rules)

        errors: list[str] = []
        behavior_timeout = False
        if evaluation.send_callout:
            self.behavior.mark_callout(uid, now)
            callout = await self.classifier.compose_callout(message.content, tone, behavior)
            self._collect(errors, await self.actions.reply(message, callout))
            _record, minutes = self.behavior.record_warning(uid, tone)
            if minutes:
                outcome = await self.actions.timeout(message, minutes, "Escalating behavioral issues")
                self._collect(errors, outcome)
                if outcome.ok:
                    behavior_timeout = True
                    await self.actions.reply(message, f"\U0001F550 Taking a {minutes}-minute break to cool down.")

        decision: PolicyDecision | None = None
        strike_count: int | None = None
        if evaluation.strike_reason is not None:
            strike_count = self.ledger.record_strike(uid)
            decision = decide(strike_count)
            error = await self._enforce(message, decision, evaluation.strike_reason)
            if error:
                errors.append(error)

        deleted = False
        if evaluation.delete_message:
            deleted = (await self.actions.delete(message)).ok

        action_taken = most_severe_action(
            decision.action if decision is not None else None,
            ACTION_TIMEOUT if behavior_timeout else None,
            ACTION_DELETE if deleted else None,
        )
        action_error = "; ".join(errors) or None
        await self._append(
            IncidentLogEntry.for_message(
                message,
                signal,
                action_taken=action_taken,
                reason=evaluation.strike_reason,
                action_error=action_error,
                deleted_count=1 if deleted else 0,
                now=now,
            )
        )

        for attachment in message.image_attachments():
            await self.actions.log_evidence(message, REASON_IMAGE, "ImageLog", image_url=attachment.get("url"))

        return ModerationOutcome(
            action_taken=action_taken,
            reason=evaluation.strike_reason,
            deleted=deleted,
            strike_count=strike_count,
            action_error=action_error,
        )

    async def handle_community_vote(self, message: InboundMessage, vote_count: int) -> ModerationOutcome | None:
        """Enforce a community vote once the threshold is reached; each message is enforced at most once."""
        if int(vote_count) < self.vote_threshold or self.is_disabled(message.guild_id):
            return None
        if self.store.contains(COMMUNITY_VOTES_NAMESPACE, int(message.id)):
            return None
        self.store.set(COMMUNITY_VOTES_NAMESPACE, int(message.id), self.clock())

        now = self.clock()
        strike_count = self.ledger.record_strike(message.author_id)
        decision = decide(strike_count)
        error = await self._enforce(message, decision, REASON_COMMUNITY_VOTE)
        deleted = (await self.actions.delete(message)).ok
        await self._append(
            IncidentLogEntry.for_message(
                message,
                action_taken=decision.action,
                reason=REASON_COMMUNITY_VOTE,
                action_error=error,
                deleted_count=1 if deleted else 0,
                now=now,
            )
        )
        return ModerationOutcome(
            action_taken=decision.action,
            reason=REASON_COMMUNITY_VOTE,
            deleted=deleted,
            strike_count=strike_count,
            action_error=error,
        )

    async def _handle_spam(self, message: InboundMessage, verdict: SpamVerdict, now: float) -> ModerationOutcome:
        strike_count = self.ledger.record_strike(message.author_id)
        decision = decide(strike_count)
        error = await self._enforce(message, decision, verdict.reason)

        deleted_count = 0
        if verdict.duplicate_target is not None:
            deleted_count = await self.actions.delete_recent_duplicates(message, verdict.duplicate_target)
        if deleted_count == 0 and (await self.actions.delete(message)).ok:
            deleted_count = 1

        await self._append(
            IncidentLogEntry.for_message(
                message,
                ModerationSignal(spam_kind=verdict.kind),
                action_taken=decision.action,
                reason=verdict.reason,
                action_error=error,
                deleted_count=deleted_count,
                now=now,
            )
        )
        return ModerationOutcome(
            action_taken=decision.action,
            reason=verdict.reason,
            deleted=deleted_count > 0,
            strike_count=strike_count,
            spam_kind=verdict.kind,
            action_error=error,
        )

    async def _enforce(self, message: InboundMessage, decision: PolicyDecision, reason: str) -> str | None:
        uid = message.author_id
        if decision.action == ACTION_WARN:
            outcome = await self.actions.reply(message, f"⚠️ <@{uid}>, warning: {reason}")
        elif decision.action == ACTION_TIMEOUT:
            minutes = int(decision.duration_minutes or 0)
            outcome = await self.actions.timeout(message, minutes, reason)
            if outcome.ok and outcome.detail is None:
                await self.actions.reply(message, f"⏳ Timed out for {minutes}m.")
        elif decision.action == ACTION_KICK:
            outcome = await self.actions.kick(message, reason)
            if outcome.ok:
                await self.actions.send(message, f"{message.author_name} was kicked.")
        elif decision.action == ACTION_BAN:
            outcome = await self.actions.ban(message, reason)
            if outcome.ok:
                await self.actions.send(message, f"{message.author_name} was banned.")
        else:
            raise ValueError(f"unknown ladder action: {decision.action}")

        await self.actions.log_evidence(message, reason, decision.action.title())
        suffix = f" error={outcome.error}" if outcome.error else ""
        print(f"[Moderation] strike user={uid} reason={reason!r} action={decision.action}{suffix}")
        return outcome.error

    @staticmethod
    def _collect(errors: list[str], outcome) -> None:
        if not outcome.ok and outcome.error:
            errors.append(outcome.error)

    async def _append(self, entry: IncidentLogEntry) -> None:
        try:
            await asyncio.wait_for(self.append_incident(entry.to_payload()), timeout=self.timeout_seconds)
        except Exception as e:
            print(f"[ModLog] incident write failed message={entry.message_id}: {type(e).__name__}: {e}")
