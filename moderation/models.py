from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

TOXICITY_LEVELS = ("none", "low", "medium", "high")

SPAM_RATE_FLOOD = "rate_flood"
SPAM_COPYPASTA = "copypasta"
SPAM_EMOJI_FLOOD = "emoji_flood"

ACTION_NONE = "none"
ACTION_WARN = "warn"
ACTION_TIMEOUT = "timeout"
ACTION_KICK = "kick"
ACTION_BAN = "ban"
ACTION_DELETE = "delete"

ACTION_SEVERITY = {
    ACTION_NONE: 0,
    ACTION_DELETE: 1,
    ACTION_WARN: 2,
    ACTION_TIMEOUT: 3,
    ACTION_KICK: 4,
    ACTION_BAN: 5,
}

PATTERN_FIRST = "first incident"
PATTERN_REPEAT = "repeat behavior"
PATTERN_CHRONIC = "chronic issue"
PATTERN_CLEAN = "clean slate"


def most_severe_action(*actions: str | None) -> str:
    best = ACTION_NONE
    for action in actions:
        if action and ACTION_SEVERITY.get(action, 0) > ACTION_SEVERITY[best]:
            best = action
    return best


@dataclass(slots=True)
class ExplicitCategories:
    flagged: bool = False
    harassment: bool = False
    hate: bool = False
    violence: bool = False
    failed: bool = False


@dataclass(slots=True)
class ToneSignal:
    passive_aggressive: bool = False
    condescending: bool = False
    provocation: bool = False
    toxicity: str = "none"
    failed: bool = False

    def has_issues(self) -> bool:
        return bool(self.passive_aggressive or self.condescending or self.provocation or self.toxicity != "none")

    def is_hostile(self) -> bool:
        if self.toxicity == "high":
            return True
        return self.toxicity == "medium" and bool(self.condescending or self.provocation)


@dataclass(slots=True)
class ModerationSignal:
    categories: ExplicitCategories = field(default_factory=ExplicitCategories)
    tone: ToneSignal = field(default_factory=ToneSignal)
    spam_kind: str | None = None


@dataclass(slots=True)
class StrikeRecord:
    count: int = 0
    last_strike_at: float | None = None


@dataclass(slots=True)
class BehaviorRecord:
    warning_count: int = 0
    last_incident_at: float | None = None
    timeout_until: float = 0.0
    pattern: str = PATTERN_FIRST


@dataclass(slots=True)
class PolicyDecision:
    action: str
    duration_minutes: int | None = None


@dataclass(slots=True)
class ActionOutcome:
    ok: bool
    error: str | None = None
    detail: str | None = None


@dataclass(slots=True)
class HistoryEntry:
    user_id: int
    text: str
    at: float


@dataclass(slots=True)
class InboundMessage:
    id: int
    author_id: int
    channel_id: int
    guild_id: int | None
    content: str
    author_name: str = ""
    attachments: list[dict[str, str]] = field(default_factory=list)
    created_at: float = 0.0
    raw: Any = None

    @classmethod
    def from_discord(cls, message: Any) -> "InboundMessage":
        attachments: list[dict[str, str]] = []
        for att in getattr(message, "attachments", None) or []:
            attachments.append(
                {
                    "url": str(getattr(att, "url", "") or ""),
                    "content_type": str(getattr(att, "content_type", "") or ""),
                }
            )
        created = getattr(message, "created_at", None)
        guild = getattr(message, "guild", None)
        return cls(
            id=int(message.id),
            author_id=int(message.author.id),
            channel_id=int(message.channel.id),
            guild_id=int(guild.id) if guild is not None else None,
            content=message.content or "",
            author_name=str(message.author),
            attachments=attachments,
            created_at=created.timestamp() if created is not None else 0.0,
            raw=message,
        )

    def image_attachments(self) -> list[dict[str, str]]:
        return [a for a in self.attachments if a.get("content_type", "").startswith("image/")]


@dataclass(slots=True)
class IncidentLogEntry:
    guild_id: int | None
    channel_id: int
    user_id: int
    message_id: int
    content: str
    harassment: bool = False
    hate: bool = False
    violence: bool = False
    passive_aggressive: bool = False
    condescending: bool = False
    provocation: bool = False
    toxicity: str = "none"
    spam_kind: str | None = None
    action_taken: str = ACTION_NONE
    reason: str | None = None
    action_error: str | None = None
    deleted_count: int = 0
    created_at_utc: str = ""

    @classmethod
    def for_message(
        cls,
        message: InboundMessage,
        signal: ModerationSignal | None = None,
        *,
        action_taken: str = ACTION_NONE,
        reason: str | None = None,
        action_error: str | None = None,
        deleted_count: int = 0,
        now: float | None = None,
    ) -> "IncidentLogEntry":
        signal = signal or ModerationSignal()
        when = datetime.fromtimestamp(now, tz=timezone.utc) if now is not None else datetime.now(timezone.utc)
        return cls(
            guild_id=message.guild_id,
            channel_id=message.channel_id,
            user_id=message.author_id,
            message_id=message.id,
            content=message.content,
            harassment=signal.categories.harassment,
            hate=signal.categories.hate,
            violence=signal.categories.violence,
            passive_aggressive=signal.tone.passive_aggressive,
            condescending=signal.tone.condescending,
            provocation=signal.tone.provocation,
            toxicity=signal.tone.toxicity,
            spam_kind=signal.spam_kind,
            action_taken=action_taken,
            reason=reason,
            action_error=action_error,
            deleted_count=int(deleted_count),
            created_at_utc=when.isoformat(),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "guild_id": self.guild_id,
            "channel_id": self.channel_id,
            "user_id": self.user_id,
            "message_id": self.message_id,
            "content": self.content,
            "harassment": int(self.harassment),
            "hate": int(self.hate),
            "violence": int(self.violence),
            "passive_aggr": int(self.passive_aggressive),
            "condescending": int(self.condescending),
            "provocation": int(self.provocation),
            "toxicity": self.toxicity,
            "spam_kind": self.spam_kind,
            "action_taken": self.action_taken,
            "reason": self.reason,
            "action_error": self.action_error,
            "deleted_count": int(self.deleted_count),
            "created_at_utc": self.created_at_utc,
        }
