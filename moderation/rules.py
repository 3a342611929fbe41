from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from moderation.models import ToneSignal


@dataclass(slots=True)
class ModerationRules:
    version: str = "moderation_rules_v1"
    community_description: str = "a software dev community"
    bot_insult_phrases: list[str] = field(default_factory=list)
    callout_fallbacks: dict[str, str] = field(default_factory=dict)

    def mentions_bot_insult(self, text: str | None) -> bool:
        lowered = (text or "").lower()
        return any(phrase in lowered for phrase in self.bot_insult_phrases)

    def fallback_callout(self, tone: ToneSignal) -> str:
        fallbacks = self.callout_fallbacks
        if tone.toxicity == "high" and fallbacks.get("high_toxicity"):
            return fallbacks["high_toxicity"]
        if tone.condescending and fallbacks.get("condescending"):
            return fallbacks["condescending"]
        if tone.passive_aggressive and fallbacks.get("passive_aggressive"):
            return fallbacks["passive_aggressive"]
        if tone.provocation and fallbacks.get("provocation"):
            return fallbacks["provocation"]
        return fallbacks.get("default") or "Keep it professional and helpful."


def default_moderation_rules() -> ModerationRules:
    return ModerationRules(
        version="moderation_rules_v1",
        community_description="a software dev community",
        bot_insult_phrases=["stupid bot", "fuck you"],
        callout_fallbacks={
            "high_toxicity": "\U0001F6D1 That crossed a line. Take a breather.",
            "condescending": "\U0001FA9C Step down from the high horse. Talk to people, not at them.",
            "passive_aggressive": "\U0001F60F Let's skip the passive-aggressive and be direct.",
            "provocation": "\U0001F9EF No flamebait. Keep it constructive.",
            "default": "⚠️ Keep it professional and helpful.",
        },
    )


def _as_phrases(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    out: list[str] = []
    for item in value:
        text = re.sub(r"\s+", " ", str(item or "")).strip().lower()
        if text and text not in out:
            out.append(text)
    return out


def _as_str_map(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k).strip(): str(v).strip() for k, v in value.items() if str(k).strip() and str(v or "").strip()}


def load_moderation_rules(path: str | Path | None) -> tuple[ModerationRules, str | None]:
    """
    Returns (rules, warning_message). warning_message is None on clean load.
    """
    defaults = default_moderation_rules()
    if not path:
        return (defaults, "Moderation rules path missing; using built-in defaults.")

    p = Path(path)
    if not p.exists():
        return (defaults, f"Moderation rules file not found at {p}; using built-in defaults.")

    try:
        payload = yaml.safe_load(p.read_text(encoding="utf-8"))
    except Exception as exc:
        return (defaults, f"Failed to read moderation rules from {p}: {exc}; using built-in defaults.")

    if not isinstance(payload, dict):
        return (defaults, f"Invalid moderation rules format in {p}; using built-in defaults.")

    fallbacks = dict(defaults.callout_fallbacks)
    fallbacks.update(_as_str_map(payload.get("callout_fallbacks")))
    rules = ModerationRules(
        version=str(payload.get("version") or defaults.version),
        community_description=str(payload.get("community_description") or defaults.community_description).strip(),
        bot_insult_phrases=_as_phrases(payload.get("bot_insult_phrases")) or defaults.bot_insult_phrases,
        callout_fallbacks=fallbacks,
    )
    return (rules, None)
