from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

from config.defaults import DEFAULT_EXTERNAL_TIMEOUT_SECONDS
from config.defaults import DEFAULT_TONE_MODEL
from config.defaults import PROFILE_MAX_INPUT_CHARS
from moderation.classifier import safe_extract_json_obj
from moderation.models import InboundMessage
from profiling.merge import merge_profile
from profiling.merge import quirk_summary
from profiling.store import fetch_user_quirks_sync
from profiling.store import get_user_profile_sync
from profiling.store import insert_user_quirk_sync
from profiling.store import upsert_user_profile_sync

PROFILE_SYSTEM_PROMPT = """You are a cautious behavioral analyst. Produce *non-clinical* inferences only.
Return STRICT JSON with keys:
- age_range: "under_18"|"18_25"|"26_35"|"35_plus"|"unknown"
- age_confidence: number 0..1
- gender_likely: "male"|"female"|"non_binary"|"unknown"
- gender_confidence: number 0..1
- interests: string[]  (max 8 topical interests inferred from message content)
- personality_traits: string[]  (concise, non-clinical, e.g. "dry humor", "direct", "detail-oriented")
- big5: { O:number, C:number, E:number, A:number, N:number }  (0..1 likelihoods inferred from writing cues)
- communication_style: { directness, formality, sarcasm, humor, assertiveness, empathy, profanity, emoji_use }  (each 0..1)
- skill_estimates: { programming_level: "novice"|"intermediate"|"advanced"|"unknown", domains: string[] }
- risk_flags: { trollish, brigading, spammy, conflict_prone }  (each 0..1)
- confidence_overall: 0..1
Rules:
- Be conservative; prefer "unknown" and lower confidences if unsure.
- Do NOT include clinical labels or diagnoses.
- Do NOT include protected attributes (race, religion, etc.).
- Output JSON only."""


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _pct(value: Any) -> str:
    return f"{float(value or 0.0) * 100:.0f}%"


def _axis(block: Any, key: str) -> str:
    value = (block or {}).get(key) if isinstance(block, dict) else None
    return f"{float(value or 0.0):.2f}"


def format_profile_report(user_id: int, profile: dict[str, Any] | None, quirks: list[str] | None = None) -> str:
    if not profile:
        return f"No profile data for <@{int(user_id)}> yet."
    big5 = profile.get("big5")
    comm = profile.get("communication_style")
    risk = profile.get("risk_flags")
    skill = (profile.get("skill_estimates") or {}).get("programming_level") or "unknown"
    lines = [
        f"\U0001F464 Profile for <@{int(user_id)}>:",
        f"• Age: {profile.get('age_range') or 'unknown'} ({_pct(profile.get('age_confidence'))} conf)",
        f"• Gender: {profile.get('gender_likely') or 'unknown'} ({_pct(profile.get('gender_confidence'))} conf)",
        "• Big5: " + " ".join(f"{k}:{_axis(big5, k)}" for k in ("O", "C", "E", "A", "N")),
        "• Comms: "
        + " • ".join(
            f"{label}:{_axis(comm, key)}"
            for label, key in (
                ("direct", "directness"),
                ("sarcasm", "sarcasm"),
                ("humor", "humor"),
                ("assert", "assertiveness"),
            )
        ),
        "• Risk: "
        + " • ".join(
            f"{label}:{_axis(risk, key)}"
            for label, key in (
                ("troll", "trollish"),
                ("brigade", "brigading"),
                ("spam", "spammy"),
                ("conflict", "conflict_prone"),
            )
        ),
        f"• Skill: {skill}",
        f"• Interests: {', '.join((profile.get('interests') or [])[:6]) or '-'}",
        f"• Traits: {', '.join((profile.get('traits') or [])[:6]) or '-'}",
        f"• Confidence overall: {_pct(profile.get('confidence_overall'))}",
        f"• Last observed: {profile.get('last_observed_at') or '-'}",
    ]
    lines.extend(f"• Recent: {q}" for q in (quirks or [])[:3])
    lines.append("_Note: heuristic, non-clinical signals only._")
    return "\n".join(lines)


class ProfileService:
    """Rolling per-user behavior profile, merged from one LLM analysis per message."""

    def __init__(
        self,
        *,
        client,
        db_conn,
        db_lock: asyncio.Lock,
        model: str = DEFAULT_TONE_MODEL,
        timeout_seconds: float = DEFAULT_EXTERNAL_TIMEOUT_SECONDS,
    ) -> None:
        self.client = client
        self.db_conn = db_conn
        self.db_lock = db_lock
        self.model = model
        self.timeout_seconds = float(timeout_seconds)

    async def analyze(self, text: str) -> dict[str, Any] | None:
        if not (text or "").strip():
            return None
        try:
            resp = await asyncio.wait_for(
                asyncio.to_thread(
                    self.client.chat.completions.create,
                    model=self.model,
                    temperature=0,
                    response_format={"type": "json_object"},
                    messages=[
                        {"role": "system", "content": PROFILE_SYSTEM_PROMPT},
                        {"role": "user", "content": text[:PROFILE_MAX_INPUT_CHARS]},
                    ],
                ),
                timeout=self.timeout_seconds,
            )
            raw = (resp.choices[0].message.content or "").strip()
        except Exception as e:
            print(f"[Profile] analysis call failed: {type(e).__name__}: {e}")
            return None
        analysis = safe_extract_json_obj(raw)
        if analysis is None:
            print(f"[Profile] analysis payload unparseable: {raw[:120]!r}")
        return analysis

    async def get_profile(self, user_id: int) -> dict[str, Any] | None:
        async with self.db_lock:
            return await asyncio.to_thread(get_user_profile_sync, self.db_conn, int(user_id))

    async def recent_quirks(self, user_id: int, limit: int = 3) -> list[str]:
        async with self.db_lock:
            return await asyncio.to_thread(fetch_user_quirks_sync, self.db_conn, int(user_id), limit)

    async def observe_message(self, message: InboundMessage) -> dict[str, Any] | None:
        analysis = await self.analyze(message.content)
        if analysis is None:
            return None

        now_iso = _utc_now_iso()
        async with self.db_lock:
            existing = await asyncio.to_thread(get_user_profile_sync, self.db_conn, message.author_id)
            merged = merge_profile(existing, analysis, observed_at=now_iso)
            await asyncio.to_thread(upsert_user_profile_sync, self.db_conn, message.author_id, merged, now_iso)
            quirk = quirk_summary(merged)
            if quirk:
                await asyncio.to_thread(
                    insert_user_quirk_sync,
                    self.db_conn,
                    message.author_id,
                    message.guild_id,
                    quirk,
                    now_iso,
                )
        return merged
