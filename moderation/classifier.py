from __future__ import annotations

import asyncio
import json
import re
from typing import Any

from config.defaults import DEFAULT_EXTERNAL_TIMEOUT_SECONDS
from config.defaults import DEFAULT_MODERATION_MODEL
from config.defaults import DEFAULT_TONE_MODEL
from moderation.models import BehaviorRecord
from moderation.models import ExplicitCategories
from moderation.models import TOXICITY_LEVELS
from moderation.models import ToneSignal
from moderation.rules import ModerationRules

TONE_SYSTEM_PROMPT = (
    "You label chat messages for moderation tone. Output strict JSON with keys:\n"
    "- passive_aggressive: boolean\n"
    "- condescending: boolean  (talking down, superiority, flexing)\n"
    "- provocation: boolean    (baiting/escalating)\n"
    '- toxicity: "none"|"low"|"medium"|"high"\n'
    "No extra text."
)


def safe_extract_json_obj(text: str | None) -> dict | None:
    if not text:
        return None
    m = re.search(r"\{.*\}", text, flags=re.S)
    if not m:
        return None
    try:
        obj = json.loads(m.group(0))
    except Exception:
        return None
    return obj if isinstance(obj, dict) else None


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1"}
    if isinstance(value, (int, float)):
        return value != 0
    return False


def parse_tone_payload(raw: str | None) -> ToneSignal:
    """Model output -> ToneSignal; anything malformed degrades to the all-clear default."""
    obj = safe_extract_json_obj(raw)
    if obj is None:
        return ToneSignal(failed=bool(raw))
    toxicity = str(obj.get("toxicity") or "none").strip().lower()
    if toxicity not in TOXICITY_LEVELS:
        toxicity = "none"
    return ToneSignal(
        passive_aggressive=_as_bool(obj.get("passive_aggressive")),
        condescending=_as_bool(obj.get("condescending")),
        provocation=_as_bool(obj.get("provocation")),
        toxicity=toxicity,
    )


def parse_moderation_result(resp: Any) -> ExplicitCategories:
    results = getattr(resp, "results", None) or []
    if not results:
        return ExplicitCategories()
    first = results[0]
    categories = getattr(first, "categories", None)
    return ExplicitCategories(
        flagged=bool(getattr(first, "flagged", False)),
        harassment=bool(getattr(categories, "harassment", False)),
        hate=bool(getattr(categories, "hate", False)),
        violence=bool(getattr(categories, "violence", False)),
    )


class ContentClassifier:
    """
    OpenAI-backed explicit-category and tone checks.

    Every call is bounded by ``timeout_seconds`` and fails open: an outage
    yields an unflagged / all-clear result with ``failed=True``.
    """

    def __init__(
        self,
        *,
        client,
        rules: ModerationRules,
        tone_model: str = DEFAULT_TONE_MODEL,
        moderation_model: str = DEFAULT_MODERATION_MODEL,
        timeout_seconds: float = DEFAULT_EXTERNAL_TIMEOUT_SECONDS,
    ) -> None:
        self.client = client
        self.rules = rules
        self.tone_model = tone_model
        self.moderation_model = moderation_model
        self.timeout_seconds = float(timeout_seconds)

    async def _call(self, func, **kwargs):
        return await asyncio.wait_for(asyncio.to_thread(func, **kwargs), timeout=self.timeout_seconds)

    async def classify_explicit(self, text: str) -> ExplicitCategories:
        if not (text or "").strip():
            return ExplicitCategories()
        try:
            resp = await self._call(
                self.client.moderations.create,
                model=self.moderation_model,
                input=text,
            )
        except Exception as e:
            print(f"[Classifier] explicit check failed: {type(e).__name__}: {e}")
            return ExplicitCategories(failed=True)
        return parse_moderation_result(resp)

    async def classify_tone(self, text: str) -> ToneSignal:
        if not (text or "").strip():
            return ToneSignal()
        try:
            resp = await self._call(
                self.client.chat.completions.create,
                model=self.tone_model,
                temperature=0,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": TONE_SYSTEM_PROMPT},
                    {"role": "user", "content": text[:4000]},
                ],
            )
            raw = (resp.choices[0].message.content or "").strip()
        except Exception as e:
            print(f"[Classifier] tone check failed: {type(e).__name__}: {e}")
            return ToneSignal(failed=True)

        tone = parse_tone_payload(raw)
        if tone.failed:
            print(f"[Classifier] tone payload unparseable; treating as clean: {raw[:120]!r}")
        return tone

    async def compose_callout(self, text: str, tone: ToneSignal, history: BehaviorRecord) -> str:
        sys = (
            f"You're a witty Discord moderator bot for {self.rules.community_description}. "
            "Generate a brief, clever response.\n\n"
            "TONE:\n"
            f"- passive_aggressive: {str(tone.passive_aggressive).lower()}\n"
            f"- condescending: {str(tone.condescending).lower()}\n"
            f"- provocation: {str(tone.provocation).lower()}\n"
            f"- toxicity: {tone.toxicity}\n\n"
            "USER:\n"
            f"- Previous warnings: {int(history.warning_count)}\n"
            f"- Pattern: {history.pattern}\n\n"
            "STYLE:\n"
            "- < 100 chars\n"
            "- Witty, not mean\n"
            "- 0-2 emojis max\n"
            "- Firmer for repeats\n"
            "- High toxicity: suggest a break"
        )
        snippet = " ".join((text or "").split())[:600]
        try:
            resp = await self._call(
                self.client.chat.completions.create,
                model=self.tone_model,
                temperature=0.7,
                messages=[
                    {"role": "system", "content": sys},
                    {"role": "user", "content": f'Message: "{snippet}"\nGenerate one callout.'},
                ],
            )
            reply = (resp.choices[0].message.content or "").strip()
        except Exception as e:
            print(f"[Classifier] callout generation failed: {type(e).__name__}: {e}")
            reply = ""
        return reply[:300] or self.rules.fallback_callout(tone)
