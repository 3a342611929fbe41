from __future__ import annotations

from typing import Any

from config.defaults import PROFILE_CATEGORICAL_MIN_CONFIDENCE
from config.defaults import PROFILE_EWMA_ALPHA
from config.defaults import PROFILE_SET_CAP

BIG5_KEYS = ("O", "C", "E", "A", "N")
COMMUNICATION_KEYS = (
    "directness",
    "formality",
    "sarcasm",
    "humor",
    "assertiveness",
    "empathy",
    "profanity",
    "emoji_use",
)
RISK_KEYS = ("trollish", "brigading", "spammy", "conflict_prone")

AGE_RANGES = ("under_18", "18_25", "26_35", "35_plus", "unknown")
GENDERS = ("male", "female", "non_binary", "unknown")
SKILL_LEVELS = ("novice", "intermediate", "advanced", "unknown")
UNKNOWN = "unknown"


def clamp01(x: float) -> float:
    return max(0.0, min(1.0, float(x)))


def as_unit(value: Any) -> float | None:
    """Numbers (or numeric strings) clamped to [0, 1]; anything else is no observation."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        return clamp01(float(value))
    except (TypeError, ValueError):
        return None


def ewma(prev: float | None, observed: float | None, alpha: float = PROFILE_EWMA_ALPHA) -> float | None:
    if observed is None:
        return prev
    if prev is None:
        return observed
    return clamp01((1.0 - alpha) * prev + alpha * observed)


def union_capped(existing: Any, incoming: Any, cap: int = PROFILE_SET_CAP) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for source in (existing, incoming):
        if not isinstance(source, list):
            continue
        for item in source:
            text = " ".join(str(item or "").split())
            key = text.lower()
            if not text or key in seen:
                continue
            seen.add(key)
            out.append(text)
    return out[: max(0, int(cap))]


def _merge_axes(existing: Any, observed: Any, keys: tuple[str, ...]) -> dict[str, float | None]:
    existing = existing if isinstance(existing, dict) else {}
    observed = observed if isinstance(observed, dict) else {}
    return {k: ewma(as_unit(existing.get(k)), as_unit(observed.get(k))) for k in keys}


def _merge_categorical(
    old_value: Any,
    old_conf: Any,
    new_value: Any,
    new_conf: Any,
    allowed: tuple[str, ...],
) -> tuple[str, float]:
    value = str(new_value or "").strip().lower()
    conf = as_unit(new_conf)
    if value in allowed and value != UNKNOWN and conf is not None and conf >= PROFILE_CATEGORICAL_MIN_CONFIDENCE:
        return value, conf
    kept = str(old_value or UNKNOWN)
    return (kept if kept in allowed else UNKNOWN), (as_unit(old_conf) or 0.0)


def merge_profile(existing: dict[str, Any] | None, analysis: dict[str, Any], *, observed_at: str) -> dict[str, Any]:
    """
    Fold one LLM analysis into a stored profile.

    Scalar axes use EWMA (a missing side keeps the other), categorical fields
    only move on a confident, known observation, and list fields are unioned
    case-insensitively in first-seen order and capped.
    """
    existing = existing or {}
    age_range, age_conf = _merge_categorical(
        existing.get("age_range"),
        existing.get("age_confidence"),
        analysis.get("age_range"),
        analysis.get("age_confidence"),
        AGE_RANGES,
    )
    gender, gender_conf = _merge_categorical(
        existing.get("gender_likely"),
        existing.get("gender_confidence"),
        analysis.get("gender_likely"),
        analysis.get("gender_confidence"),
        GENDERS,
    )

    old_skill = existing.get("skill_estimates") if isinstance(existing.get("skill_estimates"), dict) else {}
    new_skill = analysis.get("skill_estimates") if isinstance(analysis.get("skill_estimates"), dict) else {}
    level = str(new_skill.get("programming_level") or "").strip().lower()
    if level not in SKILL_LEVELS or level == UNKNOWN:
        level = str(old_skill.get("programming_level") or UNKNOWN)

    return {
        "age_range": age_range,
        "age_confidence": age_conf,
        "gender_likely": gender,
        "gender_confidence": gender_conf,
        "interests": union_capped(existing.get("interests"), analysis.get("interests")),
        "traits": union_capped(existing.get("traits"), analysis.get("personality_traits")),
        "big5": _merge_axes(existing.get("big5"), analysis.get("big5"), BIG5_KEYS),
        "communication_style": _merge_axes(
            existing.get("communication_style"), analysis.get("communication_style"), COMMUNICATION_KEYS
        ),
        "risk_flags": _merge_axes(existing.get("risk_flags"), analysis.get("risk_flags"), RISK_KEYS),
        "skill_estimates": {
            "programming_level": level,
            "domains": union_capped(old_skill.get("domains"), new_skill.get("domains")),
        },
        "confidence_overall": ewma(
            as_unit(existing.get("confidence_overall")), as_unit(analysis.get("confidence_overall"))
        ),
        "last_observed_at": observed_at,
    }


def quirk_summary(profile: dict[str, Any]) -> str | None:
    highlights: list[str] = []
    if profile.get("traits"):
        highlights.append(f"Traits: {', '.join(profile['traits'][:3])}")
    if profile.get("interests"):
        highlights.append(f"Interests: {', '.join(profile['interests'][:3])}")
    level = (profile.get("skill_estimates") or {}).get("programming_level") or UNKNOWN
    if level != UNKNOWN:
        highlights.append(f"Skill: {level}")
    return " | ".join(highlights) or None
