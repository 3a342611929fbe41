from __future__ import annotations

import re
from collections import Counter
from collections import deque
from dataclasses import dataclass
from typing import Iterable

from config.defaults import COPYPASTA_MIN_MESSAGE_CHARS
from config.defaults import COPYPASTA_MIN_REPEATS
from config.defaults import COPYPASTA_MIN_SEGMENT_CHARS
from config.defaults import COPYPASTA_WINDOW_CHARS
from config.defaults import COPYPASTA_WINDOW_MIN_TEXT_CHARS
from config.defaults import COPYPASTA_WINDOW_STEP
from config.defaults import DUPLICATE_FLOOD_MESSAGES
from config.defaults import EMOJI_FLOOD_THRESHOLD
from config.defaults import RATE_FLOOD_BUFFER_SIZE
from config.defaults import RATE_FLOOD_MIN_MESSAGES
from config.defaults import RATE_FLOOD_WINDOW_SECONDS
from moderation.models import HistoryEntry
from moderation.models import SPAM_COPYPASTA
from moderation.models import SPAM_EMOJI_FLOOD
from moderation.models import SPAM_RATE_FLOOD
from moderation.state_store import InMemoryStateStore

CHANNEL_HISTORY_NAMESPACE = "channel_history"

ZERO_WIDTH_RE = re.compile("[\u200B-\u200D\uFEFF]")
WHITESPACE_RE = re.compile(r"\s+")
SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")
EMOJI_RE = re.compile(
    "[\U0001F1E6-\U0001FAFF\U0001F300-\U0001F6FF\U0001F900-\U0001F9FF\u2600-\u27BF\uFE0F]"
)


@dataclass(slots=True)
class SpamVerdict:
    kind: str
    reason: str
    duplicate_target: str | None = None


def normalize_for_repeat(text: str | None) -> str:
    s = (text or "").lower()
    s = ZERO_WIDTH_RE.sub("", s)
    return WHITESPACE_RE.sub(" ", s).strip()


def _has_repeats(segments: Iterable[str], *, min_chars: int, min_repeats: int) -> bool:
    counts = Counter(s for s in segments if len(s) >= min_chars)
    return any(n >= min_repeats for n in counts.values())


def has_copypasta_in_single_message(text: str | None) -> bool:
    if not text:
        return False
    if len(WHITESPACE_RE.sub(" ", text).strip()) < COPYPASTA_MIN_MESSAGE_CHARS:
        return False

    raw_lines = [line.strip() for line in re.split(r"\n+", text) if line.strip()]
    if len(raw_lines) >= COPYPASTA_MIN_REPEATS and _has_repeats(
        (normalize_for_repeat(line) for line in raw_lines),
        min_chars=COPYPASTA_MIN_SEGMENT_CHARS,
        min_repeats=COPYPASTA_MIN_REPEATS,
    ):
        return True

    normalized = normalize_for_repeat(text)
    sentences = [s for s in SENTENCE_SPLIT_RE.split(normalized) if s]
    if len(sentences) >= COPYPASTA_MIN_REPEATS and _has_repeats(
        sentences,
        min_chars=COPYPASTA_MIN_SEGMENT_CHARS,
        min_repeats=COPYPASTA_MIN_REPEATS,
    ):
        return True

    if len(normalized) >= COPYPASTA_WINDOW_MIN_TEXT_CHARS:
        windows = Counter(
            normalized[i : i + COPYPASTA_WINDOW_CHARS]
            for i in range(0, len(normalized) - COPYPASTA_WINDOW_CHARS + 1, COPYPASTA_WINDOW_STEP)
        )
        if any(n >= COPYPASTA_MIN_REPEATS for n in windows.values()):
            return True
    return False


def count_emojis(text: str | None) -> int:
    return len(EMOJI_RE.findall(text or ""))


def is_rate_flood(user_entries: list[HistoryEntry], now: float) -> bool:
    if len(user_entries) < RATE_FLOOD_MIN_MESSAGES:
        return False
    oldest_of_burst = user_entries[-RATE_FLOOD_MIN_MESSAGES]
    return now - oldest_of_burst.at < RATE_FLOOD_WINDOW_SECONDS


def duplicate_flood_target(user_entries: list[HistoryEntry]) -> str | None:
    if len(user_entries) < DUPLICATE_FLOOD_MESSAGES:
        return None
    batch = [normalize_for_repeat(e.text) for e in user_entries[-DUPLICATE_FLOOD_MESSAGES:]]
    first = batch[0]
    if len(first) < COPYPASTA_MIN_SEGMENT_CHARS:
        return None
    if all(x == first for x in batch):
        return first
    return None


def detect_spam(content: str, user_entries: list[HistoryEntry], now: float) -> SpamVerdict | None:
    """
    Run the local heuristics in their fixed order; first match wins.

    ``user_entries`` are this author's buffered messages in the channel,
    oldest first, including the message being evaluated.
    """
    if is_rate_flood(user_entries, now):
        return SpamVerdict(SPAM_RATE_FLOOD, "Spam (too many messages)")

    if has_copypasta_in_single_message(content):
        return SpamVerdict(SPAM_COPYPASTA, "Spam (copypasta in single message)")

    target = duplicate_flood_target(user_entries)
    if target is not None:
        return SpamVerdict(SPAM_COPYPASTA, "Spam (duplicate copypasta)", duplicate_target=target)

    if count_emojis(content) >= EMOJI_FLOOD_THRESHOLD:
        return SpamVerdict(SPAM_EMOJI_FLOOD, "Spam (emoji flood)")
    return None


def is_matching_duplicate(
    *,
    author_id: int,
    content: str | None,
    created_at: float,
    target_author_id: int,
    normalized_target: str,
    now: float,
    max_age_seconds: float,
) -> bool:
    if int(author_id) != int(target_author_id):
        return False
    if now - created_at > max_age_seconds:
        return False
    return normalize_for_repeat(content) == normalized_target


class ChannelHistory:
    """Per-channel ring buffer of the last few messages, kept in the state store."""

    def __init__(self, store: InMemoryStateStore, *, size: int = RATE_FLOOD_BUFFER_SIZE) -> None:
        self.store = store
        self.size = max(1, int(size))

    def push(self, channel_id: int, entry: HistoryEntry) -> list[HistoryEntry]:
        buf = self.store.get(CHANNEL_HISTORY_NAMESPACE, int(channel_id))
        if buf is None:
            buf = deque(maxlen=self.size)
        buf.append(entry)
        self.store.set(CHANNEL_HISTORY_NAMESPACE, int(channel_id), buf)
        return list(buf)

    def user_entries(self, channel_id: int, user_id: int) -> list[HistoryEntry]:
        buf = self.store.get(CHANNEL_HISTORY_NAMESPACE, int(channel_id)) or ()
        return [e for e in buf if int(e.user_id) == int(user_id)]
