from __future__ import annotations

import unittest

from moderation.models import HistoryEntry
from moderation.models import SPAM_COPYPASTA
from moderation.models import SPAM_EMOJI_FLOOD
from moderation.models import SPAM_RATE_FLOOD
from moderation.spam import ChannelHistory
from moderation.spam import count_emojis
from moderation.spam import detect_spam
from moderation.spam import duplicate_flood_target
from moderation.spam import has_copypasta_in_single_message
from moderation.spam import is_matching_duplicate
from moderation.spam import is_rate_flood
from moderation.spam import normalize_for_repeat
from moderation.state_store import InMemoryStateStore

LINE = "this line repeats a lot ok"


def _entries(texts: list[str], *, start: float, step: float, user_id: int = 7) -> list[HistoryEntry]:
    return [HistoryEntry(user_id, text, start + i * step) for i, text in enumerate(texts)]


class NormalizeTests(unittest.TestCase):
    def test_lowercases_strips_zero_width_and_collapses_whitespace(self):
        self.assertEqual(normalize_for_repeat("  Hello\u200bWorld \n\t X\ufeff "), "helloworld x")
        self.assertEqual(normalize_for_repeat(None), "")


class CopypastaTests(unittest.TestCase):
    def test_two_repeated_lines_do_not_match(self):
        self.assertFalse(has_copypasta_in_single_message(f"{LINE}\n{LINE}"))

    def test_three_repeated_lines_match(self):
        self.assertTrue(has_copypasta_in_single_message(f"{LINE}\n{LINE}\n{LINE}"))

    def test_short_lines_never_count(self):
        short = "too short line"
        self.assertFalse(has_copypasta_in_single_message("\n".join([short] * 5)))

    def test_repeated_sentences_match(self):
        text = "I love this server a lot. " * 3
        self.assertTrue(has_copypasta_in_single_message(text))

    def test_sliding_window_matches_long_repetition(self):
        self.assertTrue(has_copypasta_in_single_message("ha" * 75))

    def test_messages_under_thirty_chars_never_match(self):
        self.assertFalse(has_copypasta_in_single_message("ab\nab\nab\nab"))
        self.assertFalse(has_copypasta_in_single_message(""))


class EmojiTests(unittest.TestCase):
    def test_emoji_boundary(self):
        self.assertEqual(count_emojis("\U0001F525" * 11), 11)
        self.assertIsNone(detect_spam("\U0001F525" * 11, [], now=0.0))

        verdict = detect_spam("\U0001F525" * 12, [], now=0.0)
        self.assertIsNotNone(verdict)
        self.assertEqual(verdict.kind, SPAM_EMOJI_FLOOD)
        self.assertEqual(verdict.reason, "Spam (emoji flood)")


class RateFloodTests(unittest.TestCase):
    def test_five_messages_inside_window(self):
        entries = _entries(["a", "b", "c", "d", "e"], start=100.0, step=1.0)
        self.assertTrue(is_rate_flood(entries, now=104.5))

    def test_five_messages_spanning_the_window_do_not_match(self):
        entries = _entries(["a", "b", "c", "d", "e"], start=100.0, step=1.25)
        self.assertFalse(is_rate_flood(entries, now=105.0))

    def test_four_messages_never_match(self):
        entries = _entries(["a", "b", "c", "d"], start=100.0, step=0.1)
        self.assertFalse(is_rate_flood(entries, now=100.5))

    def test_rate_flood_takes_precedence(self):
        entries = _entries(["x"] * 5, start=100.0, step=0.5)
        verdict = detect_spam("\U0001F525" * 20, entries, now=102.0)
        self.assertEqual(verdict.kind, SPAM_RATE_FLOOD)
        self.assertEqual(verdict.reason, "Spam (too many messages)")


class DuplicateFloodTests(unittest.TestCase):
    def test_three_identical_messages_return_normalized_target(self):
        entries = _entries([LINE, LINE.upper(), f"  {LINE} "], start=0.0, step=30.0)
        self.assertEqual(duplicate_flood_target(entries), LINE)

        verdict = detect_spam(LINE, entries, now=100.0)
        self.assertEqual(verdict.kind, SPAM_COPYPASTA)
        self.assertEqual(verdict.reason, "Spam (duplicate copypasta)")
        self.assertEqual(verdict.duplicate_target, LINE)

    def test_short_or_different_messages_do_not_match(self):
        short = "nineteen chars here"
        self.assertEqual(len(short), 19)
        self.assertIsNone(duplicate_flood_target(_entries([short] * 3, start=0.0, step=30.0)))
        self.assertIsNone(duplicate_flood_target(_entries([LINE, LINE, "something else entirely"], start=0.0, step=30.0)))
        self.assertIsNone(duplicate_flood_target(_entries([LINE, LINE], start=0.0, step=30.0)))

    def test_matching_duplicate_filters_author_age_and_content(self):
        kwargs = dict(target_author_id=7, normalized_target=LINE, now=1000.0, max_age_seconds=600)
        self.assertTrue(is_matching_duplicate(author_id=7, content=LINE.upper(), created_at=500.0, **kwargs))
        self.assertFalse(is_matching_duplicate(author_id=8, content=LINE, created_at=900.0, **kwargs))
        self.assertFalse(is_matching_duplicate(author_id=7, content=LINE, created_at=399.0, **kwargs))
        self.assertFalse(is_matching_duplicate(author_id=7, content="other text", created_at=900.0, **kwargs))


class ChannelHistoryTests(unittest.TestCase):
    def test_ring_buffer_keeps_latest_entries_per_channel(self):
        history = ChannelHistory(InMemoryStateStore(), size=3)
        for i in range(5):
            history.push(1, HistoryEntry(7 if i % 2 == 0 else 8, f"m{i}", float(i)))
        history.push(2, HistoryEntry(7, "other channel", 9.0))

        self.assertEqual([e.text for e in history.user_entries(1, 7)], ["m2", "m4"])
        self.assertEqual([e.text for e in history.user_entries(1, 8)], ["m3"])
        self.assertEqual([e.text for e in history.user_entries(2, 7)], ["other channel"])
        self.assertEqual(history.user_entries(3, 7), [])


if __name__ == "__main__":
    unittest.main()
