from __future__ import annotations

import unittest

from moderation.engine import REASON_BOT_INSULT
from moderation.engine import REASON_HARASSMENT
from moderation.engine import REASON_SEVERE
from moderation.engine import StandingSnapshot
from moderation.engine import evaluate_message
from moderation.models import ExplicitCategories
from moderation.models import InboundMessage
from moderation.models import ModerationSignal
from moderation.models import ToneSignal
from moderation.rules import default_moderation_rules


def _message(content: str = "hello there") -> InboundMessage:
    return InboundMessage(id=1, author_id=2, channel_id=3, guild_id=4, content=content)


def _evaluate(content="hello there", *, categories=None, tone=None, standing=None, now=100.0):
    signal = ModerationSignal(categories=categories or ExplicitCategories(), tone=tone or ToneSignal())
    return evaluate_message(
        _message(content),
        signal,
        standing or StandingSnapshot(),
        now=now,
        rules=default_moderation_rules(),
    )


class EvaluateMessageTests(unittest.TestCase):
    def test_clean_message_does_nothing(self):
        result = _evaluate()
        self.assertIsNone(result.strike_reason)
        self.assertFalse(result.send_callout)
        self.assertFalse(result.delete_message)

    def test_harassment_records_one_strike_without_callout(self):
        result = _evaluate(
            categories=ExplicitCategories(flagged=True, harassment=True, hate=True),
            tone=ToneSignal(condescending=True, toxicity="high"),
        )
        self.assertEqual(result.strike_reason, REASON_HARASSMENT)
        self.assertFalse(result.send_callout)

    def test_hate_or_violence_is_severe(self):
        result = _evaluate(categories=ExplicitCategories(flagged=True, violence=True))
        self.assertEqual(result.strike_reason, REASON_SEVERE)

    def test_explicit_category_outranks_bot_insult(self):
        result = _evaluate("stupid bot", categories=ExplicitCategories(flagged=True, harassment=True))
        self.assertEqual(result.strike_reason, REASON_HARASSMENT)

    def test_hostile_tone_strikes_and_calls_out(self):
        result = _evaluate(tone=ToneSignal(condescending=True, toxicity="medium"))
        self.assertEqual(result.strike_reason, "Hostile tone (medium)")
        self.assertTrue(result.send_callout)
        self.assertFalse(result.delete_message)

    def test_medium_toxicity_alone_is_not_hostile(self):
        result = _evaluate(tone=ToneSignal(passive_aggressive=True, toxicity="medium"))
        self.assertIsNone(result.strike_reason)
        self.assertTrue(result.send_callout)

    def test_callout_respects_cooldown(self):
        tone = ToneSignal(passive_aggressive=True, toxicity="low")
        blocked = _evaluate(tone=tone, standing=StandingSnapshot(last_callout_at=96.0), now=100.0)
        self.assertFalse(blocked.send_callout)

        allowed = _evaluate(tone=tone, standing=StandingSnapshot(last_callout_at=95.0), now=100.0)
        self.assertTrue(allowed.send_callout)

        repeat = _evaluate(
            tone=tone,
            standing=StandingSnapshot(warning_count=3, last_callout_at=97.0),
            now=100.0,
        )
        self.assertTrue(repeat.send_callout)

    def test_bot_insult_applies_when_classifier_failed(self):
        result = _evaluate(
            "Honestly, STUPID BOT.",
            categories=ExplicitCategories(failed=True),
            tone=ToneSignal(failed=True),
        )
        self.assertEqual(result.strike_reason, REASON_BOT_INSULT)
        self.assertFalse(result.send_callout)

    def test_behavior_timeout_deletes_and_skips_tone(self):
        result = _evaluate(
            tone=ToneSignal(provocation=True, toxicity="high"),
            standing=StandingSnapshot(in_timeout=True),
        )
        self.assertTrue(result.delete_message)
        self.assertFalse(result.send_callout)
        self.assertIsNone(result.strike_reason)

    def test_bot_insult_still_counts_during_behavior_timeout(self):
        result = _evaluate("fuck you", standing=StandingSnapshot(in_timeout=True))
        self.assertTrue(result.delete_message)
        self.assertEqual(result.strike_reason, REASON_BOT_INSULT)


if __name__ == "__main__":
    unittest.main()
