from __future__ import annotations

import unittest

from moderation.models import ACTION_BAN
from moderation.models import ACTION_DELETE
from moderation.models import ACTION_KICK
from moderation.models import ACTION_NONE
from moderation.models import ACTION_TIMEOUT
from moderation.models import ACTION_WARN
from moderation.models import ActionOutcome
from moderation.models import ExplicitCategories
from moderation.models import InboundMessage
from moderation.models import SPAM_COPYPASTA
from moderation.models import ToneSignal
from moderation.rules import default_moderation_rules
from moderation.service import ModerationService
from moderation.service import REASON_COMMUNITY_VOTE
from moderation.service import REASON_SHADOWBANNED
from moderation.service import build_state_store

DUPLICATE = "buy cheap followers at example dot com"


class FakeClassifier:
    def __init__(self, *, categories=None, tone=None):
        self.categories = categories or ExplicitCategories()
        self.tone = tone or ToneSignal()
        self.classified = []
        self.callouts = []

    async def classify_explicit(self, text):
        self.classified.append(text)
        return self.categories

    async def classify_tone(self, text):
        return self.tone

    async def compose_callout(self, text, tone, history):
        self.callouts.append((text, history.warning_count))
        return "easy there"


class FakeActions:
    def __init__(self):
        self.calls = []
        self.outcomes = {}
        self.duplicates_deleted = 0

    def _outcome(self, name):
        return self.outcomes.get(name, ActionOutcome(True))

    async def reply(self, message, text):
        self.calls.append(("reply", text))
        return self._outcome("reply")

    async def send(self, message, text):
        self.calls.append(("send", text))
        return self._outcome("send")

    async def delete(self, message):
        self.calls.append(("delete", message.id))
        return self._outcome("delete")

    async def timeout(self, message, minutes, reason):
        self.calls.append(("timeout", minutes, reason))
        return self._outcome("timeout")

    async def kick(self, message, reason):
        self.calls.append(("kick", reason))
        return self._outcome("kick")

    async def ban(self, message, reason):
        self.calls.append(("ban", reason))
        return self._outcome("ban")

    async def delete_recent_duplicates(self, message, normalized_target):
        self.calls.append(("delete_recent_duplicates", normalized_target))
        return self.duplicates_deleted

    async def log_evidence(self, message, reason, action, *, image_url=None):
        self.calls.append(("log_evidence", reason, action, image_url))

    def names(self):
        return [c[0] for c in self.calls]


class ModerationServiceTestBase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.now = [1_000_000.0]
        self.rows = []
        self.classifier = FakeClassifier()
        self.actions = FakeActions()
        self.service = ModerationService(
            store=build_state_store(1000),
            classifier=self.classifier,
            actions=self.actions,
            rules=default_moderation_rules(),
            append_incident=self._append,
            clock=lambda: self.now[0],
        )
        self._next_id = 1

    async def _append(self, payload):
        self.rows.append(payload)

    def _message(self, content="hello world", *, author_id=7, channel_id=20, guild_id=10, attachments=None):
        message = InboundMessage(
            id=self._next_id,
            author_id=author_id,
            channel_id=channel_id,
            guild_id=guild_id,
            content=content,
            author_name="someone#0001",
            attachments=attachments or [],
        )
        self._next_id += 1
        return message


class ScenarioTests(ModerationServiceTestBase):
    async def test_duplicate_flood_deletes_matches_and_warns_first_offender(self):
        self.actions.duplicates_deleted = 3
        outcomes = []
        for _ in range(3):
            outcomes.append(await self.service.handle_message(self._message(DUPLICATE)))
            self.now[0] += 60

        self.assertEqual([o.action_taken for o in outcomes[:2]], [ACTION_NONE, ACTION_NONE])
        last = outcomes[2]
        self.assertEqual(last.action_taken, ACTION_WARN)
        self.assertEqual(last.spam_kind, SPAM_COPYPASTA)
        self.assertEqual(last.strike_count, 1)
        self.assertTrue(last.deleted)
        self.assertIn(("delete_recent_duplicates", DUPLICATE), self.actions.calls)
        self.assertIn(("reply", "⚠️ <@7>, warning: Spam (duplicate copypasta)"), self.actions.calls)
        self.assertNotIn("delete", self.actions.names())
        self.assertEqual(len(self.classifier.classified), 2)

        self.assertEqual(len(self.rows), 3)
        self.assertEqual(self.rows[2]["spam_kind"], SPAM_COPYPASTA)
        self.assertEqual(self.rows[2]["deleted_count"], 3)
        self.assertEqual(self.rows[2]["action_taken"], ACTION_WARN)

    async def test_fourth_strike_bans_even_when_member_is_gone(self):
        for _ in range(3):
            self.service.ledger.record_strike(7)
        self.classifier.tone = ToneSignal(provocation=True, toxicity="high")
        self.actions.outcomes["timeout"] = ActionOutcome(True, detail="member not in guild")
        self.actions.outcomes["ban"] = ActionOutcome(True, detail="target already gone")

        outcome = await self.service.handle_message(self._message("you are all idiots"))

        self.assertEqual(outcome.strike_count, 4)
        self.assertEqual(outcome.action_taken, ACTION_BAN)
        self.assertIsNone(outcome.action_error)
        self.assertIn(("ban", "Hostile tone (high)"), self.actions.calls)
        self.assertIn(("send", "someone#0001 was banned."), self.actions.calls)
        self.assertEqual(len(self.rows), 1)
        self.assertEqual(self.rows[0]["action_taken"], ACTION_BAN)
        self.assertEqual(self.rows[0]["reason"], "Hostile tone (high)")

    async def test_classifier_outage_logs_clean_incident(self):
        self.classifier.categories = ExplicitCategories(failed=True)
        self.classifier.tone = ToneSignal(failed=True)

        outcome = await self.service.handle_message(self._message("what do you think of this approach"))

        self.assertEqual(outcome.action_taken, ACTION_NONE)
        self.assertIsNone(outcome.strike_count)
        self.assertEqual(self.service.ledger.get_count(7), 0)
        self.assertEqual(self.actions.calls, [])
        row = self.rows[0]
        self.assertEqual(row["action_taken"], ACTION_NONE)
        self.assertEqual(
            (row["passive_aggr"], row["condescending"], row["provocation"], row["toxicity"]),
            (0, 0, 0, "none"),
        )

    async def test_callout_cooldown_does_not_block_second_strike(self):
        self.classifier.tone = ToneSignal(condescending=True, toxicity="medium")

        first = await self.service.handle_message(self._message("cute that you tried"))
        self.now[0] += 4
        second = await self.service.handle_message(self._message("bless your heart, really"))

        self.assertEqual(len(self.classifier.callouts), 1)
        self.assertEqual(first.action_taken, ACTION_WARN)
        self.assertEqual(second.action_taken, ACTION_TIMEOUT)
        self.assertEqual(second.strike_count, 2)
        self.assertIn(("timeout", 10, "Hostile tone (medium)"), self.actions.calls)
        self.assertIn(("reply", "⏳ Timed out for 10m."), self.actions.calls)
        self.assertEqual(self.service.behavior.get(7).warning_count, 1)
        self.assertEqual(len(self.rows), 2)


class PipelineTests(ModerationServiceTestBase):
    async def test_disabled_guild_is_skipped_entirely(self):
        self.service.set_disabled(10, True)
        outcome = await self.service.handle_message(self._message("stupid bot"))

        self.assertEqual(outcome.skipped, "disabled")
        self.assertEqual(self.rows, [])
        self.assertEqual(self.classifier.classified, [])

        self.service.set_disabled(10, False)
        outcome = await self.service.handle_message(self._message("stupid bot"))
        self.assertEqual(outcome.action_taken, ACTION_WARN)

    async def test_shadowbanned_messages_are_deleted_and_logged(self):
        self.service.set_shadowbanned(7, True)
        outcome = await self.service.handle_message(self._message())

        self.assertTrue(outcome.deleted)
        self.assertEqual(self.actions.names(), ["delete"])
        self.assertEqual(self.rows[0]["action_taken"], ACTION_DELETE)
        self.assertEqual(self.rows[0]["reason"], REASON_SHADOWBANNED)
        self.assertEqual(self.classifier.classified, [])

        self.service.set_shadowbanned(7, False)
        self.assertFalse(self.service.is_shadowbanned(7))

    async def test_bot_insult_counts_once_with_explicit_category(self):
        self.classifier.categories = ExplicitCategories(flagged=True, harassment=True)
        outcome = await self.service.handle_message(self._message("stupid bot, honestly"))

        self.assertEqual(outcome.strike_count, 1)
        self.assertEqual(outcome.reason, "Harassment")
        self.assertEqual(self.service.ledger.get_count(7), 1)

    async def test_failed_action_is_recorded_on_the_single_row(self):
        for _ in range(2):
            self.service.ledger.record_strike(7)
        self.classifier.categories = ExplicitCategories(flagged=True, violence=True)
        self.actions.outcomes["kick"] = ActionOutcome(False, error="forbidden: kick")

        outcome = await self.service.handle_message(self._message("threatening text"))

        self.assertEqual(outcome.action_taken, ACTION_KICK)
        self.assertEqual(outcome.action_error, "forbidden: kick")
        self.assertNotIn("send", self.actions.names())
        self.assertEqual(len(self.rows), 1)
        self.assertEqual(self.rows[0]["action_error"], "forbidden: kick")
        self.assertEqual(self.service.ledger.get_count(7), 3)

    async def test_behavior_timeout_deletes_further_messages(self):
        self.classifier.tone = ToneSignal(toxicity="high")
        await self.service.handle_message(self._message("ugh whatever, this is garbage"))
        self.assertTrue(self.service.behavior.is_in_timeout(7))

        self.now[0] += 30
        self.classifier.tone = ToneSignal(passive_aggressive=True, toxicity="low")
        outcome = await self.service.handle_message(self._message("fine, sure, great idea"))

        self.assertTrue(outcome.deleted)
        self.assertEqual(outcome.action_taken, ACTION_DELETE)
        self.assertEqual(len(self.classifier.callouts), 1)
        self.assertEqual(self.rows[-1]["deleted_count"], 1)

    async def test_rate_flood_strikes_and_deletes_the_message(self):
        outcome = None
        for i in range(5):
            outcome = await self.service.handle_message(self._message(f"msg number {i}"))
            self.now[0] += 0.5

        self.assertEqual(outcome.spam_kind, "rate_flood")
        self.assertEqual(outcome.action_taken, ACTION_WARN)
        self.assertTrue(outcome.deleted)
        self.assertEqual(self.rows[-1]["deleted_count"], 1)

    async def test_image_attachments_go_to_evidence_channel(self):
        message = self._message(
            "look at this",
            attachments=[
                {"url": "https://cdn.example/a.png", "content_type": "image/png"},
                {"url": "https://cdn.example/b.txt", "content_type": "text/plain"},
            ],
        )
        await self.service.handle_message(message)

        self.assertEqual(
            self.actions.calls,
            [("log_evidence", "Image posted", "ImageLog", "https://cdn.example/a.png")],
        )

    async def test_incident_write_failure_is_not_fatal(self):
        async def failing_append(payload):
            raise RuntimeError("disk full")

        self.service.append_incident = failing_append
        outcome = await self.service.handle_message(self._message("stupid bot"))
        self.assertEqual(outcome.action_taken, ACTION_WARN)

    async def test_standing_and_forgive(self):
        await self.service.handle_message(self._message("stupid bot"))
        count, record = self.service.standing_for(7)
        self.assertEqual(count, 1)
        self.assertEqual(record.warning_count, 0)

        self.service.forgive(7)
        self.assertEqual(self.service.standing_for(7)[0], 0)


class CommunityVoteTests(ModerationServiceTestBase):
    async def test_vote_enforced_once_at_threshold(self):
        message = self._message("something the channel did not like")

        self.assertIsNone(await self.service.handle_community_vote(message, 2))
        outcome = await self.service.handle_community_vote(message, 3)
        again = await self.service.handle_community_vote(message, 4)

        self.assertEqual(outcome.action_taken, ACTION_WARN)
        self.assertEqual(outcome.reason, REASON_COMMUNITY_VOTE)
        self.assertTrue(outcome.deleted)
        self.assertIsNone(again)
        self.assertEqual(len(self.rows), 1)
        self.assertEqual(self.rows[0]["reason"], REASON_COMMUNITY_VOTE)
        self.assertEqual(self.service.ledger.get_count(7), 1)

    async def test_vote_ignored_in_disabled_guild(self):
        self.service.set_disabled(10, True)
        self.assertIsNone(await self.service.handle_community_vote(self._message(), 5))
        self.assertEqual(self.rows, [])


if __name__ == "__main__":
    unittest.main()
