from __future__ import annotations

import unittest
from types import SimpleNamespace
from unittest import mock

try:
    import discord
    from discord.ext import commands

    from misc.events_runtime import moderate_and_profile
    from misc.events_runtime import reaction_count
    from misc.events_runtime import register_runtime_events
    from misc.runtime_deps import RuntimeBootDeps
    from misc.runtime_deps import RuntimeDeps
except ModuleNotFoundError:
    discord = None

from moderation.service import ModerationOutcome


def _message(content: str = "hello", *, message_id: int = 11):
    return SimpleNamespace(
        id=message_id,
        author=SimpleNamespace(id=7, bot=False),
        channel=SimpleNamespace(id=20),
        guild=SimpleNamespace(id=1),
        content=content,
        attachments=[],
        created_at=None,
        reactions=[],
    )


class _FakeModeration:
    def __init__(self, outcome=None, error: Exception | None = None):
        self.outcome = outcome or ModerationOutcome()
        self.error = error
        self.seen = []

    async def handle_message(self, inbound):
        self.seen.append(inbound)
        if self.error is not None:
            raise self.error
        return self.outcome


class _FakeProfiles:
    def __init__(self):
        self.observed = []

    async def observe_message(self, inbound):
        self.observed.append(inbound.id)


class _FakeActions:
    def __init__(self):
        self.locked = []

    async def lock_guild(self, guild):
        self.locked.append(guild.id)
        return 3


def _deps(moderation, profiles, *, enable_profiling=True, raid_trips=False, actions=None, owner=False):
    return RuntimeDeps(
        moderation_service=moderation,
        actions=actions or _FakeActions(),
        raid_tracker=SimpleNamespace(record_join=lambda _guild_id: raid_trips),
        exempt_channel_ids=set(),
        user_is_owner=lambda _user: owner,
        enable_profiling=enable_profiling,
        profile_service=profiles,
    )


@unittest.skipIf(discord is None, "discord.py not installed")
class ModerateAndProfileTests(unittest.IsolatedAsyncioTestCase):
    async def test_profiles_messages_that_were_kept(self):
        moderation = _FakeModeration()
        profiles = _FakeProfiles()

        await moderate_and_profile(_message(), _deps(moderation, profiles))

        self.assertEqual(moderation.seen[0].content, "hello")
        self.assertEqual(moderation.seen[0].guild_id, 1)
        self.assertEqual(profiles.observed, [11])

    async def test_deleted_or_skipped_messages_are_not_profiled(self):
        profiles = _FakeProfiles()
        await moderate_and_profile(_message(), _deps(_FakeModeration(ModerationOutcome(deleted=True)), profiles))
        await moderate_and_profile(_message(), _deps(_FakeModeration(ModerationOutcome(skipped="disabled")), profiles))
        await moderate_and_profile(_message(), _deps(_FakeModeration(), profiles, enable_profiling=False))
        self.assertEqual(profiles.observed, [])

    async def test_pipeline_error_is_contained(self):
        profiles = _FakeProfiles()
        outcome = await moderate_and_profile(
            _message(),
            _deps(_FakeModeration(error=RuntimeError("boom")), profiles),
        )
        self.assertIsNone(outcome)
        self.assertEqual(profiles.observed, [])

    def test_reaction_count(self):
        message = _message()
        message.reactions = [
            SimpleNamespace(emoji="\U0001F44D", count=9),
            SimpleNamespace(emoji="\U0001F6AB", count=3),
        ]
        self.assertEqual(reaction_count(message, "\U0001F6AB"), 3)
        self.assertEqual(reaction_count(message, "\U0001F525"), 0)


@unittest.skipIf(discord is None, "discord.py not installed")
class RuntimeEventsTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.bot = commands.Bot(command_prefix="!", intents=discord.Intents.none())

    async def asyncTearDown(self):
        await self.bot.close()

    def _register(self, deps):
        async def _never():
            return None

        register_runtime_events(self.bot, deps=deps, boot=RuntimeBootDeps(cleanup_loop_func=_never))

    async def test_member_join_burst_locks_guild(self):
        actions = _FakeActions()
        self._register(_deps(_FakeModeration(), _FakeProfiles(), raid_trips=True, actions=actions))

        await self.bot.on_member_join(SimpleNamespace(guild=SimpleNamespace(id=5)))

        self.assertEqual(actions.locked, [5])

    async def test_member_join_below_threshold_does_nothing(self):
        actions = _FakeActions()
        self._register(_deps(_FakeModeration(), _FakeProfiles(), raid_trips=False, actions=actions))

        await self.bot.on_member_join(SimpleNamespace(guild=SimpleNamespace(id=5)))

        self.assertEqual(actions.locked, [])

    async def test_bot_authors_are_ignored(self):
        moderation = _FakeModeration()
        self._register(_deps(moderation, _FakeProfiles()))

        message = _message()
        message.author.bot = True
        await self.bot.on_message(message)

        self.assertEqual(moderation.seen, [])

    async def test_plain_guild_message_is_moderated(self):
        moderation = _FakeModeration()
        self._register(_deps(moderation, _FakeProfiles()))

        await self.bot.on_message(_message("just chatting"))

        self.assertEqual(len(moderation.seen), 1)

    async def test_non_owner_command_text_is_still_moderated(self):
        moderation = _FakeModeration()
        self._register(_deps(moderation, _FakeProfiles(), owner=False))
        content = "!sus you are a worthless idiot, stupid bot"

        with mock.patch.object(self.bot, "invoke", new=mock.AsyncMock()) as invoke:
            await self.bot.on_message(_message(content))

        invoke.assert_not_awaited()
        self.assertEqual([m.content for m in moderation.seen], [content])

    async def test_owner_command_is_invoked_without_moderation(self):
        moderation = _FakeModeration()
        self._register(_deps(moderation, _FakeProfiles(), owner=True))
        ctx = SimpleNamespace(valid=True)

        with mock.patch.object(self.bot, "get_context", new=mock.AsyncMock(return_value=ctx)), \
                mock.patch.object(self.bot, "invoke", new=mock.AsyncMock()) as invoke:
            await self.bot.on_message(_message("!strikes <@55>"))

        invoke.assert_awaited_once_with(ctx)
        self.assertEqual(moderation.seen, [])

    async def test_owner_text_that_is_not_a_command_is_moderated(self):
        moderation = _FakeModeration()
        self._register(_deps(moderation, _FakeProfiles(), owner=True))

        with mock.patch.object(self.bot, "get_context", new=mock.AsyncMock(return_value=SimpleNamespace(valid=False))):
            await self.bot.on_message(_message("!nope not a command"))

        self.assertEqual(len(moderation.seen), 1)


if __name__ == "__main__":
    unittest.main()
