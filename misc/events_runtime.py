from __future__ import annotations

import asyncio

import discord
from discord.ext import commands

from config.defaults import COMMUNITY_VOTE_EMOJI
from misc.discord_gates import message_is_moderatable
from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps
from moderation.models import InboundMessage


def reaction_count(message: discord.Message, emoji: str) -> int:
    for reaction in getattr(message, "reactions", None) or []:
        if str(reaction.emoji) == emoji:
            return int(reaction.count)
    return 0


async def moderate_and_profile(message: discord.Message, deps: RuntimeDeps):
    inbound = InboundMessage.from_discord(message)
    try:
        outcome = await deps.moderation_service.handle_message(inbound)
    except Exception as e:
        print(f"[Moderation] pipeline error message={inbound.id}: {type(e).__name__}: {e}")
        return None

    if deps.enable_profiling and deps.profile_service is not None and outcome.skipped is None and not outcome.deleted:
        # Runs after moderation so a profiling failure never blocks enforcement.
        try:
            await deps.profile_service.observe_message(inbound)
        except Exception as e:
            print(f"[Profile] pipeline error user={inbound.author_id}: {type(e).__name__}: {e}")
    return outcome


def register_runtime_events(
    bot: commands.Bot,
    *,
    deps: RuntimeDeps,
    boot: RuntimeBootDeps,
) -> None:
    @bot.event
    async def on_ready():
        print(f"Warden is online as {bot.user}")
        if not getattr(bot, "_cleanup_task", None):
            bot._cleanup_task = asyncio.create_task(boot.cleanup_loop_func())
            print("[Cleanup] incident cleanup loop started")

    @bot.event
    async def on_message(message: discord.Message):
        if message.author.bot:
            return

        if (message.content or "").lstrip().startswith("!") and deps.user_is_owner(message.author):
            # Non-owner command text goes through moderation like any other message.
            ctx = await bot.get_context(message)
            if ctx.valid:
                await bot.invoke(ctx)
                return

        if not message_is_moderatable(message, deps.exempt_channel_ids):
            return
        await moderate_and_profile(message, deps)

    @bot.event
    async def on_raw_reaction_add(payload: discord.RawReactionActionEvent):
        if payload.guild_id is None or str(payload.emoji) != COMMUNITY_VOTE_EMOJI:
            return
        channel = bot.get_channel(payload.channel_id)
        try:
            if channel is None:
                channel = await bot.fetch_channel(payload.channel_id)
            message = await channel.fetch_message(payload.message_id)
        except discord.HTTPException as e:
            print(f"[Moderation] vote target unavailable message={payload.message_id}: {e}")
            return

        if not message_is_moderatable(message, deps.exempt_channel_ids):
            return
        try:
            await deps.moderation_service.handle_community_vote(
                InboundMessage.from_discord(message),
                reaction_count(message, COMMUNITY_VOTE_EMOJI),
            )
        except Exception as e:
            print(f"[Moderation] community vote error message={message.id}: {type(e).__name__}: {e}")

    @bot.event
    async def on_member_join(member: discord.Member):
        if not deps.raid_tracker.record_join(member.guild.id):
            return
        print(f"[Raid] join burst detected guild={member.guild.id}; locking channels")
        locked = await deps.actions.lock_guild(member.guild)
        print(f"[Raid] locked channels={locked} guild={member.guild.id}")
