from __future__ import annotations

import asyncio
import time
from datetime import timedelta

import discord

from config.defaults import DEFAULT_EXTERNAL_TIMEOUT_SECONDS
from config.defaults import DUPLICATE_MAX_AGE_SECONDS
from config.defaults import DUPLICATE_SCAN_LIMIT
from moderation.models import ActionOutcome
from moderation.models import InboundMessage
from moderation.spam import is_matching_duplicate


class DiscordActions:
    """
    Platform primitives used by the moderation service.

    A target that is already gone (NotFound, member left) counts as success.
    Missing permissions, HTTP errors and timeouts are reported back as a failed
    outcome; nothing is retried.
    """

    def __init__(
        self,
        *,
        bot,
        mod_log_channel_id: int = 0,
        timeout_seconds: float = DEFAULT_EXTERNAL_TIMEOUT_SECONDS,
    ) -> None:
        self.bot = bot
        self.mod_log_channel_id = int(mod_log_channel_id or 0)
        self.timeout_seconds = float(timeout_seconds)

    async def _guarded(self, label: str, coro) -> ActionOutcome:
        try:
            await asyncio.wait_for(coro, timeout=self.timeout_seconds)
        except discord.NotFound:
            return ActionOutcome(True, detail="target already gone")
        except discord.Forbidden as e:
            print(f"[Action] {label} forbidden: {e}")
            return ActionOutcome(False, error=f"forbidden: {label}")
        except asyncio.TimeoutError:
            print(f"[Action] {label} timed out after {self.timeout_seconds:.0f}s")
            return ActionOutcome(False, error=f"timeout: {label}")
        except discord.HTTPException as e:
            print(f"[Action] {label} failed: {e}")
            return ActionOutcome(False, error=f"http {getattr(e, 'status', '?')}: {label}")
        return ActionOutcome(True)

    async def reply(self, message: InboundMessage, text: str) -> ActionOutcome:
        return await self._guarded("reply", message.raw.reply(text))

    async def send(self, message: InboundMessage, text: str) -> ActionOutcome:
        return await self._guarded("send", message.raw.channel.send(text))

    async def delete(self, message: InboundMessage) -> ActionOutcome:
        try:
            await asyncio.wait_for(message.raw.delete(), timeout=self.timeout_seconds)
        except (discord.HTTPException, asyncio.TimeoutError):
            return ActionOutcome(False)
        return ActionOutcome(True)

    def _member_for(self, message: InboundMessage):
        author = message.raw.author
        if hasattr(author, "timeout"):
            return author
        guild = message.raw.guild
        if guild is None:
            return None
        return guild.get_member(int(message.author_id))

    async def timeout(self, message: InboundMessage, minutes: int, reason: str) -> ActionOutcome:
        member = self._member_for(message)
        if member is None:
            return ActionOutcome(True, detail="member not in guild")
        return await self._guarded("timeout", member.timeout(timedelta(minutes=int(minutes)), reason=reason))

    async def kick(self, message: InboundMessage, reason: str) -> ActionOutcome:
        guild = message.raw.guild
        return await self._guarded("kick", guild.kick(discord.Object(id=int(message.author_id)), reason=reason))

    async def ban(self, message: InboundMessage, reason: str) -> ActionOutcome:
        guild = message.raw.guild
        return await self._guarded("ban", guild.ban(discord.Object(id=int(message.author_id)), reason=reason))

    async def delete_recent_duplicates(
        self,
        message: InboundMessage,
        normalized_target: str,
        *,
        scan_limit: int = DUPLICATE_SCAN_LIMIT,
        max_age_seconds: float = DUPLICATE_MAX_AGE_SECONDS,
    ) -> int:
        now = time.time()
        deleted: list[int] = []

        async def _sweep():
            async for candidate in message.raw.channel.history(limit=int(scan_limit)):
                created = getattr(candidate, "created_at", None)
                if not is_matching_duplicate(
                    author_id=int(candidate.author.id),
                    content=candidate.content,
                    created_at=created.timestamp() if created is not None else now,
                    target_author_id=message.author_id,
                    normalized_target=normalized_target,
                    now=now,
                    max_age_seconds=max_age_seconds,
                ):
                    continue
                outcome = await self._guarded(f"delete duplicate {candidate.id}", candidate.delete())
                if outcome.ok:
                    deleted.append(int(candidate.id))

        # One bound for the whole sweep; deletions made before it expires still count.
        try:
            await asyncio.wait_for(_sweep(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            print(f"[Action] duplicate scan timed out in channel={message.channel_id} after {self.timeout_seconds:.0f}s")
        except discord.HTTPException as e:
            print(f"[Action] duplicate scan failed in channel={message.channel_id}: {e}")
        return len(deleted)

    async def _mod_log_channel(self):
        channel = self.bot.get_channel(self.mod_log_channel_id)
        if channel is None:
            channel = await asyncio.wait_for(
                self.bot.fetch_channel(self.mod_log_channel_id),
                timeout=self.timeout_seconds,
            )
        return channel

    async def log_evidence(
        self,
        message: InboundMessage,
        reason: str,
        action: str,
        *,
        image_url: str | None = None,
    ) -> None:
        if not self.mod_log_channel_id:
            return
        try:
            channel = await self._mod_log_channel()
            embed = discord.Embed(
                title=f"Moderation Action: {action}",
                description=f"**User:** {message.author_name} ({message.author_id})\n**Reason:** {reason}",
                timestamp=discord.utils.utcnow(),
            )
            embed.add_field(name="Message", value=(message.content or "(no content)")[:1024], inline=False)
            if image_url:
                embed.set_image(url=image_url)
            await asyncio.wait_for(channel.send(embed=embed), timeout=self.timeout_seconds)
        except Exception as e:
            print(f"[ModLog] evidence post failed: {e}")

    async def lock_guild(self, guild) -> int:
        everyone = guild.default_role
        locked = 0
        for channel in guild.text_channels:
            if not channel.permissions_for(everyone).send_messages:
                continue
            outcome = await self._guarded(
                f"lock #{channel.id}",
                channel.set_permissions(everyone, send_messages=False, reason="Anti-raid lockdown"),
            )
            if outcome.ok:
                locked += 1
        if guild.system_channel is not None:
            await self._guarded(
                "raid notice",
                guild.system_channel.send("\U0001F6A8 Anti-raid mode activated: chat locked."),
            )
        return locked
