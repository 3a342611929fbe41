from __future__ import annotations

import asyncio
import json

from discord.ext import commands
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from profiling.service import format_profile_report


def _first_mention(ctx):
    mentions = getattr(ctx.message, "mentions", None) or []
    return mentions[0] if mentions else None


def _display_name(user) -> str:
    for attr in ("display_name", "global_name", "name"):
        value = getattr(user, attr, None)
        if value:
            return str(value)
    return str(getattr(user, "id", "unknown"))


def _number(token: str | None, default: float) -> float:
    try:
        value = float(str(token or "").strip())
    except ValueError:
        return default
    return value if value > 0 else default


def _fmt_hours(hours: float) -> str:
    return f"{hours:g}"


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    async def _owner_guard(ctx: commands.Context) -> bool:
        if not gates.in_guild(ctx):
            return False
        if not gates.user_is_owner(ctx.author):
            await ctx.send("This command is owner-only.")
            return False
        return True

    async def _target_or_usage(ctx: commands.Context, usage: str):
        target = _first_mention(ctx)
        if target is None:
            await ctx.send(f"Usage: `{usage}`")
        return target

    @bot.command(name="forgive")
    async def cmd_forgive(ctx: commands.Context, *, raw: str = ""):
        if not await _owner_guard(ctx):
            return
        target = await _target_or_usage(ctx, "!forgive @user")
        if target is None:
            return
        deps.moderation_service.forgive(int(target.id))
        print(f"[Moderation] strikes forgiven user={target.id} by={ctx.author.id}")
        await ctx.send(f"\U0001F64F Forgiven {_display_name(target)}.")

    @bot.command(name="disablemod")
    async def cmd_disablemod(ctx: commands.Context):
        if not await _owner_guard(ctx):
            return
        deps.moderation_service.set_disabled(int(ctx.guild.id), True)
        await ctx.send("\U0001F6AB Moderator disabled here.")

    @bot.command(name="enablemod")
    async def cmd_enablemod(ctx: commands.Context):
        if not await _owner_guard(ctx):
            return
        deps.moderation_service.set_disabled(int(ctx.guild.id), False)
        await ctx.send("✅ Moderator enabled here.")

    @bot.command(name="shadowban")
    async def cmd_shadowban(ctx: commands.Context, *, raw: str = ""):
        if not await _owner_guard(ctx):
            return
        target = await _target_or_usage(ctx, "!shadowban @user")
        if target is None:
            return
        deps.moderation_service.set_shadowbanned(int(target.id), True)
        await ctx.send(f"\U0001F47B Shadowbanned {_display_name(target)}.")

    @bot.command(name="unshadowban")
    async def cmd_unshadowban(ctx: commands.Context, *, raw: str = ""):
        if not await _owner_guard(ctx):
            return
        target = await _target_or_usage(ctx, "!unshadowban @user")
        if target is None:
            return
        deps.moderation_service.set_shadowbanned(int(target.id), False)
        await ctx.send(f"\U0001F31E Un-shadowbanned {_display_name(target)}.")

    @bot.command(name="strikes")
    async def cmd_strikes(ctx: commands.Context, *, raw: str = ""):
        if not await _owner_guard(ctx):
            return
        target = await _target_or_usage(ctx, "!strikes @user")
        if target is None:
            return
        count, behavior = deps.moderation_service.standing_for(int(target.id))
        await ctx.send(
            f"⚖️ <@{int(target.id)}>: strikes={count}, "
            f"tone warnings={behavior.warning_count}, pattern={behavior.pattern}"
        )

    @bot.command(name="sus")
    async def cmd_sus(ctx: commands.Context, *, raw: str = ""):
        if not await _owner_guard(ctx):
            return
        target = await _target_or_usage(ctx, "!sus @user [hours]")
        if target is None:
            return
        parts = raw.split()
        hours = _number(parts[-1] if parts else None, 24)
        async with deps.db_lock:
            s = await asyncio.to_thread(
                deps.fetch_user_behavior_summary_sync,
                deps.db_conn,
                int(target.id),
                hours,
                guild_id=int(ctx.guild.id),
            )
        await ctx.send(
            f"\U0001F575️ Report for <@{int(target.id)}> (last {_fmt_hours(hours)}h):\n"
            f"• incidents: {s['total']}\n"
            f"• passive-aggr: {s['passive_aggr']}\n"
            f"• condescending: {s['condescending']}\n"
            f"• provocation: {s['provocation']}\n"
            f"• actions taken: {s['actions']}"
        )

    @bot.command(name="susrecent")
    async def cmd_susrecent(ctx: commands.Context, *, raw: str = ""):
        if not await _owner_guard(ctx):
            return
        parts = raw.split()
        hours = _number(parts[0] if parts else None, 24)
        limit = int(_number(parts[1] if len(parts) > 1 else None, 10))
        async with deps.db_lock:
            rows = await asyncio.to_thread(
                deps.fetch_recent_incidents_sync, deps.db_conn, int(ctx.guild.id), hours, limit
            )
        if not rows:
            await ctx.send(f"No incidents in last {_fmt_hours(hours)}h.")
            return

        lines = [f"\U0001F9FE Recent incidents (last {_fmt_hours(hours)}h):"]
        for r in rows:
            flags = " ".join(
                label
                for label, key in (("PA", "passive_aggr"), ("COND", "condescending"), ("PROV", "provocation"))
                if r.get(key)
            )
            reason = r.get("reason") or r.get("spam_kind") or ""
            line = f"• <@{r['user_id']}> {r.get('action_taken') or 'none'} {flags} {reason}"
            lines.append(" ".join(line.split())[: deps.max_line_chars])
        await deps.send_chunked(ctx.channel, "\n".join(lines))

    @bot.command(name="suswho")
    async def cmd_suswho(ctx: commands.Context, *, raw: str = ""):
        if not await _owner_guard(ctx):
            return
        parts = raw.split()
        hours = _number(parts[0] if parts else None, 24)
        limit = int(_number(parts[1] if len(parts) > 1 else None, 5))
        async with deps.db_lock:
            rows = await asyncio.to_thread(
                deps.fetch_top_offenders_sync, deps.db_conn, int(ctx.guild.id), hours, limit
            )
        if not rows:
            await ctx.send(f"Clean slate in last {_fmt_hours(hours)}h.")
            return

        lines = [f"\U0001F3F4 Top suspects (last {_fmt_hours(hours)}h):"]
        for i, r in enumerate(rows, start=1):
            lines.append(
                f"{i}. <@{r['user_id']}> - actions: {r['actions']}, "
                f"tone flags: {r['tone_flags']}, incidents: {r['incidents']}"
            )
        await deps.send_chunked(ctx.channel, "\n".join(lines))

    @bot.command(name="profile")
    async def cmd_profile(ctx: commands.Context, *, raw: str = ""):
        if not await _owner_guard(ctx):
            return
        target = await _target_or_usage(ctx, "!profile @user")
        if target is None:
            return
        profile = await deps.profile_service.get_profile(int(target.id))
        quirks = await deps.profile_service.recent_quirks(int(target.id)) if profile else []
        await deps.send_chunked(ctx.channel, format_profile_report(int(target.id), profile, quirks))

    @bot.command(name="profilejson")
    async def cmd_profilejson(ctx: commands.Context, *, raw: str = ""):
        if not await _owner_guard(ctx):
            return
        target = await _target_or_usage(ctx, "!profilejson @user")
        if target is None:
            return
        profile = await deps.profile_service.get_profile(int(target.id))
        body = json.dumps(profile or {}, indent=2, ensure_ascii=False)
        await deps.send_chunked(ctx.channel, "```json\n" + body[:7000] + "\n```")

    @bot.command(name="cleanup")
    async def cmd_cleanup(ctx: commands.Context):
        if not await _owner_guard(ctx):
            return
        async with deps.db_lock:
            removed = await asyncio.to_thread(
                deps.cleanup_incidents_sync, deps.db_conn, int(deps.incident_retention_days)
            )
        print(f"[Cleanup] manual cleanup removed incidents={removed}")
        await ctx.send(f"\U0001F9F9 Database cleanup completed! Removed {removed} old incident(s).")

    @bot.command(name="dbmigrations")
    async def cmd_dbmigrations(ctx: commands.Context, limit: int = 30):
        if not await _owner_guard(ctx):
            return

        lim = max(1, min(int(limit or 30), 200))
        async with deps.db_lock:
            rows = await asyncio.to_thread(deps.list_schema_migrations_sync, deps.db_conn, lim)

        if not rows:
            await ctx.send("No schema migrations found.")
            return

        lines = [f"Applied schema migrations (latest {len(rows)}):"]
        for version, name, applied_at in rows:
            lines.append(f"- {version}_{name} @ {applied_at}")

        await deps.send_chunked(ctx.channel, "```\n" + "\n".join(lines)[:7000] + "\n```")
