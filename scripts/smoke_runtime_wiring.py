from __future__ import annotations

import asyncio
import importlib
import sqlite3
from types import SimpleNamespace


class _DummyCompletions:
    def create(self, *args, **kwargs):
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="{}"))]
        )


class _DummyModerations:
    def create(self, *args, **kwargs):
        return SimpleNamespace(results=[])


class _DummyClient:
    def __init__(self):
        self.chat = SimpleNamespace(completions=_DummyCompletions())
        self.moderations = _DummyModerations()


async def _noop_async(*args, **kwargs):
    return None


def _noop(*args, **kwargs):
    return None


def _try_import_or_skip(module_name: str, pip_name: str | None = None) -> bool:
    try:
        importlib.import_module(module_name)
        return True
    except ModuleNotFoundError:
        install_name = pip_name or module_name
        print(
            f"Smoke wiring check skipped: missing dependency '{module_name}'. "
            f"Install requirements and retry (e.g. `pip install {install_name}` "
            f"or `pip install -e .`)."
        )
        return False


def _main() -> int:
    if not _try_import_or_skip("discord", "discord.py"):
        return 0

    import discord
    from discord.ext import commands
    from misc.runtime_wiring import wire_bot_runtime
    from moderation.actions import DiscordActions
    from moderation.classifier import ContentClassifier
    from moderation.raid import JoinRateTracker
    from moderation.rules import default_moderation_rules
    from moderation.service import ModerationService
    from moderation.service import build_state_store
    from profiling.service import ProfileService

    bot = commands.Bot(command_prefix="!", intents=discord.Intents.none())
    client = _DummyClient()
    rules = default_moderation_rules()
    actions = DiscordActions(bot=bot)
    db_conn = sqlite3.connect(":memory:", check_same_thread=False)
    db_lock = asyncio.Lock()

    wire_bot_runtime(
        bot,
        user_is_owner=lambda _user: True,
        db_lock=db_lock,
        db_conn=db_conn,
        send_chunked=_noop_async,
        max_line_chars=600,
        moderation_service=ModerationService(
            store=build_state_store(100),
            classifier=ContentClassifier(client=client, rules=rules),
            actions=actions,
            rules=rules,
            append_incident=_noop_async,
        ),
        actions=actions,
        raid_tracker=JoinRateTracker(),
        exempt_channel_ids=set(),
        enable_profiling=True,
        profile_service=ProfileService(client=client, db_conn=db_conn, db_lock=db_lock),
        fetch_recent_incidents_sync=_noop,
        fetch_top_offenders_sync=_noop,
        fetch_user_behavior_summary_sync=_noop,
        cleanup_incidents_sync=_noop,
        list_schema_migrations_sync=_noop,
        incident_retention_days=30,
        cleanup_loop_func=_noop_async,
    )

    expected_commands = {
        "forgive",
        "disablemod",
        "enablemod",
        "shadowban",
        "unshadowban",
        "strikes",
        "sus",
        "susrecent",
        "suswho",
        "profile",
        "profilejson",
        "cleanup",
        "dbmigrations",
    }
    existing_commands = set(bot.all_commands.keys())
    missing = sorted(expected_commands - existing_commands)
    if missing:
        raise RuntimeError(f"Missing expected commands: {missing}")

    for event_name in ("on_ready", "on_message", "on_raw_reaction_add", "on_member_join"):
        if not callable(getattr(bot, event_name, None)):
            raise RuntimeError(f"Runtime event was not registered: {event_name}")

    db_conn.close()
    print("Smoke wiring check passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
