import os
import sqlite3
import asyncio
import discord
from discord.ext import commands
from openai import OpenAI
from config.defaults import DEFAULT_CLEANUP_HOUR_LOCAL
from config.defaults import DEFAULT_EXTERNAL_TIMEOUT_SECONDS
from config.defaults import DEFAULT_INCIDENT_RETENTION_DAYS
from config.defaults import DEFAULT_MODERATION_MODEL
from config.defaults import DEFAULT_RULES_FILENAME
from config.defaults import DEFAULT_STATE_MAX_KEYS
from config.defaults import DEFAULT_TONE_MODEL
from config.defaults import DISCORD_MAX_MESSAGE_LEN
from config.env import env_flag
from config.env import env_float
from config.env import env_int
from config.env import parse_id_set
from db.migrate import apply_sqlite_migrations
from db.migrate import list_schema_migrations_sync
from db.migrate import table_columns_sync
from db.migrate import verify_schema_sync
from jobs.service import cleanup_loop as cleanup_loop_service
from misc.runtime_wiring import wire_bot_runtime
from moderation.actions import DiscordActions
from moderation.classifier import ContentClassifier
from moderation.raid import JoinRateTracker
from moderation.rules import load_moderation_rules
from moderation.service import ModerationService
from moderation.service import build_state_store
from moderation.store import INCIDENT_COLUMNS
from moderation.store import cleanup_incidents_sync
from moderation.store import fetch_recent_incidents_sync
from moderation.store import fetch_top_offenders_sync
from moderation.store import fetch_user_behavior_summary_sync
from moderation.store import insert_incident_sync
from profiling.service import ProfileService

# =========================
# ENV
# =========================
DISCORD_TOKEN = os.getenv("DISCORD_TOKEN")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")

if not DISCORD_TOKEN:
    raise RuntimeError("Missing DISCORD_TOKEN env var")
if not OPENAI_API_KEY:
    raise RuntimeError("Missing OPENAI_API_KEY env var")

TONE_MODEL = os.getenv("WARDEN_TONE_MODEL", DEFAULT_TONE_MODEL).strip() or DEFAULT_TONE_MODEL
MODERATION_MODEL = os.getenv("WARDEN_MODERATION_MODEL", DEFAULT_MODERATION_MODEL).strip() or DEFAULT_MODERATION_MODEL
EXTERNAL_TIMEOUT_SECONDS = env_float("WARDEN_EXTERNAL_TIMEOUT_SECONDS", DEFAULT_EXTERNAL_TIMEOUT_SECONDS)
ENABLE_PROFILING = env_flag("WARDEN_ENABLE_PROFILING", True)

OWNER_USER_IDS = parse_id_set(os.getenv("WARDEN_OWNER_USER_IDS"))
EXEMPT_CHANNEL_IDS = parse_id_set(os.getenv("WARDEN_EXEMPT_CHANNEL_IDS"))
MOD_LOG_CHANNEL_ID = env_int("WARDEN_MOD_LOG_CHANNEL_ID", 0)

INCIDENT_RETENTION_DAYS = max(1, env_int("WARDEN_INCIDENT_RETENTION_DAYS", DEFAULT_INCIDENT_RETENTION_DAYS))
CLEANUP_HOUR_LOCAL = env_int("WARDEN_CLEANUP_HOUR_LOCAL", DEFAULT_CLEANUP_HOUR_LOCAL)
if not 0 <= CLEANUP_HOUR_LOCAL <= 23:
    print(
        f"[CFG] invalid WARDEN_CLEANUP_HOUR_LOCAL={CLEANUP_HOUR_LOCAL!r}; "
        f"falling back to {DEFAULT_CLEANUP_HOUR_LOCAL!r}"
    )
    CLEANUP_HOUR_LOCAL = DEFAULT_CLEANUP_HOUR_LOCAL
STATE_MAX_KEYS = max(1, env_int("WARDEN_STATE_MAX_KEYS", DEFAULT_STATE_MAX_KEYS))

print(
    f"[CFG] tone_model={TONE_MODEL} moderation_model={MODERATION_MODEL} "
    f"timeout_s={EXTERNAL_TIMEOUT_SECONDS:g} profiling={ENABLE_PROFILING} "
    f"owner_ids={len(OWNER_USER_IDS)} exempt_channels={len(EXEMPT_CHANNEL_IDS)} "
    f"mod_log_channel={MOD_LOG_CHANNEL_ID or '(off)'}"
)
print(
    f"[CFG] retention_days={INCIDENT_RETENTION_DAYS} cleanup_hour={CLEANUP_HOUR_LOCAL} "
    f"state_max_keys={STATE_MAX_KEYS}"
)

_RAW_RULES_PATH = os.getenv("WARDEN_RULES_PATH")
RULES_PATH = _RAW_RULES_PATH or os.path.join(
    os.path.dirname(os.path.abspath(__file__)), "config", DEFAULT_RULES_FILENAME
)
MODERATION_RULES, MODERATION_RULES_WARNING = load_moderation_rules(RULES_PATH)
if MODERATION_RULES_WARNING:
    print(f"[CFG] moderation_rules={MODERATION_RULES.version} source=fallback path={RULES_PATH}")
    print(f"[CFG] {MODERATION_RULES_WARNING}")
else:
    print(
        f"[CFG] moderation_rules={MODERATION_RULES.version} "
        f"source={'env_override' if _RAW_RULES_PATH else 'file'} path={RULES_PATH} "
        f"insult_phrases={len(MODERATION_RULES.bot_insult_phrases)}"
    )

# Railway persistent path (set this to your mounted volume path)
DB_PATH = os.getenv("WARDEN_DB_PATH", "warden.db")

client = OpenAI(api_key=OPENAI_API_KEY)

# =========================
# SQLITE
# =========================
REQUIRED_SCHEMA = {
    "moderation_incidents": INCIDENT_COLUMNS,
    "user_behavior_profiles": ("user_id", "profile_json", "samples", "updated_at_utc"),
    "user_quirks": ("user_id", "guild_id", "quirk", "created_at_utc"),
}


def init_db(db_path: str) -> sqlite3.Connection:
    # check_same_thread=False because discord.py event loop + to_thread usage
    conn = sqlite3.connect(db_path, check_same_thread=False)
    cur = conn.cursor()

    # Performance + safety defaults
    cur.execute("PRAGMA journal_mode=WAL;")
    cur.execute("PRAGMA synchronous=NORMAL;")
    repo_root = os.path.dirname(os.path.abspath(__file__))
    apply_sqlite_migrations(conn, os.path.join(repo_root, "migrations"))

    # ---- Schema verification (logs show up in Railway) ----
    problems = verify_schema_sync(conn, REQUIRED_SCHEMA)
    for table in REQUIRED_SCHEMA:
        table_problems = [p for p in problems if p.startswith(f"{table}:")]
        print(f"[DB] {table} schema OK={not table_problems} problems={table_problems}")
    if problems:
        print(f"[DB] moderation_incidents cols: {table_columns_sync(conn, 'moderation_incidents')}")

    conn.commit()
    return conn


db_conn = init_db(DB_PATH)
print(f"[DB] Using DB_PATH={DB_PATH}")
print(f"[DB] DB file exists? {os.path.exists(DB_PATH)}")
db_lock = asyncio.Lock()


async def append_incident(payload: dict) -> int:
    async with db_lock:
        return await asyncio.to_thread(insert_incident_sync, db_conn, payload)


# =========================
# DISCORD HELPERS
# =========================
def chunk_text(text: str, limit: int = DISCORD_MAX_MESSAGE_LEN) -> list[str]:
    text = text or ""
    if len(text) <= limit:
        return [text]

    chunks = []
    remaining = text

    while len(remaining) > limit:
        # Prefer splitting on paragraph, then newline, then space
        split_at = remaining.rfind("\n\n", 0, limit)
        if split_at == -1:
            split_at = remaining.rfind("\n", 0, limit)
        if split_at == -1:
            split_at = remaining.rfind(" ", 0, limit)
        if split_at == -1:
            split_at = limit

        chunk = remaining[:split_at].strip()
        if chunk:
            chunks.append(chunk)

        remaining = remaining[split_at:].strip()

    if remaining:
        chunks.append(remaining)

    return chunks


async def send_chunked(channel: discord.abc.Messageable, text: str) -> None:
    for part in chunk_text(text, DISCORD_MAX_MESSAGE_LEN):
        await channel.send(part)


def user_is_owner(user: discord.abc.User) -> bool:
    uid = int(getattr(user, "id", 0) or 0)
    return bool(uid) and uid in OWNER_USER_IDS


# =========================
# DISCORD BOT
# =========================
intents = discord.Intents.default()
intents.message_content = True
intents.members = True
intents.reactions = True

bot = commands.Bot(command_prefix="!", intents=intents)

# =========================
# MODERATION + PROFILING
# =========================
state_store = build_state_store(STATE_MAX_KEYS)
actions = DiscordActions(
    bot=bot,
    mod_log_channel_id=MOD_LOG_CHANNEL_ID,
    timeout_seconds=EXTERNAL_TIMEOUT_SECONDS,
)
classifier = ContentClassifier(
    client=client,
    rules=MODERATION_RULES,
    tone_model=TONE_MODEL,
    moderation_model=MODERATION_MODEL,
    timeout_seconds=EXTERNAL_TIMEOUT_SECONDS,
)
moderation_service = ModerationService(
    store=state_store,
    classifier=classifier,
    actions=actions,
    rules=MODERATION_RULES,
    append_incident=append_incident,
    timeout_seconds=EXTERNAL_TIMEOUT_SECONDS,
)
profile_service = ProfileService(
    client=client,
    db_conn=db_conn,
    db_lock=db_lock,
    model=TONE_MODEL,
    timeout_seconds=EXTERNAL_TIMEOUT_SECONDS,
)


async def cleanup_loop() -> None:
    return await cleanup_loop_service(
        db_lock=db_lock,
        db_conn=db_conn,
        cleanup_incidents_sync=cleanup_incidents_sync,
        retention_days=INCIDENT_RETENTION_DAYS,
        hour_local=CLEANUP_HOUR_LOCAL,
    )


wire_bot_runtime(
    bot,
    user_is_owner=user_is_owner,
    db_lock=db_lock,
    db_conn=db_conn,
    send_chunked=send_chunked,
    max_line_chars=600,
    moderation_service=moderation_service,
    actions=actions,
    raid_tracker=JoinRateTracker(),
    exempt_channel_ids=EXEMPT_CHANNEL_IDS,
    enable_profiling=ENABLE_PROFILING,
    profile_service=profile_service,
    fetch_recent_incidents_sync=fetch_recent_incidents_sync,
    fetch_top_offenders_sync=fetch_top_offenders_sync,
    fetch_user_behavior_summary_sync=fetch_user_behavior_summary_sync,
    cleanup_incidents_sync=cleanup_incidents_sync,
    list_schema_migrations_sync=list_schema_migrations_sync,
    incident_retention_days=INCIDENT_RETENTION_DAYS,
    cleanup_loop_func=cleanup_loop,
)

bot.run(DISCORD_TOKEN)
