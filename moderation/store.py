from __future__ import annotations

import sqlite3
import time
from datetime import datetime, timezone
from typing import Any

INCIDENT_COLUMNS = (
    "guild_id",
    "channel_id",
    "user_id",
    "message_id",
    "content",
    "harassment",
    "hate",
    "violence",
    "passive_aggr",
    "condescending",
    "provocation",
    "toxicity",
    "spam_kind",
    "action_taken",
    "reason",
    "action_error",
    "deleted_count",
    "created_at_utc",
    "created_ts",
)

TONE_FLAGS_SQL = "(passive_aggr + condescending + provocation)"
INCIDENT_SQL = (
    "(harassment = 1 OR hate = 1 OR violence = 1 OR passive_aggr = 1 OR condescending = 1 "
    "OR provocation = 1 OR COALESCE(toxicity, 'none') != 'none' OR spam_kind IS NOT NULL "
    "OR COALESCE(action_taken, 'none') != 'none')"
)


def _iso_to_ts(iso_utc: str | None) -> int:
    if not iso_utc:
        return int(time.time())
    try:
        dt = datetime.fromisoformat(str(iso_utc))
    except ValueError:
        return int(time.time())
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def _cutoff_ts(hours: float, now_ts: int | None = None) -> int:
    now_ts = int(time.time()) if now_ts is None else int(now_ts)
    return now_ts - int(max(0.0, float(hours)) * 3600)


def _row_dicts(cur: sqlite3.Cursor) -> list[dict[str, Any]]:
    cols = [d[0] for d in cur.description or ()]
    return [dict(zip(cols, row)) for row in cur.fetchall()]


def insert_incident_sync(conn: sqlite3.Connection, payload: dict[str, Any]) -> int:
    row = dict(payload)
    row["created_ts"] = int(row.get("created_ts") or _iso_to_ts(row.get("created_at_utc")))
    placeholders = ", ".join("?" for _ in INCIDENT_COLUMNS)
    cur = conn.cursor()
    cur.execute(
        f"INSERT INTO moderation_incidents ({', '.join(INCIDENT_COLUMNS)}) VALUES ({placeholders})",
        tuple(row.get(col) for col in INCIDENT_COLUMNS),
    )
    conn.commit()
    return int(cur.lastrowid)


def fetch_recent_incidents_sync(
    conn: sqlite3.Connection,
    guild_id: int,
    hours: float = 24,
    limit: int = 10,
    *,
    now_ts: int | None = None,
) -> list[dict[str, Any]]:
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT id, guild_id, channel_id, user_id, message_id, content,
               harassment, hate, violence, passive_aggr, condescending, provocation,
               toxicity, spam_kind, action_taken, reason, action_error, deleted_count,
               created_at_utc
        FROM moderation_incidents
        WHERE guild_id = ?
          AND created_ts >= ?
          AND {INCIDENT_SQL}
        ORDER BY created_ts DESC, id DESC
        LIMIT ?
        """,
        (int(guild_id), _cutoff_ts(hours, now_ts), max(1, min(int(limit), 100))),
    )
    return _row_dicts(cur)


def fetch_top_offenders_sync(
    conn: sqlite3.Connection,
    guild_id: int,
    hours: float = 24,
    limit: int = 5,
    *,
    now_ts: int | None = None,
) -> list[dict[str, Any]]:
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT user_id,
               SUM(CASE WHEN COALESCE(action_taken, 'none') != 'none' THEN 1 ELSE 0 END) AS actions,
               SUM({TONE_FLAGS_SQL}) AS tone_flags,
               COUNT(*) AS incidents
        FROM moderation_incidents
        WHERE guild_id = ?
          AND created_ts >= ?
          AND {INCIDENT_SQL}
        GROUP BY user_id
        ORDER BY actions DESC, tone_flags DESC, incidents DESC, user_id ASC
        LIMIT ?
        """,
        (int(guild_id), _cutoff_ts(hours, now_ts), max(1, min(int(limit), 50))),
    )
    return _row_dicts(cur)


def fetch_user_behavior_summary_sync(
    conn: sqlite3.Connection,
    user_id: int,
    hours: float = 24,
    *,
    guild_id: int | None = None,
    now_ts: int | None = None,
) -> dict[str, int]:
    where = ["user_id = ?", "created_ts >= ?", INCIDENT_SQL]
    params: list[Any] = [int(user_id), _cutoff_ts(hours, now_ts)]
    if guild_id is not None:
        where.append("guild_id = ?")
        params.append(int(guild_id))
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT COUNT(*) AS total,
               COALESCE(SUM(passive_aggr), 0) AS passive_aggr,
               COALESCE(SUM(condescending), 0) AS condescending,
               COALESCE(SUM(provocation), 0) AS provocation,
               COALESCE(SUM(CASE WHEN COALESCE(action_taken, 'none') != 'none' THEN 1 ELSE 0 END), 0) AS actions
        FROM moderation_incidents
        WHERE {' AND '.join(where)}
        """,
        tuple(params),
    )
    rows = _row_dicts(cur)
    row = rows[0] if rows else {}
    return {k: int(row.get(k) or 0) for k in ("total", "passive_aggr", "condescending", "provocation", "actions")}


def cleanup_incidents_sync(conn: sqlite3.Connection, retention_days: int, *, now_ts: int | None = None) -> int:
    cutoff = _cutoff_ts(max(1, int(retention_days)) * 24, now_ts)
    cur = conn.cursor()
    cur.execute("DELETE FROM moderation_incidents WHERE created_ts < ?", (cutoff,))
    conn.commit()
    return int(cur.rowcount or 0)
