from __future__ import annotations

import json
import sqlite3
from typing import Any

from config.defaults import PROFILE_QUIRKS_PER_USER


def get_user_profile_sync(conn: sqlite3.Connection, user_id: int) -> dict[str, Any] | None:
    cur = conn.cursor()
    cur.execute(
        "SELECT profile_json FROM user_behavior_profiles WHERE user_id = ? LIMIT 1",
        (int(user_id),),
    )
    row = cur.fetchone()
    if not row or not row[0]:
        return None
    try:
        obj = json.loads(row[0])
    except json.JSONDecodeError:
        return None
    return obj if isinstance(obj, dict) else None


def upsert_user_profile_sync(
    conn: sqlite3.Connection,
    user_id: int,
    profile: dict[str, Any],
    updated_at_utc: str,
) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO user_behavior_profiles (user_id, profile_json, samples, updated_at_utc)
        VALUES (?, ?, 1, ?)
        ON CONFLICT(user_id) DO UPDATE SET
            profile_json=excluded.profile_json,
            samples=user_behavior_profiles.samples + 1,
            updated_at_utc=excluded.updated_at_utc
        """,
        (int(user_id), json.dumps(profile, ensure_ascii=False), updated_at_utc),
    )
    conn.commit()


def insert_user_quirk_sync(
    conn: sqlite3.Connection,
    user_id: int,
    guild_id: int | None,
    quirk: str,
    created_at_utc: str,
    keep: int = PROFILE_QUIRKS_PER_USER,
) -> None:
    """Insert a quirk and drop all but the newest `keep` rows for that user."""
    cur = conn.cursor()
    cur.execute(
        "INSERT INTO user_quirks (user_id, guild_id, quirk, created_at_utc) VALUES (?, ?, ?, ?)",
        (int(user_id), guild_id, quirk, created_at_utc),
    )
    cur.execute(
        """
        DELETE FROM user_quirks
        WHERE user_id = ?
          AND id NOT IN (
            SELECT id FROM user_quirks WHERE user_id = ? ORDER BY id DESC LIMIT ?
          )
        """,
        (int(user_id), int(user_id), max(1, int(keep))),
    )
    conn.commit()


def fetch_user_quirks_sync(conn: sqlite3.Connection, user_id: int, limit: int = 5) -> list[str]:
    cur = conn.cursor()
    cur.execute(
        "SELECT quirk FROM user_quirks WHERE user_id = ? ORDER BY id DESC LIMIT ?",
        (int(user_id), max(1, int(limit))),
    )
    return [str(r[0]) for r in cur.fetchall()]
