from __future__ import annotations

import sqlite3


def upgrade(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS moderation_incidents (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            guild_id INTEGER,
            channel_id INTEGER,
            user_id INTEGER NOT NULL,
            message_id INTEGER,
            content TEXT,
            harassment INTEGER NOT NULL DEFAULT 0,
            hate INTEGER NOT NULL DEFAULT 0,
            violence INTEGER NOT NULL DEFAULT 0,
            passive_aggr INTEGER NOT NULL DEFAULT 0,
            condescending INTEGER NOT NULL DEFAULT 0,
            provocation INTEGER NOT NULL DEFAULT 0,
            toxicity TEXT NOT NULL DEFAULT 'none',
            spam_kind TEXT,
            action_taken TEXT NOT NULL DEFAULT 'none',
            reason TEXT,
            action_error TEXT,
            deleted_count INTEGER NOT NULL DEFAULT 0,
            created_at_utc TEXT NOT NULL,
            created_ts INTEGER NOT NULL
        )
        """
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_moderation_incidents_guild_ts ON moderation_incidents(guild_id, created_ts)"
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_moderation_incidents_user_ts ON moderation_incidents(user_id, created_ts)"
    )
    conn.commit()
