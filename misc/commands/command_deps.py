from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from typing import Callable

from config.defaults import DEFAULT_INCIDENT_RETENTION_DAYS


def _default_false(*args, **kwargs) -> bool:
    return False


def _in_guild(ctx) -> bool:
    return getattr(ctx, "guild", None) is not None


@dataclass(frozen=True)
class CommandDeps:
    # Core/shared
    db_lock: Any = None
    db_conn: Any = None
    send_chunked: Callable | None = None
    max_line_chars: int = 600

    # Services
    moderation_service: Any = None
    profile_service: Any = None

    # Store functions
    fetch_recent_incidents_sync: Callable | None = None
    fetch_top_offenders_sync: Callable | None = None
    fetch_user_behavior_summary_sync: Callable | None = None
    cleanup_incidents_sync: Callable | None = None
    list_schema_migrations_sync: Callable | None = None

    # Housekeeping
    incident_retention_days: int = DEFAULT_INCIDENT_RETENTION_DAYS


@dataclass(frozen=True)
class CommandGates:
    in_guild: Callable[[Any], bool] = _in_guild
    user_is_owner: Callable[[Any], bool] = _default_false
