from __future__ import annotations

import asyncio
from datetime import datetime, timedelta

from config.defaults import DEFAULT_CLEANUP_HOUR_LOCAL
from config.defaults import DEFAULT_INCIDENT_RETENTION_DAYS


def seconds_until_next_run(now: datetime, hour_local: int = DEFAULT_CLEANUP_HOUR_LOCAL) -> float:
    """Seconds from ``now`` until the next HH:00 local; a run exactly at the hour is scheduled a day later."""
    hour = max(0, min(23, int(hour_local)))
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


async def run_incident_cleanup(
    *,
    db_lock,
    db_conn,
    cleanup_incidents_sync,
    retention_days: int = DEFAULT_INCIDENT_RETENTION_DAYS,
) -> int:
    async with db_lock:
        removed = await asyncio.to_thread(cleanup_incidents_sync, db_conn, int(retention_days))
    print(f"[Cleanup] removed incidents={removed} retention_days={int(retention_days)}")
    return int(removed)


async def cleanup_loop(
    *,
    db_lock,
    db_conn,
    cleanup_incidents_sync,
    retention_days: int = DEFAULT_INCIDENT_RETENTION_DAYS,
    hour_local: int = DEFAULT_CLEANUP_HOUR_LOCAL,
    now_func=datetime.now,
    sleep_func=asyncio.sleep,
) -> None:
    while True:
        delay = seconds_until_next_run(now_func(), hour_local)
        print(f"[Cleanup] next incident cleanup in {delay / 3600:.1f}h")
        await sleep_func(delay)
        try:
            await run_incident_cleanup(
                db_lock=db_lock,
                db_conn=db_conn,
                cleanup_incidents_sync=cleanup_incidents_sync,
                retention_days=retention_days,
            )
        except Exception as e:
            print(f"[Cleanup] cleanup loop error: {e}")
