from __future__ import annotations

from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.commands.commands_owner import register as register_owner
from misc.events_runtime import register_runtime_events
from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps


def wire_bot_runtime(
    bot,
    *,
    user_is_owner,
    db_lock,
    db_conn,
    send_chunked,
    max_line_chars: int,
    moderation_service,
    actions,
    raid_tracker,
    exempt_channel_ids: set[int],
    enable_profiling: bool,
    profile_service,
    fetch_recent_incidents_sync,
    fetch_top_offenders_sync,
    fetch_user_behavior_summary_sync,
    cleanup_incidents_sync,
    list_schema_migrations_sync,
    incident_retention_days: int,
    cleanup_loop_func,
) -> None:
    command_deps = CommandDeps(
        db_lock=db_lock,
        db_conn=db_conn,
        send_chunked=send_chunked,
        max_line_chars=max_line_chars,
        moderation_service=moderation_service,
        profile_service=profile_service,
        fetch_recent_incidents_sync=fetch_recent_incidents_sync,
        fetch_top_offenders_sync=fetch_top_offenders_sync,
        fetch_user_behavior_summary_sync=fetch_user_behavior_summary_sync,
        cleanup_incidents_sync=cleanup_incidents_sync,
        list_schema_migrations_sync=list_schema_migrations_sync,
        incident_retention_days=incident_retention_days,
    )
    command_gates = CommandGates(user_is_owner=user_is_owner)

    register_owner(
        bot,
        deps=command_deps,
        gates=command_gates,
    )

    register_runtime_events(
        bot,
        deps=RuntimeDeps(
            moderation_service=moderation_service,
            actions=actions,
            raid_tracker=raid_tracker,
            exempt_channel_ids=exempt_channel_ids,
            user_is_owner=user_is_owner,
            enable_profiling=enable_profiling,
            profile_service=profile_service,
        ),
        boot=RuntimeBootDeps(
            cleanup_loop_func=cleanup_loop_func,
        ),
    )
