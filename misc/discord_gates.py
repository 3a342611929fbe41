from __future__ import annotations

import discord


def message_is_moderatable(message: discord.Message, exempt_channel_ids: set[int]) -> bool:
    # DMs are never moderated; only guild traffic has strikes and members.
    if getattr(message, "guild", None) is None:
        return False
    if getattr(message.author, "bot", False):
        return False

    channel_id = int(getattr(message.channel, "id", 0) or 0)
    if channel_id in exempt_channel_ids:
        return False
    # thread: exempt if parent is exempt
    if isinstance(message.channel, discord.Thread) and message.channel.parent:
        return int(message.channel.parent.id) not in exempt_channel_ids
    return True
