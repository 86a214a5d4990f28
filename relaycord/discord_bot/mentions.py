"""Rewriting Discord mention tokens in inbound text."""
from __future__ import annotations

import re
from typing import Any, Optional

_USER_MENTION = re.compile(r"<@!?(\d+)>")
_ROLE_MENTION = re.compile(r"<@&(\d+)>")
_CHANNEL_MENTION = re.compile(r"<#(\d+)>")


def strip_bot_mentions(text: str, bot_id: int) -> str:
    """Remove every ``<@id>`` / ``<@!id>`` token addressing the bot."""
    return re.sub(rf"<@!?{bot_id}>", "", text).strip()


def resolve_mentions(text: str, client: Any, guild: Optional[Any] = None) -> str:
    """Replace user, role and channel mention tokens with readable names."""

    def user(match: re.Match) -> str:
        user_id = int(match.group(1))
        found = client.get_user(user_id)
        if found is None and guild is not None:
            found = guild.get_member(user_id)
        return f"@{found.name}" if found is not None else "@unknown"

    def role(match: re.Match) -> str:
        found = guild.get_role(int(match.group(1))) if guild is not None else None
        return f"@{found.name}" if found is not None else "@unknown-role"

    def channel(match: re.Match) -> str:
        found = guild.get_channel(int(match.group(1))) if guild is not None else None
        return f"#{found.name}" if found is not None else "#unknown-channel"

    text = _USER_MENTION.sub(user, text)
    text = _ROLE_MENTION.sub(role, text)
    return _CHANNEL_MENTION.sub(channel, text)
