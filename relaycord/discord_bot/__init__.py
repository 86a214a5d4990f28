"""Discord bridge for relaycord.

The bridge receives Discord messages, checks routing and access, and streams
the assistant host's answers back into the channel.
"""

from .discord_bridge import DiscordBridge  # noqa: F401
from .mentions import resolve_mentions, strip_bot_mentions  # noqa: F401

__all__ = ["DiscordBridge", "resolve_mentions", "strip_bot_mentions"]
