"""
relaycord package.

This package bridges a Discord bot to an assistant host's chat sessions.  It
includes the streaming output reconciler, channel-to-session routing, access
control with pairing, a Discord bridge, a command line interface and a JSON
settings API.
"""

__version__ = "2.5.0"

__all__ = [
    "config",
    "discord_bot",
    "host",
    "routing",
    "streaming",
    "web",
]
