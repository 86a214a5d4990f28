"""Process-level settings read from the environment (and ``.env``)."""
from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

DISCORD_LIMIT = 2000


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


@dataclass(frozen=True)
class StreamSettings:
    """Tunables of the streaming output reconciler."""

    message_limit: int = DISCORD_LIMIT
    # Flush as soon as this many characters are waiting
    coalesce_chars: int = 800
    # Smaller threshold that applies when a natural break is waiting
    break_floor: int = 100
    # Seconds to wait for more fragments before flushing
    coalesce_delay: float = 0.2
    # Fragments longer than this that carry markdown switch to responding
    long_fragment: int = 150
    thinking_prefix: str = "💭 "

    def __post_init__(self) -> None:
        if self.message_limit <= len(self.thinking_prefix):
            raise ValueError("message_limit must leave room for the thinking prefix")

    @classmethod
    def from_env(cls) -> "StreamSettings":
        load_dotenv()
        return cls(
            message_limit=_env_int("RELAYCORD_MESSAGE_LIMIT", DISCORD_LIMIT),
            coalesce_chars=_env_int("RELAYCORD_COALESCE_CHARS", 800),
            break_floor=_env_int("RELAYCORD_BREAK_FLOOR", 100),
            coalesce_delay=_env_float("RELAYCORD_COALESCE_DELAY", 0.2),
            long_fragment=_env_int("RELAYCORD_LONG_FRAGMENT", 150),
            thinking_prefix=os.getenv("RELAYCORD_THINKING_PREFIX", "💭 "),
        )
