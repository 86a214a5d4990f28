"""Interface between the Discord adapter and the assistant host."""
from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional, Protocol

# {"type": "text", "content": "..."}
StreamMessage = Dict[str, Any]
StreamCallback = Callable[[StreamMessage], None]


class AssistantHost(Protocol):
    """
    The chat-session runtime that generates responses.

    ``inject`` sends one user message to ``session`` and resolves with the
    final text.  While generating it calls ``on_stream`` zero or more times
    with incremental text fragments, always on the caller's event loop.  A
    failed request raises (normally :class:`~relaycord.errors.InjectionFailure`).
    """

    async def inject(
        self,
        session: str,
        message: str,
        *,
        on_stream: Optional[StreamCallback] = None,
        **meta: Any,
    ) -> str:
        ...

    def log_message(self, session: str, text: str, **meta: Any) -> None:
        """Record a chat line the bot was not asked to answer."""
        ...

    def ensure_session(self, session: str, channel_meta: Mapping[str, Any]) -> None:
        """Create whatever the host needs for a new session."""
        ...
