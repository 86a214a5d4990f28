"""Assistant host integration for relaycord.

``AssistantHost`` describes the chat-session runtime the bot talks to,
``stream_fragments`` turns its streaming callback into an async iterator and
``OllamaHost`` is a ready-made host backed by a local Ollama server.
"""

from .base import AssistantHost, StreamMessage  # noqa: F401
from .fragments import stream_fragments  # noqa: F401
from .ollama_host import OllamaHost  # noqa: F401
from .sessions import ensure_session_context  # noqa: F401

__all__ = [
    "AssistantHost",
    "OllamaHost",
    "StreamMessage",
    "ensure_session_context",
    "stream_fragments",
]
