"""
Assistant host backed by a local Ollama server.

This module provides a thin wrapper around the Ollama chat API that fulfils
the :class:`~relaycord.host.base.AssistantHost` contract.  Each session keeps
its own message history in memory, seeded with the session's context file.
Responses are streamed: the blocking HTTP read runs on a worker thread and
every piece of text is handed back to the event loop as it arrives.
"""
from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

import orjson
import requests

from ..errors import InjectionFailure
from ..utils.logging_system import setup_log_system
from .base import StreamCallback
from .sessions import ensure_session_context

logger = setup_log_system(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant chatting on Discord. "
    "Be clear and concise, and never hallucinate. "
    "If you do not know the answer, say 'I don't know.'"
)
DEFAULT_SESSIONS_DIR = Path.home() / ".relaycord" / "sessions"
# Messages kept per session besides the system prompt
MAX_HISTORY = 40


class OllamaHost:
    """Streams chat completions from Ollama, one history per session."""

    def __init__(
        self,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 120.0,
        *,
        system_prompt: Optional[str] = None,
        sessions_dir: Optional[Path] = None,
    ) -> None:
        # Determine the model name and base URL from environment variables if not provided
        self.model = model or os.getenv("LLM_MODEL", "llama3")
        default_url = "http://localhost:11434/api/chat"
        self.base_url = base_url or os.getenv("OLLAMA_URL", default_url)
        self.timeout = timeout
        self.system_prompt = (system_prompt or os.getenv("SYSTEM_PROMPT") or DEFAULT_SYSTEM_PROMPT).strip()
        self.sessions_dir = Path(sessions_dir or os.getenv("RELAYCORD_SESSIONS_DIR") or DEFAULT_SESSIONS_DIR)
        self._history: Dict[str, List[Dict[str, str]]] = {}

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------
    def ensure_session(self, session: str, channel_meta: Mapping[str, Any]) -> None:
        ensure_session_context(self.sessions_dir, session, channel_meta)

    def _system_prompt_for(self, session: str) -> str:
        path = self.sessions_dir / f"{session}.md"
        if path.exists():
            context = path.read_text(encoding="utf-8").strip()
            if context:
                return context
        return self.system_prompt

    def _history_for(self, session: str) -> List[Dict[str, str]]:
        history = self._history.get(session)
        if history is None:
            history = self._history[session] = []
        return history

    def _remember(self, session: str, *entries: Dict[str, str]) -> None:
        history = self._history_for(session)
        history.extend(entries)
        del history[:-MAX_HISTORY]

    def log_message(self, session: str, text: str, **meta: Any) -> None:
        self._remember(session, {"role": "user", "content": _attributed(text, meta)})

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------
    async def inject(
        self,
        session: str,
        message: str,
        *,
        on_stream: Optional[StreamCallback] = None,
        **meta: Any,
    ) -> str:
        loop = asyncio.get_running_loop()

        def emit(piece: str) -> None:
            if on_stream is not None:
                loop.call_soon_threadsafe(on_stream, {"type": "text", "content": piece})

        user_entry = {"role": "user", "content": _attributed(message, meta)}
        messages = [{"role": "system", "content": self._system_prompt_for(session)}]
        messages += self._history_for(session)
        messages.append(user_entry)

        text = await asyncio.to_thread(self._generate, session, messages, emit)
        self._remember(session, user_entry, {"role": "assistant", "content": text})
        return text

    def _generate(self, session: str, messages: List[Dict[str, str]], emit: Callable[[str], None]) -> str:
        """Blocking streamed request; runs on a worker thread."""
        payload: Dict[str, Any] = {"model": self.model, "messages": messages, "stream": True}
        parts: List[str] = []
        try:
            with requests.post(self.base_url, json=payload, stream=True, timeout=self.timeout) as response:
                response.raise_for_status()
                for line in response.iter_lines():
                    if not line:
                        continue
                    data = orjson.loads(line)
                    if data.get("error"):
                        raise InjectionFailure(session, str(data["error"]))
                    # /api/chat nests the text, /api/generate does not
                    piece = (data.get("message") or {}).get("content") or data.get("response") or ""
                    if piece:
                        parts.append(piece)
                        emit(piece)
                    if data.get("done"):
                        break
        except requests.RequestException as e:
            logger.error(f"Ollama request failed for {session}: {e}")
            raise InjectionFailure(session, f"Ollama request failed: {e}") from e
        except orjson.JSONDecodeError as e:
            logger.error(f"Malformed Ollama stream for {session}: {e}")
            raise InjectionFailure(session, f"Malformed Ollama stream: {e}") from e
        return "".join(parts)


def _attributed(text: str, meta: Mapping[str, Any]) -> str:
    author = meta.get("from")
    return f"{author}: {text}" if author else text
