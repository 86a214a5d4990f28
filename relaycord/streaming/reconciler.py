"""
Streaming output reconciler.

Turns the unbounded fragment stream of one assistant response into a bounded
series of Discord messages.  Each conversation gets a :class:`StreamState`
holding the text buffered so far and the message currently being edited.
Small fragments are coalesced with a short single-shot timer; large bursts and
natural breaks flush immediately.  Content that outgrows the message limit is
split: full chunks are left behind as finished messages and the remainder
continues in a new message.

Output is shown in two styles.  Text streamed before the response proper is
prefixed as "thinking"; once :class:`ResponseStartDetector` recognises the
start of the answer, the thinking message is frozen and the answer continues
unprefixed in a new message.  The switch happens at most once per stream.

Delivery failures (deleted messages, HTTP errors) are logged and swallowed.
The stream keeps buffering and the next flush resends the full content.
"""
from __future__ import annotations

import asyncio
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Dict, List, Optional, Set

from ..config.settings import StreamSettings
from ..errors import TransientDeliveryError
from ..utils.logging_system import setup_log_system
from .chunker import split_message
from .heuristics import ResponseStartDetector

logger = setup_log_system(__name__)

# Blank line, or sentence punctuation followed by whitespace
_NATURAL_BREAK = re.compile(r"\n[ \t]*\n|[.!?]\s")


class StreamMode(str, Enum):
    THINKING = "thinking"
    RESPONDING = "responding"


@dataclass(eq=False)
class StreamState:
    """Buffering and delivery state of one conversation's active response."""

    key: str
    channel: Any
    origin: Any
    active_message: Any = None
    buffer: str = ""
    displayed: int = 0
    mode: StreamMode = StreamMode.THINKING
    last_activity: float = field(default_factory=time.monotonic)
    timer: Optional[asyncio.TimerHandle] = None
    complete: bool = False
    abandoned: bool = False
    # The first message of a stream replies to the originating message
    replied: bool = False
    # Whether any content was flushed yet
    shown: bool = False
    # Text last pushed to active_message
    rendered: str = ""
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def unflushed(self) -> int:
        return len(self.buffer) - self.displayed

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class StreamReconciler:
    """
    Owns the stream states of one bot adapter.

    Every public coroutine is meant to run on the adapter's event loop.  Calls
    for different keys may interleave freely; calls for one key are expected
    in order (open, fragments, close), with timer flushes serialised against
    them by the per-state lock.

    Parameters
    ----------
    settings:
        Limits and coalescing thresholds.
    detector:
        Decides when thinking output turns into the response body.
    """

    def __init__(
        self,
        settings: Optional[StreamSettings] = None,
        detector: Optional[ResponseStartDetector] = None,
    ) -> None:
        self.settings = settings or StreamSettings()
        self.detector = detector or ResponseStartDetector(self.settings.long_fragment)
        self._streams: Dict[str, StreamState] = {}
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------
    def get(self, key: str) -> Optional[StreamState]:
        return self._streams.get(key)

    def active_keys(self) -> list[str]:
        return list(self._streams)

    def __len__(self) -> int:
        return len(self._streams)

    def open(self, key: str, channel: Any, origin: Any) -> StreamState:
        """Start a fresh stream for ``key``, abandoning any stream already there."""
        if key in self._streams:
            logger.info(f"Superseding active stream for {key}")
            self.abandon(key)
        state = StreamState(key=key, channel=channel, origin=origin)
        self._streams[key] = state
        logger.debug(f"Opened stream {key}")
        return state

    def abandon(self, key: str, *, stream: Optional[StreamState] = None) -> None:
        """Drop the stream for ``key`` without flushing what it buffered."""
        state = self._lookup(key, stream, allow_complete=True)
        if state is None:
            return
        state.cancel_timer()
        state.abandoned = True
        state.complete = True
        del self._streams[key]

    async def shutdown(self) -> None:
        for key in list(self._streams):
            self.abandon(key)
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _lookup(
        self, key: str, stream: Optional[StreamState], *, allow_complete: bool = False
    ) -> Optional[StreamState]:
        state = self._streams.get(key)
        if state is None:
            return None
        if stream is not None and stream is not state:
            # The caller's stream was superseded
            return None
        if state.complete and not allow_complete:
            return None
        return state

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------
    async def on_fragment(self, key: str, text: str, *, stream: Optional[StreamState] = None) -> None:
        """Buffer one fragment and flush now or later."""
        state = self._lookup(key, stream)
        if state is None or not text:
            return
        state.last_activity = time.monotonic()

        if state.mode is StreamMode.THINKING and self.detector.matches(text):
            await self._begin_response(state)
            if state.abandoned:
                return

        state.buffer += text
        if self._should_flush_now(state):
            state.cancel_timer()
            await self.flush(state)
        else:
            self._arm_timer(state)

    async def close(self, key: str, *, stream: Optional[StreamState] = None, force: bool = True) -> None:
        """Flush everything still buffered and retire the stream."""
        state = self._lookup(key, stream, allow_complete=True)
        if state is None:
            return
        state.cancel_timer()
        state.complete = True
        try:
            await self.flush(state, force=force)
            if state.unflushed > 0 and state.active_message is None:
                # No later flush will come; retry once with a fresh message
                await self.flush(state, force=force)
        finally:
            if self._streams.get(key) is state:
                del self._streams[key]
        logger.debug(f"Closed stream {key} ({len(state.buffer)} chars in last message)")

    def _should_flush_now(self, state: StreamState) -> bool:
        if not state.shown:
            return True
        pending = state.buffer[state.displayed:]
        if len(pending) >= self.settings.coalesce_chars:
            return True
        return len(pending) > self.settings.break_floor and _NATURAL_BREAK.search(pending) is not None

    async def _begin_response(self, state: StreamState) -> None:
        state.cancel_timer()
        async with state.lock:
            await self._flush_locked(state, force=True)
            if state.buffer.strip():
                logger.debug(f"{state.key}: thinking output frozen, response starts")
            state.active_message = None
            state.rendered = ""
            state.buffer = ""
            state.displayed = 0
            state.mode = StreamMode.RESPONDING

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------
    def _arm_timer(self, state: StreamState) -> None:
        state.cancel_timer()
        loop = asyncio.get_running_loop()
        state.timer = loop.call_later(self.settings.coalesce_delay, self._on_timer, state)

    def _on_timer(self, state: StreamState) -> None:
        state.timer = None
        if state.abandoned or self._streams.get(state.key) is not state:
            return
        task = asyncio.ensure_future(self._timed_flush(state))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _timed_flush(self, state: StreamState) -> None:
        try:
            await self.flush(state)
        except Exception as e:
            logger.error(f"Deferred flush failed for {state.key}: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------
    async def flush(self, state: StreamState, force: bool = False) -> None:
        """Push buffered content to Discord, creating, editing or splitting messages."""
        async with state.lock:
            await self._flush_locked(state, force=force)

    def _prefix(self, state: StreamState) -> str:
        return self.settings.thinking_prefix if state.mode is StreamMode.THINKING else ""

    async def _flush_locked(self, state: StreamState, *, force: bool) -> None:
        if state.abandoned:
            return
        if not force and state.unflushed <= 0:
            return
        # Fragments keep arriving while deliveries are awaited
        snapshot = state.buffer
        content = snapshot.strip()
        if not content:
            return
        state.shown = True

        prefix = self._prefix(state)
        limit = self.settings.message_limit
        if len(prefix) + len(content) <= limit:
            if await self._publish(state, prefix + content):
                state.displayed = len(snapshot)
            return

        chunks = split_message(content, limit - len(prefix))
        # Chunks are substrings of content, in order
        starts: List[int] = []
        pos = 0
        for chunk in chunks:
            pos = content.index(chunk, pos)
            starts.append(pos)
            pos += len(chunk)

        if not await self._publish(state, prefix + chunks[0]):
            return
        for i in range(1, len(chunks) - 1):
            if await self._send_new(state, prefix + chunks[i]) is None:
                # Everything from the failed chunk on is resent by the next flush
                self._rebase(state, snapshot, content[starts[i]:])
                return

        # The filled message is retired; the tail continues in a new one
        rebased = self._rebase(state, snapshot, chunks[-1])
        logger.debug(f"{state.key}: split output into {len(chunks)} messages")
        if await self._publish(state, prefix + chunks[-1]):
            state.displayed = len(rebased)

    @staticmethod
    def _rebase(state: StreamState, snapshot: str, unsent: str) -> str:
        """Restart the buffer at ``unsent``, keeping text appended since ``snapshot``."""
        rebased = unsent + snapshot[len(snapshot.rstrip()):]
        state.active_message = None
        state.rendered = ""
        state.buffer = rebased + state.buffer[len(snapshot):]
        state.displayed = 0
        return rebased

    async def _publish(self, state: StreamState, text: str) -> bool:
        """Show ``text`` in the active message, creating it when needed."""
        if state.active_message is None:
            message = await self._send_new(state, text)
            if message is None:
                return False
            state.active_message = message
            state.rendered = text
            return True

        if text == state.rendered:
            return True
        try:
            await self._deliver(state, "edit", state.active_message.edit(content=text))
        except TransientDeliveryError as e:
            logger.warning(f"{e}; next flush starts a new message")
            state.active_message = None
            state.rendered = ""
            return False
        state.rendered = text
        return True

    async def _send_new(self, state: StreamState, text: str) -> Any:
        """Send ``text`` as a new message; the stream's first message is a reply."""
        try:
            if not state.replied and state.origin is not None:
                message = await self._deliver(state, "reply", state.origin.reply(text))
            else:
                message = await self._deliver(state, "send", state.channel.send(text))
        except TransientDeliveryError as e:
            logger.error(str(e))
            return None
        state.replied = True
        return message

    async def _deliver(self, state: StreamState, action: str, call: Awaitable[Any]) -> Any:
        try:
            return await call
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise TransientDeliveryError(f"Discord {action} failed for {state.key}: {e}") from e
