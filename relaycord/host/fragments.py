"""Callback to async-iterator adapter for assistant host streams."""
from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator

from .base import AssistantHost, StreamMessage

_DONE = object()


async def stream_fragments(host: AssistantHost, session: str, message: str, **meta: Any) -> AsyncIterator[str]:
    """
    Yield the text fragments of one ``host.inject`` call as they arrive.

    Fragments are queued as soon as the host emits them, so the host is never
    held up while the consumer is busy sending to Discord.  When the host call
    fails, every fragment received before the failure is yielded first and the
    exception is then raised from the iterator.  The sequence cannot be
    restarted.
    """
    queue: asyncio.Queue = asyncio.Queue()

    def on_stream(msg: StreamMessage) -> None:
        if msg.get("type") == "text" and msg.get("content"):
            queue.put_nowait(msg["content"])

    async def run() -> str:
        try:
            return await host.inject(session, message, on_stream=on_stream, **meta)
        finally:
            queue.put_nowait(_DONE)

    task = asyncio.ensure_future(run())
    try:
        while True:
            item = await queue.get()
            if item is _DONE:
                break
            yield item
        # Surfaces the host's exception, if any
        await task
    finally:
        if not task.done():
            task.cancel()
