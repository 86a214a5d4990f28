"""Streaming output for relaycord.

``chunker`` splits text at natural boundaries under a length limit,
``heuristics`` spots where a model's thinking turns into its answer and
``reconciler`` renders a live fragment stream as edited, split Discord
messages.
"""

from .chunker import split_message  # noqa: F401
from .heuristics import ResponseStartDetector  # noqa: F401
from .reconciler import StreamMode, StreamReconciler, StreamState  # noqa: F401

__all__ = [
    "ResponseStartDetector",
    "StreamMode",
    "StreamReconciler",
    "StreamState",
    "split_message",
]
