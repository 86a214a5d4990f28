"""
Detection of the point where a model stops thinking and starts answering.

Models streaming through the assistant host often think out loud before
answering.  The reconciler shows that preamble in a distinct "thinking" style
and switches to plain output when a fragment looks like the start of a
structured answer: a heading, a rule, a code fence, a quote, a table row, a
list item, a bold lead-in or a "Step 1:" style label.

This is a best-effort heuristic.  A missed switch leaves answer text in
thinking style; an early switch shows thinking text as plain output.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Pattern

# Ordered; the first match wins
DEFAULT_MARKERS = (
    r"^#",
    r"^---",
    r"^```",
    r"^>",
    r"^\|",
    r"^\*\*",
    r"^\d+\.",
    r"^[A-Z][a-z]+ \d+:",
)

# Markdown that makes a long fragment look like answer content
_RICH_CONTENT = ("```", "**", "|")


@dataclass
class Marker:
    """A compiled pattern announcing the start of a response."""

    pattern: Pattern[str]


class ResponseStartDetector:
    """
    Decides whether a single stream fragment opens the response body.

    Markers are tested in registration order against the stripped fragment.
    Fragments longer than ``long_fragment`` characters also match when they
    contain a code fence, bold marker or table pipe anywhere.
    """

    def __init__(self, long_fragment: int = 150) -> None:
        self.long_fragment = long_fragment
        self._markers: List[Marker] = []
        for pattern in DEFAULT_MARKERS:
            self.add_marker(pattern)

    def add_marker(self, pattern: str | Pattern[str]) -> None:
        """Register an extra start-of-response pattern (anchored by the caller)."""
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        self._markers.append(Marker(regex))

    def matches(self, fragment: str) -> bool:
        text = fragment.strip()
        if not text:
            return False
        for marker in self._markers:
            if marker.pattern.search(text):
                return True
        if len(text) > self.long_fragment:
            return any(token in text for token in _RICH_CONTENT)
        return False
