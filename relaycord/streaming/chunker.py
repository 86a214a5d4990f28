"""
Splitting text into message-sized segments.

Breaks are taken at the last paragraph break, line break or space that falls
in the back half of the window, in that order of preference.  When none does,
the text is cut hard at the limit.  Whitespace around each break is dropped,
so no segment starts or ends with stray blanks.
"""
from __future__ import annotations

from typing import List

_BREAKS = ("\n\n", "\n", " ")


def _find_break(text: str, max_len: int) -> int:
    """Index to cut at; the separator itself starts the next segment."""
    floor = max_len * 0.5
    for sep in _BREAKS:
        # The separator may sit just past the window, the segment still fits
        idx = text.rfind(sep, 0, max_len + len(sep))
        if idx >= floor:
            return idx
    return max_len


def split_message(text: str, max_len: int = 2000) -> List[str]:
    """
    Split ``text`` into segments of at most ``max_len`` characters.

    Parameters
    ----------
    text:
        Arbitrary text.  An empty string yields an empty list.
    max_len:
        Maximum segment length; must be positive.

    Returns
    -------
    list[str]
        Ordered, non-empty segments.  Only whitespace at the breaks is dropped.
    """
    if max_len <= 0:
        raise ValueError(f"max_len must be positive, got {max_len}")
    if not text:
        return []

    segments: List[str] = []
    remaining = text
    while len(remaining) > max_len:
        idx = _find_break(remaining, max_len)
        segment = remaining[:idx].rstrip()
        if segment:
            segments.append(segment)
        remaining = remaining[idx:].lstrip()
    if remaining:
        segments.append(remaining)
    return segments
