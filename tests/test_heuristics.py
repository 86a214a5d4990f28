import re

import pytest

from relaycord.streaming.heuristics import ResponseStartDetector


@pytest.mark.parametrize(
    "fragment",
    [
        "# Result\n",
        "  ## Summary",
        "---",
        "```python\nprint(1)",
        "> quoted",
        "| a | b |",
        "**Answer:** yes",
        "1. First item",
        "12. Twelfth",
        "Step 1: unpack",
        "Option 2: retry",
    ],
)
def test_structured_openers_match(fragment):
    assert ResponseStartDetector().matches(fragment)


@pytest.mark.parametrize(
    "fragment",
    [
        "",
        "   ",
        "Thinking...",
        " still thinking",
        "the user wants # of items",
        "step 1: lowercase labels are thinking",
        "Version two: no number",
        "1 apple",
    ],
)
def test_plain_thinking_does_not_match(fragment):
    assert not ResponseStartDetector().matches(fragment)


def test_long_fragment_with_markdown_matches():
    detector = ResponseStartDetector(long_fragment=100)
    assert detector.matches("x" * 120 + " **bold** ")
    assert detector.matches("x" * 120 + " a | b ")
    assert detector.matches("x" * 120 + "```")


def test_long_plain_fragment_does_not_match():
    detector = ResponseStartDetector(long_fragment=100)
    assert not detector.matches("x" * 500)


def test_short_fragment_with_inline_markdown_does_not_match():
    detector = ResponseStartDetector(long_fragment=100)
    assert not detector.matches("maybe **this** works")


def test_extra_markers_can_be_registered():
    detector = ResponseStartDetector()
    assert not detector.matches("Answer - forty two")
    detector.add_marker(r"^Answer\b")
    detector.add_marker(re.compile(r"^TL;DR", re.IGNORECASE))
    assert detector.matches("Answer - forty two")
    assert detector.matches("tl;dr it works")
