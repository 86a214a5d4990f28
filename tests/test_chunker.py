import pytest

from relaycord.streaming.chunker import split_message


def test_empty_text_yields_no_segments():
    assert split_message("", 10) == []


def test_short_text_is_one_segment():
    assert split_message("hello", 10) == ["hello"]
    assert split_message("x" * 10, 10) == ["x" * 10]


@pytest.mark.parametrize("max_len", [0, -5])
def test_non_positive_limit_is_rejected(max_len):
    with pytest.raises(ValueError):
        split_message("text", max_len)


def test_hard_cut_without_break_points():
    text = "a" * 2500
    segments = split_message(text, 2000)
    assert [len(s) for s in segments] == [2000, 500]
    assert "".join(segments) == text


def test_one_char_over_the_limit():
    assert split_message("b" * 2001, 2000) == ["b" * 2000, "b"]


def test_prefers_paragraph_break():
    first = "word " * 10 + "end."
    second = "next line\nmore words here"
    segments = split_message(first + "\n\n" + second, 70)
    assert segments == [first, second]


def test_prefers_newline_over_space():
    text = "alpha beta gamma\ndelta epsilon zeta"
    assert split_message(text, 20) == ["alpha beta gamma", "delta epsilon zeta"]


def test_breaks_at_last_space_in_window():
    text = "one two three four five six"
    segments = split_message(text, 10)
    assert segments == ["one two", "three four", "five six"]
    assert " ".join(segments) == text


def test_break_in_front_half_is_ignored():
    # The only space sits at index 2, well before half of the window
    text = "ab " + "c" * 30
    segments = split_message(text, 20)
    assert segments[0] == text[:20]
    assert "".join(segments) == text


def test_space_right_after_window_is_used():
    text = "x" * 10 + " " + "y" * 5
    assert split_message(text, 10) == ["x" * 10, "y" * 5]


def test_no_segment_starts_with_whitespace():
    text = "para one is here\n\n\n   para two follows"
    segments = split_message(text, 20)
    assert all(not s[:1].isspace() for s in segments[1:])
    assert segments == ["para one is here", "para two follows"]


@pytest.mark.parametrize("max_len", [1, 2, 3, 7, 50])
def test_segments_respect_limit_and_keep_every_word(max_len):
    words = ["lorem", "ipsum", "dolor", "sit", "amet", "consectetur", "adipiscing", "elit"] * 5
    text = " ".join(words)
    segments = split_message(text, max_len)
    assert all(0 < len(s) <= max_len for s in segments)
    assert "".join(segments).replace(" ", "") == text.replace(" ", "")


def test_single_character_limit_terminates():
    assert split_message("abc", 1) == ["a", "b", "c"]
