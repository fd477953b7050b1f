"""Unit tests for core/boundary.py"""

import pytest

from stream2md.config import Settings
from stream2md.core.boundary import InlineTracker, compute_safe_boundary
from stream2md.core.utils.text import closed_cell_count, grapheme_safe_offset


@pytest.mark.parametrize("buffer", ["", "   ", " \n\t\n  "])
def test_blank_buffer_is_zero(detector, buffer):
    """Blank or whitespace-only buffers yield boundary 0."""
    assert detector.compute(buffer) == 0


def test_final_forces_buffer_end(detector):
    assert detector.compute("**open `code", final=True) == len("**open `code")


def test_incomplete_line_retreats_to_line_start(detector):
    """A buffer ending mid-line stops at the last complete line."""
    assert detector.compute("# Hel") == 0
    assert detector.compute("# Hello\n\nWor") == len("# Hello\n\n")


@pytest.mark.parametrize("tail", ["#", "```", "-", ">", "1.", "  "])
def test_ambiguous_block_start_is_not_included(detector, tail):
    """A trailing line that could still become any block stays outside the boundary."""
    buffer = "Para\n\n" + tail
    assert detector.compute(buffer) == len("Para\n\n")


def test_heading_line_is_complete_at_its_newline(detector):
    """Headings are single-line blocks, so an unclosed delimiter inside one does not hold."""
    assert detector.compute("# **bold\nnext") == len("# **bold\n")


@pytest.mark.parametrize("buffer", [
    "Hello **wor\n",
    "some `code\n",
    "a [label\n",
    "[text](http://exa\n",
    "<https://exa\n",
    "Press <kbd\n",
    "~~strike\n",
])
def test_open_inline_construct_holds_boundary(detector, buffer):
    """A line end is not safe while an inline construct is still open."""
    assert detector.compute(buffer) == 0


@pytest.mark.parametrize("buffer", [
    "**bold**\n",
    "some `code` here\n",
    "[text](http://example.com)\n",
    "Press <kbd>Ctrl</kbd>\n",
    "2 * 3 = 6\n",
    "snake_case_name\n",
    "<script>\n",
])
def test_closed_or_inert_constructs_are_safe(detector, buffer):
    assert detector.compute(buffer) == len(buffer)


def test_emphasis_spanning_lines_is_safe_once_closed(detector):
    """The candidate returns as soon as the delimiter closes on a later line."""
    assert detector.compute("*a\n") == 0
    assert detector.compute("*a\nb*\n") == len("*a\nb*\n")


def test_blank_line_ends_an_open_leaf(detector):
    """An unmatched opener cannot reach past a blank line."""
    assert detector.compute("**a\n\nb") == len("**a\n\n")


def test_open_fence_holds_boundary(detector):
    assert detector.compute("Intro\n\n```py\nx = 1\n") == len("Intro\n\n")


def test_closing_fence_is_a_complete_leaf(detector):
    """A valid closing fence counts even before its newline arrives."""
    buffer = "```py\nx = 1\n```"
    assert detector.compute(buffer) == len(buffer)


@pytest.mark.parametrize("buffer", [
    "```py\nx = 1\n``",
    "~~~\n```\n",
    "````\ncode\n```\n",
])
def test_fence_needs_matching_close(detector, buffer):
    """Only a run of the same char at least as long closes the fence."""
    assert detector.compute(buffer) == 0


@pytest.mark.parametrize("buffer", [
    "```\n    ```\nmore\n",
    "```md\n- ```\nx\n",
    "```\n> ```\n",
])
def test_fence_content_that_looks_like_a_close_keeps_it_open(detector, buffer):
    """Over-indented, marker-prefixed or quoted fence runs inside a fence are content."""
    assert detector.compute(buffer) == 0


def test_fence_closes_after_indented_lookalike(detector):
    """The real closing fence still closes, so later blocks keep streaming."""
    buffer = "```\n    ```\nmore\n```\n\n# After\n\nTail para\n\n"
    assert detector.compute(buffer) == len(buffer)


def test_fence_in_list_item_closes_at_item_indent(detector):
    buffer = "- ```\n  x\n  ```\n"
    assert detector.compute(buffer) == len(buffer)


@pytest.mark.parametrize("buffer", [
    "> ```\n> x\n\nPara one\n\n",
    "- ```\n  x\n\nAfter the list\n\n",
    "> - ```\n>   x\n> Quoted para\n\n",
])
def test_fence_ends_with_its_container(detector, buffer):
    """A fence left open in a quote or list item ends when that container does."""
    assert detector.compute(buffer) == len(buffer)


def test_unbalanced_delimiter_lengths_hold_boundary(detector):
    """A strong opener closed by a single delimiter leaves one delimiter pending."""
    assert detector.compute("**a*\n") == 0
    assert detector.compute("**a*\nb*\n") == len("**a*\nb*\n")


def test_table_header_is_held_until_next_line(detector):
    """A first line with a pipe may still become a table header."""
    assert detector.compute("| a | b |\n") == 0
    assert detector.compute("| a | b |\n|---|---|\n") == len("| a | b |\n|---|---|\n")


def test_piped_line_without_delimiter_row_becomes_safe(detector):
    buffer = "Some text | with pipe\nmore\n"
    assert detector.compute(buffer) == len(buffer)


def test_complete_table_row_counts_without_newline(detector):
    """A row ending in a pipe with every cell present is a complete leaf."""
    head = "| a | b |\n|---|---|\n"
    assert detector.compute(head + "| 1 | 2 |") == len(head + "| 1 | 2 |")
    assert detector.compute(head + "| 1 | 2") == len(head)
    assert detector.compute(head + "| 1 |") == len(head)


def test_extra_cells_extend_a_complete_row(detector):
    """Cells past the header count are dropped, so the row stays complete while it grows."""
    head = "| a | b |\n|---|---|\n"
    for tail in ("| 1 | 2 | ", "| 1 | 2 | 3", "| 1 | 2 | 3 |"):
        assert detector.compute(head + tail) == len(head + tail)


@pytest.mark.parametrize("row, expected", [
    ("| a | b |", 2),
    ("| a | b", 1),
    ("a | b |", 2),
    ("| a \\| b |", 1),
    ("| a | b | c", 2),
])
def test_closed_cell_count(row, expected):
    assert closed_cell_count(row) == expected


def test_list_items_are_separate_leaves(detector):
    assert detector.compute("- item\n- ite") == len("- item\n")


def test_lazy_blockquote_continuation(detector):
    buffer = "> quote *a\ncontinued*\n"
    assert detector.compute(buffer) == len(buffer)


def test_inline_html_outside_allow_list_is_not_tracked():
    """With the allow-list emptied, `<kbd` is plain text."""
    settings = Settings(html_inline_tags=[])
    assert compute_safe_boundary("Press <kbd\n", settings=settings) == len("Press <kbd\n")


def test_boundary_is_monotonic_over_prefixes(detector):
    """Every prefix of a document has a boundary no smaller than shorter prefixes."""
    text = (
        "# Title\n\nSome **bold** and `code` with a [link](http://x.y).\n\n"
        "- one\n- [x] two\n  - nested *em*\n\n> quote\n> > deeper\n\n"
        "| a | b |\n|:--|--:|\n| 1 | 2 |\n\n```js\nlet x = 1;\n```\n\n---\n"
    )
    last = 0
    for end in range(len(text) + 1):
        boundary = detector.compute(text[:end])
        assert boundary >= last, text[:end]
        assert boundary <= end
        last = boundary


def test_inline_tracker_reports_open_state():
    tracker = InlineTracker(None)
    tracker.feed("a `b")
    assert tracker.open
    tracker.feed("` c\n")
    assert not tracker.open


@pytest.mark.parametrize("text, offset, expected", [
    ("ab\u0301", 2, 1),
    ("x\U0001F468\u200d", 3, 1),
    ("x\U0001F44D\U0001F3FD", 2, 1),
    ("line\n\u0301", 5, 5),
    ("plain", 5, 5),
])
def test_grapheme_safe_offset(text, offset, expected):
    """Offsets never split a combining sequence, ZWJ sequence or emoji modifier."""
    assert grapheme_safe_offset(text, offset) == expected
