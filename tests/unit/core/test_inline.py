"""Unit tests for core/inline.py"""

import pytest

from stream2md.config import Settings
from stream2md.core.inline import has_open_delimiters, parse_inline, plain_text
from stream2md.core.models import Node, NodeKind


def _text(value: str) -> Node:
    return Node(kind=NodeKind.text, text=value)


def _wrap(kind: NodeKind, *children: Node) -> Node:
    return Node(kind=kind, children=list(children))


def _link(href: str, label: str, title: str | None = None) -> Node:
    return Node(kind=NodeKind.link, attrs={"href": href, "title": title}, children=[_text(label)])


def test_plain_text():
    assert parse_inline("hello world") == [_text("hello world")]


def test_empty_text():
    assert parse_inline("") == []


@pytest.mark.parametrize("md, expected", [
    ("**bold**", [_wrap(NodeKind.strong, _text("bold"))]),
    ("__bold__", [_wrap(NodeKind.strong, _text("bold"))]),
    ("*em*", [_wrap(NodeKind.emphasis, _text("em"))]),
    ("_em_", [_wrap(NodeKind.emphasis, _text("em"))]),
    ("~~del~~", [_wrap(NodeKind.strikethrough, _text("del"))]),
    ("***x***", [_wrap(NodeKind.emphasis, _wrap(NodeKind.strong, _text("x")))]),
    ("H~2~O", [_text("H"), _wrap(NodeKind.sub, _text("2")), _text("O")]),
    ("x^2^", [_text("x"), _wrap(NodeKind.sup, _text("2"))]),
])
def test_delimiter_runs(md, expected):
    assert parse_inline(md) == expected


def test_nested_emphasis_inside_strong():
    assert parse_inline("**a *b* c**") == [
        _wrap(NodeKind.strong, _text("a "), _wrap(NodeKind.emphasis, _text("b")), _text(" c"))
    ]


@pytest.mark.parametrize("md", [
    "**unclosed",
    "2 * 3 * 4",
    "snake_case_name",
    "~not sub here~",
])
def test_unmatched_or_inert_delimiters_stay_text(md):
    assert parse_inline(md) == [_text(md)]


@pytest.mark.parametrize("md, pending", [
    ("**a*", True),
    ("*a", True),
    ("~~strike", True),
    ("**a*\nb*", False),
    ("**a**", False),
    ("2 * 3", False),
    ("a*", False),
    ("`*a`", False),
])
def test_has_open_delimiters(md, pending):
    """Only runs that could still open, and are not fully consumed, count as pending."""
    assert has_open_delimiters(md) is pending


def test_code_span_takes_precedence():
    """Delimiters and brackets inside a code span are literal."""
    assert parse_inline("a `**x** [y]` b") == [
        _text("a "), Node(kind=NodeKind.code_span, text="**x** [y]"), _text(" b")
    ]


def test_code_span_with_backticks_inside():
    assert parse_inline("`` a`b ``") == [Node(kind=NodeKind.code_span, text="a`b")]


def test_unclosed_code_span_is_literal():
    assert parse_inline("`open") == [_text("`open")]


def test_backslash_escapes():
    assert parse_inline(r"\*not em\* \[x\]") == [_text("*not em* [x]")]


def test_backslash_before_letter_is_kept():
    assert parse_inline(r"a\b") == [_text(r"a\b")]


def test_link_with_title():
    assert parse_inline('[link](http://a.com "T")') == [_link("http://a.com", "link", "T")]


def test_link_label_keeps_inline_markup():
    [link] = parse_inline("[**bold** text](/x)")
    assert link.children == [_wrap(NodeKind.strong, _text("bold")), _text(" text")]


def test_image():
    assert parse_inline("![alt *text*](img.png)") == [
        Node(kind=NodeKind.image, attrs={"src": "img.png", "alt": "alt text", "title": None})
    ]


def test_image_inside_link():
    [link] = parse_inline("[![logo](l.png)](https://x.org)")
    assert link.attrs["href"] == "https://x.org"
    assert link.children[0].kind == NodeKind.image


def test_links_do_not_nest():
    assert parse_inline("[a [b](c) d](e)") == [_text("[a "), _link("c", "b"), _text(" d](e)")]


def test_link_without_destination_is_text():
    assert parse_inline("[just brackets]") == [_text("[just brackets]")]


def test_angle_autolinks():
    assert parse_inline("<https://x.org>") == [_link("https://x.org", "https://x.org")]
    assert parse_inline("<me@x.org>") == [_link("mailto:me@x.org", "me@x.org")]


def test_bare_url_autolink_strips_trailing_punctuation():
    assert parse_inline("visit https://example.com.") == [
        _text("visit "), _link("https://example.com", "https://example.com"), _text(".")
    ]


def test_www_autolink_gets_scheme():
    assert parse_inline("www.example.com") == [_link("http://www.example.com", "www.example.com")]


def test_bare_autolinks_can_be_disabled():
    settings = Settings(autolinks=False)
    assert parse_inline("see https://example.com", settings) == [_text("see https://example.com")]


def test_allow_listed_inline_html_passes_through():
    assert parse_inline("Press <kbd>Ctrl</kbd>") == [
        _text("Press "),
        Node(kind=NodeKind.html_inline, text="<kbd>"),
        _text("Ctrl"),
        Node(kind=NodeKind.html_inline, text="</kbd>"),
    ]


def test_inline_html_with_attributes():
    [_, span, _, _] = parse_inline('a <span class="x">b</span>')
    assert span == Node(kind=NodeKind.html_inline, text='<span class="x">')


def test_disallowed_html_is_literal_text():
    assert parse_inline("<script>x</script>") == [_text("<script>x</script>")]


def test_soft_break_folds_into_text():
    assert parse_inline("a\nb") == [_text("a\nb")]


def test_soft_break_after_non_text_is_a_node():
    assert parse_inline("**a**\nb") == [
        _wrap(NodeKind.strong, _text("a")), Node(kind=NodeKind.softbreak), _text("b")
    ]


@pytest.mark.parametrize("md", ["a  \nb", "a\\\nb"])
def test_hard_break(md):
    assert parse_inline(md) == [_text("a"), Node(kind=NodeKind.hardbreak), _text("b")]


def test_plain_text_flattens_markup():
    assert plain_text(parse_inline("a **b** `c`")) == "a b c"
