"""Inline parser: leaf-block text to inline nodes.

Code spans, autolinks and raw HTML bind tightest and are consumed as units during the
left-to-right scan. Link and image brackets are resolved with a stack as each `]` is seen.
Emphasis-style delimiter runs (`*`, `_`, `~`, `^`) are paired last, inside each resolved
link label first and then across the whole text. Anything left unmatched becomes text.
"""

import re
from functools import lru_cache

from markdown_it.common.utils import isMdAsciiPunct, isPunctChar, isWhiteSpace

from stream2md.config import Settings
from stream2md.core.models import Node, NodeKind
from stream2md.core.utils.text import ASCII_PUNCT


AUTOLINK_RE = re.compile(r'<([A-Za-z][A-Za-z0-9.+-]{1,31}:[^<>\x00-\x20]*)>')
EMAIL_AUTOLINK_RE = re.compile(
    r"<([a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*)>"
)
BARE_URL_RE = re.compile(r'(?:https?://|www\.)[^\s<]+', re.IGNORECASE)
ESCAPED_RE = re.compile(r'\\([!-/:-@\[-`{-~])')
HTML_ATTRIBUTE = r'''\s+[A-Za-z_:][A-Za-z0-9_.:-]*(?:\s*=\s*(?:[^\s"'=<>`]+|'[^']*'|"[^"]*"))?'''
URL_TRAILING_PUNCT = "?!.,:*_~'\";"

_DEFAULT_SETTINGS = Settings()


@lru_cache(maxsize=16)
def html_tag_pattern(tags: tuple[str, ...]) -> re.Pattern | None:
    """Open, closing or self-closing tag restricted to the allow-listed names."""
    if not tags:
        return None
    names = "|".join(re.escape(t) for t in tags)
    return re.compile(rf'<(?:(?:{names})(?:{HTML_ATTRIBUTE})*\s*/?|/(?:{names})\s*)>', re.IGNORECASE)


def unescape(text: str) -> str:
    return ESCAPED_RE.sub(r'\1', text)


def plain_text(nodes: list[Node]) -> str:
    """Concatenated literal text of an inline forest (used for image alt text)."""
    parts = []
    for node in nodes:
        if node.kind in (NodeKind.text, NodeKind.code_span):
            parts.append(node.text)
        elif node.kind in (NodeKind.softbreak, NodeKind.hardbreak):
            parts.append(" ")
        elif node.kind == NodeKind.image:
            parts.append(node.attrs.get("alt", ""))
        else:
            parts.append(plain_text(node.children))
    return "".join(parts)


class _Delimiter:
    """A run of `*`, `_`, `~` or `^` awaiting pairing."""
    __slots__ = ("char", "length", "orig", "can_open", "can_close")

    def __init__(self, char: str, length: int, can_open: bool, can_close: bool):
        self.char = char
        self.length = length
        self.orig = length
        self.can_open = can_open
        self.can_close = can_close


class _Bracket:
    """An unresolved `[` or `![`."""
    __slots__ = ("image", "active", "delim_bottom")

    def __init__(self, image: bool, delim_bottom: int):
        self.image = image
        self.active = True
        self.delim_bottom = delim_bottom


def _index(items: list, obj) -> int:
    for i, item in enumerate(items):
        if item is obj:
            return i
    raise ValueError("marker not found")


def _flanking(before: str, after: str) -> tuple[bool, bool, bool, bool]:
    """(left_flanking, right_flanking, before_is_punct, after_is_punct) for a delimiter run."""
    last = ord(before) if before else 0x20
    nxt = ord(after) if after else 0x20
    last_punct = isMdAsciiPunct(last) or isPunctChar(before or " ")
    next_punct = isMdAsciiPunct(nxt) or isPunctChar(after or " ")
    last_ws = isWhiteSpace(last)
    next_ws = isWhiteSpace(nxt)
    left = not next_ws and (not next_punct or last_ws or last_punct)
    right = not last_ws and (not last_punct or next_ws or next_punct)
    return left, right, last_punct, next_punct


class InlineParser:
    """Single-use parser for one leaf block's text."""

    def __init__(self, text: str, html_re: re.Pattern | None = None, autolinks: bool = True):
        self.text = text
        self.html_re = html_re
        self.autolinks = autolinks
        self.pos = 0
        self.items: list = []
        self.delims: list[_Delimiter] = []
        self.brackets: list[_Bracket] = []
        self._buf: list[str] = []

    def parse(self) -> list[Node]:
        text = self.text
        while self.pos < len(text):
            ch = text[self.pos]
            if ch == "\\":
                self._backslash()
            elif ch == "`":
                self._code_span()
            elif ch == "<":
                self._angle()
            elif ch == "[" or (ch == "!" and text.startswith("[", self.pos + 1)):
                self._open_bracket(ch == "!")
            elif ch == "]":
                self._close_bracket()
            elif ch in "*_~^":
                self._delimiter_run(ch)
            elif ch == "\n":
                self._line_break()
            elif ch in "hHwW" and self._bare_url():
                pass
            else:
                self._buf.append(ch)
                self.pos += 1
        self._flush()
        self._process_emphasis(self.items, self.delims)
        return _finalize(self.items)

    def has_open_delimiters(self) -> bool:
        """After parse(): True if a run that can still open was left (partly) unmatched."""
        return any(isinstance(item, _Delimiter) and item.length and item.can_open for item in self.items)

    # --- scanning ---

    def _flush(self) -> None:
        if self._buf:
            self.items.append(Node(kind=NodeKind.text, text="".join(self._buf)))
            self._buf = []

    def _emit(self, node: Node) -> None:
        self._flush()
        self.items.append(node)

    def _backslash(self) -> None:
        nxt = self.text[self.pos + 1:self.pos + 2]
        if nxt == "\n":
            self._emit(Node(kind=NodeKind.hardbreak))
            self.pos += 2
            self._skip_indent()
        elif nxt and nxt in ASCII_PUNCT:
            self._buf.append(nxt)
            self.pos += 2
        else:
            self._buf.append("\\")
            self.pos += 1

    def _run_length(self, pos: int, ch: str) -> int:
        end = pos
        while end < len(self.text) and self.text[end] == ch:
            end += 1
        return end - pos

    def _code_span(self) -> None:
        length = self._run_length(self.pos, "`")
        search = self.pos + length
        while True:
            start = self.text.find("`", search)
            if start < 0:
                self._buf.append("`" * length)
                self.pos += length
                return
            run = self._run_length(start, "`")
            if run == length:
                break
            search = start + run
        content = self.text[self.pos + length:start].replace("\n", " ")
        if len(content) >= 2 and content[0] == " " and content[-1] == " " and content.strip(" "):
            content = content[1:-1]
        self._emit(Node(kind=NodeKind.code_span, text=content))
        self.pos = start + length

    def _angle(self) -> None:
        m = AUTOLINK_RE.match(self.text, self.pos)
        if m:
            url = m.group(1)
            self._emit(_autolink(url, url))
            self.pos = m.end()
            return
        m = EMAIL_AUTOLINK_RE.match(self.text, self.pos)
        if m:
            self._emit(_autolink("mailto:" + m.group(1), m.group(1)))
            self.pos = m.end()
            return
        m = self.html_re.match(self.text, self.pos) if self.html_re else None
        if m:
            self._emit(Node(kind=NodeKind.html_inline, text=m.group(0)))
            self.pos = m.end()
            return
        self._buf.append("<")
        self.pos += 1

    def _bare_url(self) -> bool:
        if not self.autolinks or any(b.active and not b.image for b in self.brackets):
            return False
        before = self.text[self.pos - 1] if self.pos else ""
        if before and not (before.isspace() or before in "*_~("):
            return False
        m = BARE_URL_RE.match(self.text, self.pos)
        if not m:
            return False
        url = m.group(0)
        while url:
            if url[-1] in URL_TRAILING_PUNCT:
                url = url[:-1]
            elif url[-1] == ")" and url.count("(") < url.count(")"):
                url = url[:-1]
            else:
                break
        prefix = "www." if url.lower().startswith("www.") else url[:url.index("//") + 2]
        if len(url) <= len(prefix):
            return False
        href = url if prefix != "www." else "http://" + url
        self._emit(_autolink(href, url))
        self.pos += len(url)
        return True

    def _open_bracket(self, image: bool) -> None:
        self._flush()
        bracket = _Bracket(image, len(self.delims))
        self.items.append(bracket)
        self.brackets.append(bracket)
        self.pos += 2 if image else 1

    def _close_bracket(self) -> None:
        self._flush()
        if not self.brackets:
            self._buf.append("]")
            self.pos += 1
            return
        opener = self.brackets.pop()
        tail = self._link_tail(self.pos + 1) if opener.active else None
        if tail is None:
            self._buf.append("]")
            self.pos += 1
            return
        href, title, end = tail
        idx = _index(self.items, opener)
        inner = self.items[idx + 1:]
        self._process_emphasis(inner, self.delims[opener.delim_bottom:])
        del self.delims[opener.delim_bottom:]
        children = _finalize(inner)
        if opener.image:
            node = Node(kind=NodeKind.image, attrs={"src": href, "alt": plain_text(children), "title": title})
        else:
            node = Node(kind=NodeKind.link, attrs={"href": href, "title": title}, children=children)
            # links may not contain other links
            for bracket in self.brackets:
                if not bracket.image:
                    bracket.active = False
        self.items[idx:] = [node]
        self.pos = end

    def _link_tail(self, pos: int) -> tuple[str, str | None, int] | None:
        """Parse `(destination "title")` starting at pos; returns (href, title, end) or None."""
        text = self.text
        if not text.startswith("(", pos):
            return None
        pos = self._skip_space(pos + 1)
        if text.startswith("<", pos):
            end = pos + 1
            while end < len(text) and text[end] not in "<>\n":
                end += 2 if text[end] == "\\" else 1
            if end >= len(text) or text[end] != ">":
                return None
            href = text[pos + 1:end]
            pos = end + 1
        else:
            start, depth = pos, 0
            while pos < len(text):
                ch = text[pos]
                if ch == "\\" and pos + 1 < len(text):
                    pos += 2
                    continue
                if ch.isspace() or ord(ch) < 0x20:
                    break
                if ch == "(":
                    depth += 1
                elif ch == ")":
                    if depth == 0:
                        break
                    depth -= 1
                pos += 1
            if depth:
                return None
            href = text[start:pos]
        title = None
        after_dest = pos
        pos = self._skip_space(pos)
        if pos < len(text) and text[pos] in "\"'(" and pos > after_dest:
            close = ")" if text[pos] == "(" else text[pos]
            end = pos + 1
            while end < len(text) and text[end] != close:
                end += 2 if text[end] == "\\" else 1
            if end >= len(text):
                return None
            title = unescape(text[pos + 1:end])
            pos = self._skip_space(end + 1)
        if not text.startswith(")", pos):
            return None
        return unescape(href), title, pos + 1

    def _skip_space(self, pos: int) -> int:
        while pos < len(self.text) and self.text[pos] in " \t\n":
            pos += 1
        return pos

    def _skip_indent(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos] in " \t":
            self.pos += 1

    def _delimiter_run(self, ch: str) -> None:
        length = self._run_length(self.pos, ch)
        before = self.text[self.pos - 1] if self.pos else ""
        after = self.text[self.pos + length] if self.pos + length < len(self.text) else ""
        left, right, before_punct, after_punct = _flanking(before, after)
        if ch == "_":
            can_open = left and (not right or before_punct)
            can_close = right and (not left or after_punct)
        else:
            can_open, can_close = left, right
        self._flush()
        delim = _Delimiter(ch, length, can_open, can_close)
        self.items.append(delim)
        self.delims.append(delim)
        self.pos += length

    def _line_break(self) -> None:
        pending = "".join(self._buf)
        stripped = pending.rstrip(" ")
        trailing = len(pending) - len(stripped)
        self._buf = [stripped] if stripped else []
        self._emit(Node(kind=NodeKind.hardbreak if trailing >= 2 else NodeKind.softbreak))
        self.pos += 1
        self._skip_indent()

    # --- delimiter pairing ---

    def _process_emphasis(self, items: list, delims: list[_Delimiter]) -> None:
        """Pair delimiter runs in `items` (mutated in place); `delims` lists the runs in order."""
        delims = list(delims)
        openers_bottom: dict[tuple, int] = {}
        closer_i = 0
        while closer_i < len(delims):
            closer = delims[closer_i]
            if not closer.can_close:
                closer_i += 1
                continue
            key = (closer.char, closer.can_open, closer.orig % 3)
            bottom = openers_bottom.get(key, -1)
            opener_i = closer_i - 1
            match = None
            while opener_i > bottom:
                opener = delims[opener_i]
                if opener.char == closer.char and opener.can_open:
                    match = self._pairing(items, opener, closer)
                    if match:
                        break
                opener_i -= 1
            if not match:
                openers_bottom[key] = closer_i - 1
                if closer.can_open:
                    closer_i += 1
                else:
                    delims.pop(closer_i)
                continue

            kind, used = match
            opener = delims[opener_i]
            o_idx, c_idx = _index(items, opener), _index(items, closer)
            node = Node(kind=kind, children=_finalize(items[o_idx + 1:c_idx]))
            items[o_idx + 1:c_idx] = [node]
            del delims[opener_i + 1:closer_i]
            closer_i = opener_i + 1
            openers_bottom.clear()
            opener.length -= used
            closer.length -= used
            if opener.length == 0:
                del items[_index(items, opener)]
                delims.pop(opener_i)
                closer_i -= 1
            if closer.length == 0:
                del items[_index(items, closer)]
                delims.pop(closer_i)

    def _pairing(self, items: list, opener: _Delimiter, closer: _Delimiter) -> tuple[NodeKind, int] | None:
        """Node kind and delimiter count consumed when `opener` and `closer` pair, else None."""
        char = closer.char
        if char in "*_":
            if (opener.can_close or closer.can_open) and (opener.orig + closer.orig) % 3 == 0:
                if not (opener.orig % 3 == 0 and closer.orig % 3 == 0):
                    return None
            if opener.length >= 2 and closer.length >= 2:
                return NodeKind.strong, 2
            return NodeKind.emphasis, 1
        if char == "~" and opener.length == 2 and closer.length == 2:
            return NodeKind.strikethrough, 2
        if opener.length == 1 and closer.length == 1:
            # sub/superscript content may not contain whitespace
            inner = items[_index(items, opener) + 1:_index(items, closer)]
            if not inner or any(not isinstance(it, Node) or it.kind != NodeKind.text or not it.text
                                or any(c.isspace() for c in it.text) for it in inner):
                return None
            return (NodeKind.sub if char == "~" else NodeKind.sup), 1
        return None


def _autolink(href: str, label: str) -> Node:
    return Node(
        kind=NodeKind.link,
        attrs={"href": href, "title": None},
        children=[Node(kind=NodeKind.text, text=label)],
    )


def _finalize(items: list) -> list[Node]:
    """Turn leftover markers into text, merge adjacent text and fold soft breaks into preceding text."""
    out: list[Node] = []
    for item in items:
        if isinstance(item, _Delimiter):
            if not item.length:
                continue
            item = Node(kind=NodeKind.text, text=item.char * item.length)
        elif isinstance(item, _Bracket):
            item = Node(kind=NodeKind.text, text="![" if item.image else "[")
        prev = out[-1] if out else None
        if prev is not None and prev.kind == NodeKind.text:
            if item.kind == NodeKind.text:
                out[-1] = Node(kind=NodeKind.text, text=prev.text + item.text)
                continue
            if item.kind == NodeKind.softbreak:
                out[-1] = Node(kind=NodeKind.text, text=prev.text + "\n")
                continue
        if item.kind == NodeKind.text and not item.text:
            continue
        out.append(item)
    return out


@lru_cache(maxsize=4096)
def _parse_cached(text: str, tags: tuple[str, ...], autolinks: bool) -> tuple[Node, ...]:
    return tuple(InlineParser(text, html_tag_pattern(tags), autolinks).parse())


def parse_inline(text: str, settings: Settings | None = None) -> list[Node]:
    """Parse one leaf block's raw text into inline nodes. Results are memoised; do not mutate them."""
    settings = settings or _DEFAULT_SETTINGS
    return list(_parse_cached(text, tuple(settings.html_inline_tags), settings.autolinks))


@lru_cache(maxsize=1024)
def _open_delimiters_cached(text: str, tags: tuple[str, ...], autolinks: bool) -> bool:
    parser = InlineParser(text, html_tag_pattern(tags), autolinks)
    parser.parse()
    return parser.has_open_delimiters()


def has_open_delimiters(text: str, settings: Settings | None = None) -> bool:
    """True if an emphasis-style run in `text` is still waiting for a closer that later text could supply."""
    settings = settings or _DEFAULT_SETTINGS
    return _open_delimiters_cached(text, tuple(settings.html_inline_tags), settings.autolinks)
