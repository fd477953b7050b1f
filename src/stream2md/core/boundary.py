"""Safe-boundary detection: the longest buffer prefix whose meaning cannot change as more text arrives.

The scan is a single pass over complete lines with a small amount of explicit state: the
blockquote depth and list-item indents the current line sits in, an open code fence and the
container it was opened in, a table's column count, and the inline constructs left open in
the current leaf block. Candidate boundaries sit only at line ends (plus two kinds of
complete leaf on an unterminated last line), so earlier candidates never depend on later text.
"""

import re

from stream2md.config import Settings
from stream2md.core.blocks import (
    ATX_HEADING_RE,
    BLOCKQUOTE_RE,
    LIST_ITEM_RE,
    TASK_RE,
    THEMATIC_BREAK_RE,
    BlockParser,
    fence_open,
    is_fence_close,
)
from stream2md.core.inline import has_open_delimiters
from stream2md.core.utils.text import (
    closed_cell_count,
    dedent,
    grapheme_safe_offset,
    has_unescaped_pipe,
    indent_width,
    is_blank,
    split_table_row,
)


AUTOLINK_START_RE = re.compile(r'<[A-Za-z][A-Za-z0-9.+-]{1,31}:')


class InlineTracker:
    """Finite tracker of code spans, link brackets and destinations, and tags still open in a leaf block's text.

    Emphasis-style delimiters are not tracked here; pairing them needs the whole leaf, see
    `has_open_delimiters`.
    """

    def __init__(self, tag_start_re: re.Pattern | None):
        self._tag_start_re = tag_start_re
        self.code = 0
        self.brackets = 0
        self.in_dest = False
        self.parens = 0
        self.in_tag = False

    @property
    def open(self) -> bool:
        return bool(self.code or self.brackets or self.in_dest or self.in_tag)

    def feed(self, text: str) -> None:
        i = 0
        n = len(text)
        while i < n:
            ch = text[i]
            if self.code:
                run = _run(text, i, "`") if ch == "`" else 1
                if ch == "`" and run == self.code:
                    self.code = 0
                i += run
                continue
            if self.in_tag:
                self.in_tag = ch != ">"
                i += 1
                continue
            if ch == "\\":
                i += 2
                continue
            if self.in_dest:
                if ch == "(":
                    self.parens += 1
                elif ch == ")":
                    if self.parens:
                        self.parens -= 1
                    else:
                        self.in_dest = False
                i += 1
                continue
            if ch == "`":
                run = _run(text, i, "`")
                self.code = run
                i += run
                continue
            if ch == "<":
                if AUTOLINK_START_RE.match(text, i) or (self._tag_start_re and self._tag_start_re.match(text, i)):
                    self.in_tag = True
            elif ch == "[":
                self.brackets += 1
            elif ch == "]" and self.brackets:
                self.brackets -= 1
                if text.startswith("(", i + 1):
                    self.in_dest = True
                    self.parens = 0
                    i += 2
                    continue
            i += 1


def _run(text: str, i: int, ch: str) -> int:
    end = i
    while end < len(text) and text[end] == ch:
        end += 1
    return end - i


def _strip_quotes(line: str, limit: int | None = None) -> tuple[str, int]:
    """Remove up to `limit` blockquote markers, each with one optional following space."""
    depth = 0
    while limit is None or depth < limit:
        m = BLOCKQUOTE_RE.match(line)
        if not m:
            break
        line = line[m.end():]
        if line[:1] in (" ", "\t"):
            line = line[1:]
        depth += 1
    return line, depth


class _Fence:
    __slots__ = ("char", "length", "quotes", "indent")

    def __init__(self, char: str, length: int, quotes: int, indent: int):
        self.char = char
        self.length = length
        # container the fence was opened in
        self.quotes = quotes
        self.indent = indent


class _ScanState:
    def __init__(self):
        self.fence: _Fence | None = None
        self.items: list[int] = []
        self.item_quotes = 0
        self.table_cols: int | None = None
        self.leaf: InlineTracker | None = None
        self.leaf_text: list[str] = []
        self.leaf_quotes = 0
        self.leaf_html = False
        self.header_line: str | None = None

    def close_leaf(self) -> None:
        self.leaf = None
        self.leaf_text = []
        self.leaf_html = False
        self.header_line = None


class BoundaryDetector:
    """Computes the safe boundary of a stream buffer."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()
        self._tab = self.settings.tab_width
        self._blocks = BlockParser(self.settings)
        tags = tuple(self.settings.html_inline_tags)
        names = "|".join(re.escape(t) for t in tags)
        self._tag_start_re = re.compile(rf'</?(?:{names})(?=[\s/>]|$)', re.IGNORECASE) if tags else None

    def compute(self, buffer: str, final: bool = False) -> int:
        if final:
            return len(buffer)
        if not buffer.strip():
            return 0
        state = _ScanState()
        boundary = 0
        offset = 0
        while True:
            nl = buffer.find("\n", offset)
            if nl < 0:
                break
            line = buffer[offset:nl]
            if line.endswith("\r"):
                line = line[:-1]
            if self._feed(state, line):
                boundary = nl + 1
            offset = nl + 1
        tail = buffer[offset:]
        if tail and self._complete_leaf(state, tail.rstrip("\r")):
            boundary = len(buffer)
        return grapheme_safe_offset(buffer, boundary)

    # --- containers ---

    def _containers(self, state: _ScanState, line: str) -> tuple[str, int, bool]:
        """Strip blockquote markers and list-item indentation the way the block parser nests them.

        Returns (content, quote depth, whether the line opened a list item).
        """
        rest, quotes = _strip_quotes(line)
        if quotes != state.item_quotes:
            state.items = []
            state.item_quotes = quotes
        if is_blank(rest):
            return "", quotes, False
        width = indent_width(rest, self._tab)
        if state.items and width < state.items[-1] and self._is_lazy(state, rest):
            return rest.lstrip(" \t"), quotes, False
        while state.items and width < state.items[-1]:
            state.items.pop()
        base = state.items[-1] if state.items else 0
        content = dedent(rest, base, self._tab)
        marker = False
        while True:
            m = LIST_ITEM_RE.match(content)
            if not m or THEMATIC_BREAK_RE.match(content):
                break
            marker = True
            after = content[m.end():]
            spaces = indent_width(after, self._tab)
            if is_blank(after) or spaces > 4:
                base += m.end() + 1
                content = dedent(after, 1, self._tab) if not is_blank(after) else ""
            else:
                base += m.end() + spaces
                content = dedent(after, spaces, self._tab)
            state.items.append(base)
        task = TASK_RE.match(content) if marker else None
        if task:
            content = content[task.end():]
        return content, quotes, marker

    def _is_lazy(self, state: _ScanState, rest: str) -> bool:
        """A dedented line that still continues the open paragraph of a list item."""
        return (
            state.leaf is not None
            and not state.leaf_html
            and state.table_cols is None
            and not LIST_ITEM_RE.match(rest)
            and not self._blocks.interrupts_paragraph(rest)
        )

    def _in_fence(self, fence: _Fence, line: str) -> bool | None:
        """True if the line closes the fence, False if it is fence content, None if the fence's container ended."""
        rest, depth = _strip_quotes(line, fence.quotes)
        if depth < fence.quotes:
            return None
        if is_blank(rest):
            return False
        if indent_width(rest, self._tab) < fence.indent:
            return None
        return is_fence_close(dedent(rest, fence.indent, self._tab), fence.char, fence.length)

    # --- per-line state machine ---

    def _feed(self, state: _ScanState, line: str) -> bool:
        """Advance the scan by one complete line; True if the line end is a safe boundary."""
        if state.fence:
            closed = self._in_fence(state.fence, line)
            if closed is not None:
                if closed:
                    state.fence = None
                return closed
            state.fence = None

        content, quotes, marker = self._containers(state, line)
        if is_blank(content) or THEMATIC_BREAK_RE.match(content):
            state.close_leaf()
            state.table_cols = None
            return True

        m = fence_open(content)
        if m:
            indent = state.items[-1] if state.items else 0
            state.fence = _Fence(m.group(2)[0], len(m.group(2)), quotes, indent)
            state.close_leaf()
            state.table_cols = None
            return False
        if ATX_HEADING_RE.match(content):
            state.close_leaf()
            state.table_cols = None
            return True

        if state.table_cols is not None:
            if not marker and has_unescaped_pipe(content) and not self._blocks.starts_block(content):
                return True
            state.table_cols = None

        if len(state.leaf_text) == 1 and state.header_line is not None and not marker:
            if self._blocks.is_table_start(state.header_line, content):
                state.table_cols = len(split_table_row(state.header_line))
                state.close_leaf()
                return True

        html = self._blocks.is_html_start(content)
        new_leaf = state.leaf is None or marker or html or quotes > state.leaf_quotes
        if new_leaf:
            state.close_leaf()
            state.leaf = InlineTracker(self._tag_start_re)
            state.leaf_quotes = quotes
            state.leaf_html = html
            state.header_line = content if has_unescaped_pipe(content) and not html else None
        state.leaf_text.append(content.lstrip(" \t"))
        if state.leaf_html:
            return True
        state.leaf.feed(content + "\n")
        if len(state.leaf_text) == 1 and state.header_line is not None:
            return False
        if state.leaf.open:
            return False
        return not has_open_delimiters("\n".join(state.leaf_text), self.settings)

    def _complete_leaf(self, state: _ScanState, tail: str) -> bool:
        """True if an unterminated last line can no longer change meaning."""
        if state.fence:
            return self._in_fence(state.fence, tail) is True
        if state.table_cols is None:
            return False
        row = _strip_quotes(tail)[0].strip()
        if not has_unescaped_pipe(row) or self._blocks.starts_block(row):
            return False
        # cells past the header's count are dropped, so later text on this line cannot matter
        return closed_cell_count(row) >= state.table_cols


def compute_safe_boundary(buffer: str, final: bool = False, settings: Settings | None = None) -> int:
    """Offset of the longest parse-stable prefix of `buffer`; `final` forces the whole buffer."""
    return BoundaryDetector(settings).compute(buffer, final=final)
