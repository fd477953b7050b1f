"""Line-oriented block parser: safe-prefix text to a forest of block nodes"""

import re
from functools import lru_cache

from stream2md.config import Settings
from stream2md.core.inline import parse_inline
from stream2md.core.models import Node, NodeKind
from stream2md.core.utils.text import (
    TABLE_DELIMITER_RE,
    dedent,
    has_unescaped_pipe,
    indent_width,
    is_blank,
    split_lines,
    split_table_row,
    table_alignments,
)


ATX_HEADING_RE = re.compile(r'^ {0,3}(#{1,6})(?:[ \t]+(.*?))?[ \t]*$')
ATX_CLOSING_RE = re.compile(r'(?:^|[ \t]+)#+$')
THEMATIC_BREAK_RE = re.compile(r'^ {0,3}(?:(?:\*[ \t]*){3,}|(?:-[ \t]*){3,}|(?:_[ \t]*){3,})$')
FENCE_OPEN_RE = re.compile(r'^( {0,3})(`{3,}|~{3,})(.*)$')
BLOCKQUOTE_RE = re.compile(r'^ {0,3}>')
LIST_ITEM_RE = re.compile(r'^( {0,3})([-*+]|\d{1,9}[.)])(?=[ \t]|$)')
TASK_RE = re.compile(r'^\[([ xX])\](?=[ \t]|$)[ \t]?')


@lru_cache(maxsize=16)
def html_block_pattern(tags: tuple[str, ...]) -> re.Pattern | None:
    """Regex matching a line that opens (or closes) one of the allow-listed block tags."""
    if not tags:
        return None
    names = "|".join(re.escape(t) for t in tags)
    return re.compile(rf'^ {{0,3}}</?(?:{names})(?=[\s/>]|$)', re.IGNORECASE)


def fence_open(line: str) -> re.Match | None:
    """Match an opening fence; backtick fences may not carry backticks in their info string."""
    m = FENCE_OPEN_RE.match(line)
    if m and m.group(2)[0] == "`" and "`" in m.group(3):
        return None
    return m


def is_fence_close(line: str, char: str, length: int) -> bool:
    stripped = line.strip()
    if indent_width(line) > 3 or len(stripped) < length:
        return False
    return stripped == char * len(stripped)


def list_marker(m: re.Match) -> tuple[bool, str, int | None]:
    """(ordered, bullet char or ordered delimiter, start number) for a LIST_ITEM_RE match."""
    marker = m.group(2)
    if marker[-1] in ".)":
        return True, marker[-1], int(marker[:-1])
    return False, marker, None


class _ParagraphTracker:
    """Tracks whether collected container lines currently end in an open paragraph (lazy continuation)."""

    def __init__(self):
        self._fence: tuple[str, int] | None = None
        self.open = False

    def feed(self, line: str) -> None:
        content = line
        while True:
            m = BLOCKQUOTE_RE.match(content)
            if not m:
                break
            content = content[m.end():]
        if self._fence:
            if is_fence_close(content, *self._fence):
                self._fence = None
            self.open = False
            return
        if is_blank(content):
            self.open = False
            return
        m = fence_open(content.lstrip())
        if m:
            self._fence = (m.group(2)[0], len(m.group(2)))
            self.open = False
        elif THEMATIC_BREAK_RE.match(content) or ATX_HEADING_RE.match(content):
            self.open = False
        else:
            self.open = True


class BlockParser:
    """Groups lines into block nodes; never rejects input, only classifies it."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()
        self._tab = self.settings.tab_width
        self._html_re = html_block_pattern(tuple(self.settings.html_block_tags))

    def parse(self, text: str) -> list[Node]:
        blocks, _ = self._parse_lines(split_lines(text), 0)
        return blocks

    # --- line classification ---

    def is_html_start(self, line: str) -> bool:
        return bool(self._html_re and self._html_re.match(line))

    def starts_block(self, line: str) -> bool:
        """True if the line opens a non-paragraph block at this container level."""
        return bool(
            fence_open(line)
            or THEMATIC_BREAK_RE.match(line)
            or ATX_HEADING_RE.match(line)
            or BLOCKQUOTE_RE.match(line)
            or LIST_ITEM_RE.match(line)
            or self.is_html_start(line)
        )

    def interrupts_paragraph(self, line: str) -> bool:
        if is_blank(line):
            return True
        m = LIST_ITEM_RE.match(line)
        if m and not (THEMATIC_BREAK_RE.match(line)):
            # only non-empty items interrupt; ordered ones must start at 1
            if is_blank(line[m.end():]):
                return False
            ordered, _, start = list_marker(m)
            return not ordered or start == 1
        return self.starts_block(line)

    def is_table_start(self, header: str, delimiter: str) -> bool:
        if not has_unescaped_pipe(header) or "|" not in delimiter:
            return False
        if not TABLE_DELIMITER_RE.match(delimiter):
            return False
        return len(split_table_row(header)) == len(split_table_row(delimiter))

    # --- block grammar ---

    def _parse_lines(self, lines: list[str], depth: int) -> tuple[list[Node], bool]:
        """Parse a container's lines. Returns (blocks, loose) where loose means a blank line separated two blocks."""
        blocks: list[Node] = []
        loose = False
        pending_blank = False
        i = 0
        while i < len(lines):
            if is_blank(lines[i]):
                pending_blank = bool(blocks)
                i += 1
                continue
            if pending_blank:
                loose = True
                pending_blank = False
            node, i = self._parse_block(lines, i, depth)
            blocks.append(node)
        return blocks, loose

    def _parse_block(self, lines: list[str], i: int, depth: int) -> tuple[Node, int]:
        line = lines[i]
        m = fence_open(line)
        if m:
            return self._parse_fence(lines, i, m)
        if THEMATIC_BREAK_RE.match(line):
            return Node(kind=NodeKind.thematic_break), i + 1
        m = ATX_HEADING_RE.match(line)
        if m:
            content = ATX_CLOSING_RE.sub("", m.group(2) or "").strip()
            heading = Node(
                kind=NodeKind.heading,
                attrs={"level": len(m.group(1))},
                children=parse_inline(content, self.settings),
            )
            return heading, i + 1
        if BLOCKQUOTE_RE.match(line):
            return self._parse_blockquote(lines, i, depth)
        m = LIST_ITEM_RE.match(line)
        if m:
            return self._parse_list(lines, i, depth)
        if self.is_html_start(line):
            return self._parse_html_block(lines, i)
        if i + 1 < len(lines) and self.is_table_start(line, lines[i + 1]):
            return self._parse_table(lines, i)
        return self._parse_paragraph(lines, i)

    def _parse_paragraph(self, lines: list[str], i: int) -> tuple[Node, int]:
        collected = [lines[i].lstrip(" \t")]
        i += 1
        while i < len(lines) and not self.interrupts_paragraph(lines[i]):
            collected.append(lines[i].lstrip(" \t"))
            i += 1
        text = "\n".join(collected).rstrip()
        return Node(kind=NodeKind.paragraph, children=parse_inline(text, self.settings)), i

    def _parse_fence(self, lines: list[str], i: int, m: re.Match) -> tuple[Node, int]:
        fence_indent = len(m.group(1))
        char, length = m.group(2)[0], len(m.group(2))
        info = m.group(3).strip()
        body: list[str] = []
        i += 1
        while i < len(lines):
            if is_fence_close(lines[i], char, length):
                i += 1
                break
            body.append(dedent(lines[i], fence_indent, self._tab))
            i += 1
        node = Node(
            kind=NodeKind.code_fence,
            text="\n".join(body),
            attrs={"lang": info.split()[0] if info else "", "info": info},
        )
        return node, i

    def _parse_blockquote(self, lines: list[str], i: int, depth: int) -> tuple[Node, int]:
        inner: list[str] = []
        tracker = _ParagraphTracker()
        while i < len(lines):
            line = lines[i]
            m = BLOCKQUOTE_RE.match(line)
            if m:
                rest = line[m.end():]
                if rest[:1] in (" ", "\t"):
                    rest = rest[1:]
                inner.append(rest)
            elif tracker.open and not self.interrupts_paragraph(line):
                # lazy continuation of a paragraph inside the quote
                inner.append(line)
            else:
                break
            tracker.feed(inner[-1])
            i += 1
        children, _ = self._parse_lines(inner, depth + 1)
        return Node(kind=NodeKind.blockquote, attrs={"depth": depth + 1}, children=children), i

    def _parse_list(self, lines: list[str], i: int, depth: int) -> tuple[Node, int]:
        first = LIST_ITEM_RE.match(lines[i])
        ordered, delimiter, start = list_marker(first)
        items: list[Node] = []
        loose = False
        while True:
            m = LIST_ITEM_RE.match(lines[i])
            item, i, item_loose = self._parse_list_item(lines, i, m, depth)
            items.append(item)
            loose = loose or item_loose
            j = i
            while j < len(lines) and is_blank(lines[j]):
                j += 1
            if j < len(lines) and self._is_sibling(lines[j], ordered, delimiter):
                loose = loose or j > i
                i = j
                continue
            break
        attrs = {"ordered": ordered, "start": start, "tight": not loose}
        return Node(kind=NodeKind.list, attrs=attrs, children=items), i

    def _is_sibling(self, line: str, ordered: bool, delimiter: str) -> bool:
        m = LIST_ITEM_RE.match(line)
        if not m or THEMATIC_BREAK_RE.match(line):
            return False
        other_ordered, other_delimiter, _ = list_marker(m)
        return other_ordered == ordered and other_delimiter == delimiter

    def _parse_list_item(self, lines: list[str], i: int, m: re.Match, depth: int) -> tuple[Node, int, bool]:
        line = lines[i]
        marker_end = m.end()
        rest = line[marker_end:]
        if is_blank(rest):
            content_indent = marker_end + 1
            first = ""
        else:
            spaces = indent_width(rest, self._tab)
            if spaces > 4:
                content_indent = marker_end + 1
                first = dedent(rest, 1, self._tab)
            else:
                content_indent = marker_end + spaces
                first = dedent(rest, spaces, self._tab)

        attrs = {}
        task = TASK_RE.match(first)
        if task:
            attrs["checked"] = task.group(1) != " "
            first = first[task.end():]

        item_lines = [first]
        tracker = _ParagraphTracker()
        tracker.feed(first)
        i += 1
        while i < len(lines):
            line = lines[i]
            if is_blank(line):
                item_lines.append("")
            elif indent_width(line, self._tab) >= content_indent:
                item_lines.append(dedent(line, content_indent, self._tab))
            elif LIST_ITEM_RE.match(line) or THEMATIC_BREAK_RE.match(line):
                break
            elif item_lines[-1] and tracker.open and not self.interrupts_paragraph(line):
                item_lines.append(line.lstrip(" \t"))
            else:
                break
            tracker.feed(item_lines[-1])
            i += 1
        while len(item_lines) > 1 and item_lines[-1] == "":
            item_lines.pop()
            i -= 1

        children, loose = self._parse_lines(item_lines, depth)
        return Node(kind=NodeKind.list_item, attrs=attrs, children=children), i, loose

    def _parse_html_block(self, lines: list[str], i: int) -> tuple[Node, int]:
        collected = []
        while i < len(lines) and not is_blank(lines[i]):
            collected.append(lines[i])
            i += 1
        return Node(kind=NodeKind.html_block, text="\n".join(collected)), i

    def _parse_table(self, lines: list[str], i: int) -> tuple[Node, int]:
        aligns = table_alignments(lines[i + 1])
        rows = [self._table_row(split_table_row(lines[i]), aligns, header=True)]
        i += 2
        while (
            i < len(lines)
            and not is_blank(lines[i])
            and has_unescaped_pipe(lines[i])
            and not self.starts_block(lines[i])
        ):
            rows.append(self._table_row(split_table_row(lines[i]), aligns, header=False))
            i += 1
        return Node(kind=NodeKind.table, attrs={"align": aligns}, children=rows), i

    def _table_row(self, cells: list[str], aligns: list[str | None], header: bool) -> Node:
        cells = (cells + [""] * len(aligns))[:len(aligns)]
        children = [
            Node(kind=NodeKind.table_cell, attrs={"align": align}, children=parse_inline(cell, self.settings))
            for cell, align in zip(cells, aligns)
        ]
        return Node(kind=NodeKind.table_row, attrs={"header": header}, children=children)


def parse_blocks(text: str, settings: Settings | None = None) -> list[Node]:
    """Parse `text` (a safe prefix of the stream buffer) into top-level block nodes."""
    return BlockParser(settings).parse(text)
