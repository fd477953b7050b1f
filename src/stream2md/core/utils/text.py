"""Line, indentation, table-row and grapheme helpers shared by the detector and parsers"""

import re
import unicodedata


ZWJ = "\u200d"
ASCII_PUNCT = set("!\"#$%&'()*+,-./:;<=>?@[\\]^_`{|}~")

TABLE_DELIMITER_RE = re.compile(r'^ {0,3}\|?[ \t]*:?-+:?[ \t]*(?:\|[ \t]*:?-+:?[ \t]*)*\|?[ \t]*$')


def split_lines(text: str) -> list[str]:
    """Split on \\n and drop a trailing \\r from each line. A trailing newline yields no extra line."""
    if not text:
        return []
    lines = text.split("\n")
    if text.endswith("\n"):
        lines.pop()
    return [ln[:-1] if ln.endswith("\r") else ln for ln in lines]


def is_blank(line: str) -> bool:
    return not line.strip()


def indent_width(line: str, tab_width: int = 4) -> int:
    """Column width of leading whitespace with tabs expanded to the next tab stop."""
    col = 0
    for ch in line:
        if ch == " ":
            col += 1
        elif ch == "\t":
            col += tab_width - (col % tab_width)
        else:
            break
    return col


def dedent(line: str, width: int, tab_width: int = 4) -> str:
    """Remove up to `width` columns of leading whitespace, splitting a tab if needed."""
    col = 0
    i = 0
    while i < len(line) and col < width:
        ch = line[i]
        if ch == " ":
            col += 1
        elif ch == "\t":
            step = tab_width - (col % tab_width)
            if col + step > width:
                return " " * (col + step - width) + line[i + 1:]
            col += step
        else:
            break
        i += 1
    return line[i:]


def has_unescaped_pipe(line: str) -> bool:
    escaped = False
    for ch in line:
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == "|":
            return True
    return False


def closed_cell_count(line: str) -> int:
    """Cells of a table row already terminated by an unescaped pipe; a leading pipe closes nothing."""
    row = line.strip()
    pipes = 0
    escaped = False
    for ch in row:
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == "|":
            pipes += 1
    return pipes - 1 if row.startswith("|") else pipes


def split_table_row(line: str) -> list[str]:
    """Split a pipe table row into stripped cell texts; escaped pipes stay in the cell as '|'."""
    row = line.strip()
    if row.startswith("|"):
        row = row[1:]
    if row.endswith("|") and not row.endswith("\\|"):
        row = row[:-1]
    cells: list[str] = []
    current: list[str] = []
    i = 0
    while i < len(row):
        ch = row[i]
        if ch == "\\" and i + 1 < len(row) and row[i + 1] == "|":
            current.append("|")
            i += 2
            continue
        if ch == "|":
            cells.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        i += 1
    cells.append("".join(current).strip())
    return cells


def table_alignments(delimiter_row: str) -> list[str | None]:
    """Column alignments from a delimiter row such as `|:--|:-:|--:|`."""
    aligns: list[str | None] = []
    for cell in split_table_row(delimiter_row):
        left, right = cell.startswith(":"), cell.endswith(":")
        if left and right:
            aligns.append("center")
        elif right:
            aligns.append("right")
        elif left:
            aligns.append("left")
        else:
            aligns.append(None)
    return aligns


def extends_grapheme(ch: str) -> bool:
    """True when `ch` attaches to the preceding character instead of starting a new cluster."""
    if ch == ZWJ or "\ufe00" <= ch <= "\ufe0f":
        return True
    cp = ord(ch)
    if 0x1F3FB <= cp <= 0x1F3FF or 0xE0020 <= cp <= 0xE007F:
        return True
    return unicodedata.category(ch) in ("Mn", "Me", "Mc")


def grapheme_safe_offset(text: str, offset: int) -> int:
    """Pull offset back until it does not split a grapheme cluster or surrogate pair in `text`.

    An offset right after a line break is always safe. At the end of `text` the next
    character is unknown, so a trailing ZWJ or lone high surrogate is held back.
    """
    while 0 < offset and text[offset - 1] not in "\r\n":
        prev = text[offset - 1]
        if prev == ZWJ or "\ud800" <= prev <= "\udbff":
            offset -= 1
        elif offset < len(text) and extends_grapheme(text[offset]):
            offset -= 1
        else:
            break
    return offset
