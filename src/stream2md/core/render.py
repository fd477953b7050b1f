"""Reference HTML renderer for engine trees.

Real consumers apply patches to their own view; this renderer exists so a tree (or a forest
rebuilt with `apply_patches`) can be inspected as HTML, e.g. from the CLI.
"""

from collections.abc import Callable

from markdown_it.common.utils import escapeHtml

from stream2md.core.models import Node, NodeKind


Highlighter = Callable[[str, str], str]

_SIMPLE_TAGS = {
    NodeKind.emphasis: "em",
    NodeKind.strong: "strong",
    NodeKind.strikethrough: "s",
    NodeKind.sub: "sub",
    NodeKind.sup: "sup",
}


def _attr(name: str, value) -> str:
    return f' {name}="{escapeHtml(str(value))}"'


def _inline(nodes: list[Node]) -> str:
    return "".join(_render(n, None, tight=False) for n in nodes)


def _list_item(node: Node, highlighter: Highlighter | None, tight: bool) -> str:
    checked = node.attrs.get("checked")
    box = ""
    if checked is not None:
        box = '<input type="checkbox" disabled=""' + (' checked=""' if checked else "") + " /> "
    parts = []
    for child in node.children:
        if tight and child.kind == NodeKind.paragraph:
            parts.append(_inline(child.children))
        else:
            parts.append("\n" + _render(child, highlighter, tight))
    body = "".join(parts)
    if body.startswith("\n") and box:
        body = body[1:]
    return f"<li>{box}{body}</li>\n"


def _table(node: Node) -> str:
    head, body = [], []
    for row in node.children:
        tag = "th" if row.attrs.get("header") else "td"
        cells = []
        for cell in row.children:
            align = cell.attrs.get("align")
            style = _attr("style", f"text-align:{align}") if align else ""
            cells.append(f"<{tag}{style}>{_inline(cell.children)}</{tag}>")
        (head if tag == "th" else body).append("<tr>\n" + "\n".join(cells) + "\n</tr>\n")
    html = "<table>\n<thead>\n" + "".join(head) + "</thead>\n"
    if body:
        html += "<tbody>\n" + "".join(body) + "</tbody>\n"
    return html + "</table>\n"


def _code_fence(node: Node, highlighter: Highlighter | None) -> str:
    lang = node.attrs.get("lang") or ""
    literal = node.text + "\n" if node.text else ""
    if highlighter is not None:
        highlighted = highlighter(lang, literal)
        if highlighted:
            return highlighted if highlighted.endswith("\n") else highlighted + "\n"
    cls = _attr("class", f"language-{lang}") if lang else ""
    return f"<pre><code{cls}>{escapeHtml(literal)}</code></pre>\n"


def _render(node: Node, highlighter: Highlighter | None, tight: bool) -> str:
    kind = node.kind
    # inlines
    if kind == NodeKind.text:
        return escapeHtml(node.text)
    if kind == NodeKind.code_span:
        return f"<code>{escapeHtml(node.text)}</code>"
    if kind in (NodeKind.html_inline, NodeKind.html_block):
        return node.text if kind == NodeKind.html_inline else node.text + "\n"
    if kind == NodeKind.softbreak:
        return "\n"
    if kind == NodeKind.hardbreak:
        return "<br />\n"
    if kind in _SIMPLE_TAGS:
        tag = _SIMPLE_TAGS[kind]
        return f"<{tag}>{_inline(node.children)}</{tag}>"
    if kind == NodeKind.link:
        title = _attr("title", node.attrs["title"]) if node.attrs.get("title") else ""
        return f'<a{_attr("href", node.attrs.get("href", ""))}{title}>{_inline(node.children)}</a>'
    if kind == NodeKind.image:
        title = _attr("title", node.attrs["title"]) if node.attrs.get("title") else ""
        return f'<img{_attr("src", node.attrs.get("src", ""))}{_attr("alt", node.attrs.get("alt", ""))}{title} />'
    # blocks
    if kind == NodeKind.paragraph:
        return f"<p>{_inline(node.children)}</p>\n"
    if kind == NodeKind.heading:
        level = node.attrs.get("level", 1)
        return f"<h{level}>{_inline(node.children)}</h{level}>\n"
    if kind == NodeKind.thematic_break:
        return "<hr />\n"
    if kind == NodeKind.code_fence:
        return _code_fence(node, highlighter)
    if kind == NodeKind.blockquote:
        return f"<blockquote>\n{render_html(node.children, highlighter)}</blockquote>\n"
    if kind == NodeKind.list:
        ordered = node.attrs.get("ordered")
        item_tight = node.attrs.get("tight", True)
        items = "".join(_list_item(item, highlighter, item_tight) for item in node.children)
        if not ordered:
            return f"<ul>\n{items}</ul>\n"
        start = node.attrs.get("start")
        start_attr = _attr("start", start) if start not in (None, 1) else ""
        return f"<ol{start_attr}>\n{items}</ol>\n"
    if kind == NodeKind.list_item:
        return _list_item(node, highlighter, tight)
    if kind == NodeKind.table:
        return _table(node)
    return render_html(node.children, highlighter)


def render_html(nodes: list[Node], highlighter: Highlighter | None = None) -> str:
    """Render a forest of block nodes (or a run of inline nodes) to an HTML string.

    `highlighter(lang, code)` may return highlighted HTML for a fenced block; a falsy
    return falls back to the escaped literal.
    """
    return "".join(_render(node, highlighter, tight=False) for node in nodes)
