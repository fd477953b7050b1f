"""Document tree and patch operation models shared by the parser, differ and renderers"""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


Key = tuple[int, ...]
ROOT: Key = ()


class NodeKind(str, Enum):
    """Block and inline node kinds the engine produces"""
    # blocks
    heading = "heading"
    paragraph = "paragraph"
    list = "list"
    list_item = "list_item"
    blockquote = "blockquote"
    code_fence = "code_fence"
    table = "table"
    table_row = "table_row"
    table_cell = "table_cell"
    thematic_break = "thematic_break"
    html_block = "html_block"
    # inlines
    text = "text"
    emphasis = "emphasis"
    strong = "strong"
    strikethrough = "strikethrough"
    code_span = "code_span"
    link = "link"
    image = "image"
    sub = "sub"
    sup = "sup"
    html_inline = "html_inline"
    softbreak = "softbreak"
    hardbreak = "hardbreak"


# Kinds whose payload lives in Node.text and may be patched in place.
TEXT_KINDS = frozenset({
    NodeKind.text,
    NodeKind.code_span,
    NodeKind.html_inline,
    NodeKind.html_block,
    NodeKind.code_fence,
})


class Node(BaseModel):
    """A single block or inline node; the parent owns its children exclusively."""
    kind: NodeKind
    text: str = ""
    attrs: dict[str, Any] = Field(default_factory=dict)
    children: list["Node"] = Field(default_factory=list)

    def shape(self) -> tuple:
        """Everything except text and children; a change here means the node must be replaced."""
        return self.kind, self.attrs


class Insert(BaseModel):
    """Insert node (with its subtree) as child `index` of `parent`."""
    op: Literal["insert"] = "insert"
    parent: Key
    index: int
    node: Node


class Remove(BaseModel):
    op: Literal["remove"] = "remove"
    key: Key


class Replace(BaseModel):
    op: Literal["replace"] = "replace"
    key: Key
    node: Node


class UpdateText(BaseModel):
    """Swap the literal payload of a text-bearing node, keeping its identity."""
    op: Literal["update_text"] = "update_text"
    key: Key
    text: str


PatchOp = Annotated[Union[Insert, Remove, Replace, UpdateText], Field(discriminator="op")]


class PatchBatch(BaseModel):
    """Patches produced by one engine step, as emitted by the CLI."""
    step: int
    boundary: int
    final: bool = False
    ops: list[PatchOp] = Field(default_factory=list)
