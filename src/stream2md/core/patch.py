"""Apply patch ops to a mirror forest, the way an external renderer would"""

from stream2md.core.errors import PatchError
from stream2md.core.models import Insert, Key, Node, PatchOp, Remove, Replace, UpdateText


def _siblings(forest: list[Node], parent: Key, op: PatchOp) -> list[Node]:
    """Children list addressed by `parent`; the forest itself for the root key."""
    children = forest
    for depth, index in enumerate(parent):
        if not 0 <= index < len(children):
            raise PatchError(
                f"{op.op}: no node at {parent[:depth + 1]}",
                {"op": op.model_dump(mode="json"), "key": list(parent)},
            )
        children = children[index].children
    return children


def _locate(forest: list[Node], key: Key, op: PatchOp) -> tuple[list[Node], int]:
    if not key:
        raise PatchError(f"{op.op}: the root cannot be addressed", {"op": op.model_dump(mode="json")})
    siblings = _siblings(forest, key[:-1], op)
    index = key[-1]
    if not 0 <= index < len(siblings):
        raise PatchError(f"{op.op}: no node at {key}", {"op": op.model_dump(mode="json"), "key": list(key)})
    return siblings, index


def apply_patch(forest: list[Node], op: PatchOp) -> None:
    """Apply one op to `forest` in place. Raises PatchError if its key does not resolve."""
    if isinstance(op, Insert):
        siblings = _siblings(forest, op.parent, op)
        if not 0 <= op.index <= len(siblings):
            raise PatchError(
                f"insert: index {op.index} out of range under {op.parent}",
                {"op": op.model_dump(mode="json"), "size": len(siblings)},
            )
        siblings.insert(op.index, op.node.model_copy(deep=True))
    elif isinstance(op, Remove):
        siblings, index = _locate(forest, op.key, op)
        del siblings[index]
    elif isinstance(op, Replace):
        siblings, index = _locate(forest, op.key, op)
        siblings[index] = op.node.model_copy(deep=True)
    elif isinstance(op, UpdateText):
        siblings, index = _locate(forest, op.key, op)
        siblings[index].text = op.text
    else:
        raise PatchError(f"unknown patch op {op!r}")


def apply_patches(forest: list[Node], ops: list[PatchOp]) -> list[Node]:
    """Return a new forest with `ops` applied in order; `forest` itself is left untouched."""
    result = [node.model_copy(deep=True) for node in forest]
    for op in ops:
        apply_patch(result, op)
    return result
