"""Minimal patch lists between two document forests.

Ops are emitted in application order. Applying them one after another to `previous`
reproduces the new forest exactly. Keys in each op refer to the tree as it stands after every
earlier op in the list has been applied. Insert and replace payloads are copies that a
consumer may mutate freely.
"""

from collections import Counter

from stream2md.core.models import (
    ROOT,
    TEXT_KINDS,
    Insert,
    Key,
    Node,
    PatchOp,
    Remove,
    Replace,
    UpdateText,
)


def diff(previous: list[Node], current: list[Node]) -> list[PatchOp]:
    """Return the ops that turn `previous` into `current`; empty when the forests are equal."""
    ops: list[PatchOp] = []
    _diff_children(ROOT, previous, current, ops)
    return ops


def _diff_children(parent: Key, old: list[Node], new: list[Node], ops: list[PatchOp]) -> None:
    common = min(len(old), len(new))
    for i in range(common):
        _diff_node(parent + (i,), old[i], new[i], ops)
    # highest index first
    for i in range(len(old) - 1, common - 1, -1):
        ops.append(Remove(key=parent + (i,)))
    for i in range(common, len(new)):
        ops.append(Insert(parent=parent, index=i, node=new[i].model_copy(deep=True)))


def _diff_node(key: Key, old: Node, new: Node, ops: list[PatchOp]) -> None:
    if old is new:
        return
    if old.shape() != new.shape():
        ops.append(Replace(key=key, node=new.model_copy(deep=True)))
        return
    if old.text != new.text:
        if old.kind not in TEXT_KINDS:
            ops.append(Replace(key=key, node=new.model_copy(deep=True)))
            return
        ops.append(UpdateText(key=key, text=new.text))
    _diff_children(key, old.children, new.children, ops)


def summarize(ops: list[PatchOp]) -> dict[str, int]:
    """Count ops by type. Useful for compact per-step stats."""
    counts = Counter(op.op for op in ops)
    return {name: counts.get(name, 0) for name in ("insert", "remove", "replace", "update_text")}
