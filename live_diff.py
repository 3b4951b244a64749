"""Reconciliation engine.

``Diff`` compares the canonical tree last sent to a client with a fresh render
and returns the smallest ordered list of patches that brings the client's DOM
up to date. Patches address the client's current (pre-patch) DOM by element
child index, starting at ``<body>``.

The algorithm, in order:

1. Every element of the new body that is byte-identical to some element of
   the same tag in the old body is unchanged, wherever it sits. Only the rest
   can produce patches.
2. Ancestors of changed elements are dropped, so the innermost changes remain.
3. Each remaining element walks outward to its counterpart: the first level
   whose enclosing elements, up to and including ``<body>``, are stable
   (same tag, same attributes, same child sequence, untouched children
   identical in place). With an unstable body the counterpart is the body.
   This deliberately departs from searching the whole old tree for any
   structurally equivalent element: a match found elsewhere can point the
   patch at the wrong sibling, while an address-anchored one always lands
   on the node the client holds at that path.
4. One patch per address.
5. Same inner markup means an attribute-only patch, anything else replaces
   the element's outer markup.

The ``value`` attribute is live client state: it is never compared for
stability and never attribute-patched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple, Union

from live import LISTENER_ATTRIBUTE
from live_dom import Document, Node, Parse, ParseFragment

SET = "SET"
REMOVE = "REMOVE"

# listener markers never make two renders differ
IDENTITY_EXCLUDED = frozenset({LISTENER_ATTRIBUTE})
STABILITY_EXCLUDED = frozenset({"value", LISTENER_ATTRIBUTE})
PATCH_EXCLUDED = frozenset({"value"})


@dataclass
class AttributeChange:
    action: str
    name: str
    value: Optional[str] = None

    def ToDict(self) -> Dict[str, Any]:
        return {"action": self.action, "name": self.name, "value": self.value}


@dataclass
class Patch:
    path: List[int]
    new_content: Optional[str] = None
    attribute_changes: List[AttributeChange] = field(default_factory=list)

    @property
    def is_content(self) -> bool:
        return self.new_content is not None

    def ToDict(self) -> Dict[str, Any]:
        return {
            "path": list(self.path),
            "newContent": self.new_content,
            "attributeChanges": [change.ToDict() for change in self.attribute_changes],
        }


Tree = Union[Document, str]


def _document(tree: Tree) -> Document:
    if isinstance(tree, Document):
        return tree
    return Parse(tree)


class _Reconciler:
    def __init__(self, old: Document, new: Document) -> None:
        self.old = old.body
        self.new = new.body
        self._identity: Dict[int, str] = {}
        self._stable: Dict[int, bool] = {}
        self._changed: Set[int] = set()

    def identity(self, node: Node) -> str:
        key = id(node)
        cached = self._identity.get(key)
        if cached is None:
            cached = node.OuterHTML(IDENTITY_EXCLUDED)
            self._identity[key] = cached
        return cached

    def old_at(self, node: Node) -> Optional[Node]:
        if node is self.new:
            return self.old
        return self.old.Find(node.Path())

    def changed_elements(self) -> List[Node]:
        known: Dict[str, Set[str]] = {}
        for element in self.old.Descendants():
            known.setdefault(element.tag, set()).add(self.identity(element))
        changed = []
        for element in self.new.Descendants():
            if self.identity(element) in known.get(element.tag, ()):
                continue
            changed.append(element)
        return changed

    def innermost(self, changed: Sequence[Node]) -> List[Node]:
        pending = {id(element) for element in changed}
        for element in changed:
            for ancestor in element.Ancestors():
                pending.discard(id(ancestor))
        return [element for element in changed if id(element) in pending]

    def is_stable(self, node: Node) -> bool:
        key = id(node)
        if key not in self._stable:
            self._stable[key] = self._compute_stable(node, self.old_at(node))
        return self._stable[key]

    def _compute_stable(self, node: Node, old: Optional[Node]) -> bool:
        if old is None or old.tag != node.tag:
            return False
        if _attributes(node, STABILITY_EXCLUDED) != _attributes(old, STABILITY_EXCLUDED):
            return False
        if len(node.children) != len(old.children):
            return False
        for current, previous in zip(node.children, old.children):
            if isinstance(current, str) or isinstance(previous, str):
                if current != previous:
                    return False
                continue
            if current.tag != previous.tag:
                return False
            if id(current) not in self._changed and self.identity(current) != self.identity(previous):
                return False
        return True

    def enclosed_stable(self, node: Node) -> bool:
        current = node.parent
        while current is not None:
            if not self.is_stable(current):
                return False
            if current is self.new:
                return True
            current = current.parent
        return False

    def counterpart(self, element: Node) -> Tuple[Node, Node]:
        level: Optional[Node] = element
        while level is not None and level is not self.new:
            previous = self.old_at(level)
            if previous is not None and previous.tag == level.tag and self.enclosed_stable(level):
                return level, previous
            level = level.parent
        return self.new, self.old

    def patch_for(self, current: Node, previous: Node, path: List[int]) -> Optional[Patch]:
        if current.InnerHTML(IDENTITY_EXCLUDED) != previous.InnerHTML(IDENTITY_EXCLUDED):
            return Patch(path, new_content=current.OuterHTML())
        changes = _attribute_changes(previous, current)
        if not changes:
            return None
        return Patch(path, attribute_changes=changes)

    def run(self) -> List[Patch]:
        changed = self.changed_elements()
        self._changed = {id(element) for element in changed}
        pending = self.innermost(changed)
        if not pending and not self.is_stable(self.new):
            pending = [self.new]

        patches: List[Patch] = []
        queued: Set[Tuple[int, ...]] = set()
        for element in pending:
            current, previous = self.counterpart(element) if element is not self.new else (self.new, self.old)
            path = previous.Path()
            key = tuple(path)
            if key in queued:
                continue
            queued.add(key)
            patch = self.patch_for(current, previous, path)
            if patch is not None:
                patches.append(patch)
        return patches


def _attributes(node: Node, exclude: frozenset) -> Dict[str, str]:
    return {name: value for name, value in node.attrs.items() if name not in exclude}


def _attribute_changes(old: Node, new: Node) -> List[AttributeChange]:
    before = _attributes(old, PATCH_EXCLUDED)
    after = _attributes(new, PATCH_EXCLUDED)
    changes = [AttributeChange(SET, name, value) for name, value in after.items() if before.get(name) != value]
    changes.extend(AttributeChange(REMOVE, name) for name in before if name not in after)
    return changes


def Diff(old: Tree, new: Tree) -> List[Patch]:
    """Patches turning the client copy of ``old`` into ``new``."""
    return _Reconciler(_document(old), _document(new)).run()


def Apply(tree: Tree, patches: Sequence[Union[Patch, Dict[str, Any]]]) -> Document:
    """Apply patches to a document in place, the way the client runtime does."""

    document = _document(tree)
    for patch in patches:
        if isinstance(patch, dict):
            patch = Patch(
                list(patch.get("path") or []),
                patch.get("newContent"),
                [AttributeChange(c["action"], c["name"], c.get("value")) for c in patch.get("attributeChanges") or []],
            )
        target = document.body.Find(patch.path)
        if target is None:
            continue
        if patch.new_content is not None:
            if target.OuterHTML() == patch.new_content:
                continue
            if target is document.body:
                replacement = Parse(patch.new_content).body
                target.attrs = dict(replacement.attrs)
                target.children = []
                for child in replacement.children:
                    target.Append(child)
                continue
            parent = target.parent
            index = next(i for i, child in enumerate(parent.children) if child is target)
            nodes = ParseFragment(patch.new_content, parent.tag)
            for node in nodes:
                if isinstance(node, Node):
                    node.parent = parent
            parent.children[index:index + 1] = nodes
            continue
        for change in patch.attribute_changes:
            if change.action == SET:
                target.attrs[change.name] = change.value or ""
            else:
                target.attrs.pop(change.name, None)
    return document
