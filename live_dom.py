"""Canonical tree for rendered markup.

Markup is parsed into a small document model that mirrors what a browser
builds: every document has ``html``, ``head`` and ``body`` nodes, and the body
subtree serializes the way ``element.outerHTML`` does. Comments and the
doctype are not kept.
"""

from __future__ import annotations

from html.parser import HTMLParser
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from live import RAW_TEXT_ELEMENTS, VOID_ELEMENTS, EscapeAttribute, EscapeText

HEAD_ELEMENTS = frozenset({"base", "link", "meta", "noscript", "script", "style", "template", "title"})

NO_EXCLUSION: frozenset = frozenset()


class Node:
    __slots__ = ("tag", "attrs", "children", "parent")

    def __init__(self, tag: str, attrs: Optional[Dict[str, str]] = None, parent: Optional["Node"] = None) -> None:
        self.tag = tag
        self.attrs: Dict[str, str] = dict(attrs or {})
        self.children: List[Union["Node", str]] = []
        self.parent = parent

    def __repr__(self) -> str:
        return f"<Node {self.tag} {self.Path()}>"

    def Append(self, child: Union["Node", str]) -> None:
        if isinstance(child, str):
            # adjacent text runs merge, as they do in the DOM
            if self.children and isinstance(self.children[-1], str):
                self.children[-1] += child
                return
        else:
            child.parent = self
        self.children.append(child)

    def Elements(self) -> List["Node"]:
        return [child for child in self.children if isinstance(child, Node)]

    def Descendants(self) -> Iterator["Node"]:
        """Element descendants in document order."""
        for child in self.children:
            if isinstance(child, Node):
                yield child
                yield from child.Descendants()

    def Ancestors(self) -> Iterator["Node"]:
        """Ancestors from the parent upward, stopping before ``body``."""
        current = self.parent
        while current is not None and current.tag != "body":
            yield current
            current = current.parent

    def Path(self) -> List[int]:
        """Element-child indices from ``body`` down to this node."""
        steps: List[int] = []
        current = self
        while current.parent is not None and current.tag != "body":
            siblings = current.parent.Elements()
            steps.append(next(i for i, sibling in enumerate(siblings) if sibling is current))
            current = current.parent
        steps.reverse()
        return steps

    def Find(self, path: Sequence[int]) -> Optional["Node"]:
        current: Optional[Node] = self
        for step in path:
            if current is None:
                return None
            elements = current.Elements()
            if step < 0 or step >= len(elements):
                return None
            current = elements[step]
        return current

    def OpenTag(self, exclude: Iterable[str] = NO_EXCLUSION) -> str:
        parts = [f"<{self.tag}"]
        for name, value in self.attrs.items():
            if name in exclude:
                continue
            parts.append(f' {name}="{EscapeAttribute(value)}"')
        parts.append(">")
        return "".join(parts)

    def InnerHTML(self, exclude: Iterable[str] = NO_EXCLUSION) -> str:
        raw = self.tag in RAW_TEXT_ELEMENTS
        parts: List[str] = []
        for child in self.children:
            if isinstance(child, Node):
                parts.append(child.OuterHTML(exclude))
            elif raw:
                parts.append(child)
            else:
                parts.append(EscapeText(child))
        return "".join(parts)

    def OuterHTML(self, exclude: Iterable[str] = NO_EXCLUSION) -> str:
        if self.tag in VOID_ELEMENTS:
            return self.OpenTag(exclude)
        return f"{self.OpenTag(exclude)}{self.InnerHTML(exclude)}</{self.tag}>"


class Document:
    def __init__(self) -> None:
        self.html = Node("html")
        self.head = Node("head")
        self.body = Node("body")
        self.html.Append(self.head)
        self.html.Append(self.body)

    def __repr__(self) -> str:
        return f"<Document {self.body.OuterHTML()[:60]!r}>"

    def OuterHTML(self) -> str:
        return "<!DOCTYPE html>" + self.html.OuterHTML()


# Element categories of the HTML tree-construction rules.
SPECIAL = frozenset(
    {
        "address", "applet", "area", "article", "aside", "base", "basefont", "bgsound", "blockquote",
        "body", "br", "button", "caption", "center", "col", "colgroup", "dd", "details", "dir", "div",
        "dl", "dt", "embed", "fieldset", "figcaption", "figure", "footer", "form", "frame", "frameset",
        "h1", "h2", "h3", "h4", "h5", "h6", "head", "header", "hgroup", "hr", "html", "iframe", "img",
        "input", "keygen", "li", "link", "listing", "main", "marquee", "menu", "meta", "nav", "noembed",
        "noframes", "noscript", "object", "ol", "p", "param", "plaintext", "pre", "script", "search",
        "section", "select", "source", "style", "summary", "table", "tbody", "td", "template",
        "textarea", "tfoot", "th", "thead", "title", "tr", "track", "ul", "wbr", "xmp",
    }
)
CLOSES_P = frozenset(
    {
        "address", "article", "aside", "blockquote", "center", "details", "dialog", "dir", "div", "dl",
        "fieldset", "figcaption", "figure", "footer", "header", "hgroup", "main", "menu", "nav", "ol",
        "p", "search", "section", "summary", "ul", "h1", "h2", "h3", "h4", "h5", "h6", "pre", "listing",
        "form", "li", "dd", "dt", "plaintext", "table", "hr", "xmp",
    }
)
HEADINGS = frozenset({"h1", "h2", "h3", "h4", "h5", "h6"})
SCOPE = frozenset({"applet", "caption", "html", "table", "td", "th", "marquee", "object", "template"})
BUTTON_SCOPE = SCOPE | {"button"}
LIST_SCOPE = SCOPE | {"ol", "ul"}
TABLE_SCOPE = frozenset({"html", "table", "template"})
TABLE_SECTIONS = frozenset({"tbody", "thead", "tfoot"})
TABLE_CELLS = frozenset({"td", "th"})
TABLE_PARTS = frozenset({"caption", "col", "colgroup", "tr"}) | TABLE_SECTIONS | TABLE_CELLS
TABLE_MODES = TABLE_PARTS - {"col"} | {"table"}
FOREIGN = frozenset({"svg", "math"})
BLOCK_END = (CLOSES_P - HEADINGS - {"p", "li", "dd", "dt", "hr"}) | {"applet", "button", "marquee", "object", "select"}


class _TreeBuilder(HTMLParser):
    """Builds the tree a browser builds for the same markup.

    Covers implied end tags (``p``, ``li``, ``dd``/``dt``, ``option``, headings,
    table cells and rows), implied ``tbody``/``tr``/``colgroup`` elements and
    table parts dropped outside a table. Foster parenting of content placed
    directly inside a table is not done: such content stays where it was
    written.
    """

    def __init__(self, context: Optional[str] = None) -> None:
        super().__init__(convert_charrefs=True)
        self.document = Document()
        self._in_body = False
        self._stack: List[Node] = [self.document.head]
        # nodes below this index are never closed
        self._floor = 1
        self.holder = self.document.body
        if context and context not in ("html", "body"):
            self._enter_body()
            self.holder = Node(context)
            self.document.body.Append(self.holder)
            self._stack.append(self.holder)
            self._floor = 2

    def _enter_body(self) -> None:
        if not self._in_body:
            self._in_body = True
            self._stack = [self.document.body]

    @staticmethod
    def _merge(node: Node, attrs: Sequence[Tuple[str, Optional[str]]]) -> None:
        for name, value in attrs:
            node.attrs.setdefault(name, value or "")

    def _current(self) -> str:
        return self._stack[-1].tag

    def _in_scope(self, tags: Iterable[str], boundaries: frozenset) -> bool:
        for node in reversed(self._stack[1:]):
            if node.tag in tags:
                return True
            if node.tag in boundaries:
                return False
        return False

    def _pop_to(self, tags: Iterable[str]) -> bool:
        """Close open elements up to and including the nearest of ``tags``."""
        for index in range(len(self._stack) - 1, self._floor - 1, -1):
            if self._stack[index].tag in tags:
                del self._stack[index:]
                return True
        return False

    def _close_p(self) -> None:
        if self._in_scope(("p",), BUTTON_SCOPE):
            self._pop_to(("p",))

    def _table_mode(self) -> Optional[str]:
        for node in reversed(self._stack[1:]):
            if node.tag in TABLE_MODES:
                return node.tag
        return None

    def _insert(self, tag: str, attrs: Sequence[Tuple[str, Optional[str]]] = ()) -> Node:
        node = Node(tag)
        for name, value in attrs:
            # duplicate attributes: last write wins, first position kept
            node.attrs[name] = value or ""
        self._stack[-1].Append(node)
        if tag not in VOID_ELEMENTS:
            self._stack.append(node)
        return node

    def _table_part(self, tag: str) -> bool:
        """Reach the spot a table part belongs to; False drops the tag."""
        while True:
            mode = self._table_mode()
            if mode is None:
                return False
            if mode == "colgroup" and tag == "col":
                return True
            if mode in TABLE_CELLS or mode in ("caption", "colgroup"):
                if not self._pop_to((mode,)):
                    return False
            elif mode == "tr":
                if tag in TABLE_CELLS:
                    self._pop_to_mode()
                    return True
                if not self._pop_to(("tr",)):
                    return False
            elif mode in TABLE_SECTIONS:
                if tag == "tr":
                    self._pop_to_mode()
                    return True
                if tag in TABLE_CELLS:
                    self._pop_to_mode()
                    self._insert("tr")
                    return True
                if not self._pop_to((mode,)):
                    return False
            else:
                self._pop_to_mode()
                if tag in TABLE_SECTIONS or tag in ("caption", "colgroup"):
                    return True
                if tag == "col":
                    self._insert("colgroup")
                    return True
                self._insert("tbody")

    def _pop_to_mode(self) -> None:
        while len(self._stack) > self._floor and self._current() not in TABLE_MODES:
            self._stack.pop()

    def _open(self, tag: str, attrs: Sequence[Tuple[str, Optional[str]]]) -> Optional[Node]:
        if tag == "html":
            self._merge(self.document.html, attrs)
            return None
        if tag == "head":
            return None
        if tag == "body":
            self._enter_body()
            self._merge(self.document.body, attrs)
            return None
        if not self._in_body and tag not in HEAD_ELEMENTS:
            self._enter_body()
        if not self._in_body:
            return self._insert(tag, attrs)

        if tag in TABLE_PARTS:
            if not self._table_part(tag):
                return None
            return self._insert(tag, attrs)
        if tag == "table" and self._table_mode() not in (None, "td", "th", "caption"):
            self._pop_to(("table",))
        if tag == "li":
            self._close_item(("li",))
        elif tag in ("dd", "dt"):
            self._close_item(("dd", "dt"))
        elif tag == "button" and self._in_scope(("button",), SCOPE):
            self._pop_to(("button",))
        elif tag in ("option", "optgroup"):
            if self._current() == "option":
                self._stack.pop()
            if tag == "optgroup" and self._current() == "optgroup":
                self._stack.pop()
        if tag in CLOSES_P:
            self._close_p()
        if tag in HEADINGS and self._current() in HEADINGS:
            self._stack.pop()
        return self._insert(tag, attrs)

    def _close_item(self, tags: Tuple[str, ...]) -> None:
        for node in reversed(self._stack[self._floor:]):
            if node.tag in tags:
                self._pop_to((node.tag,))
                return
            if node.tag in SPECIAL and node.tag not in ("address", "div", "p"):
                return

    def _foreign(self) -> bool:
        return any(node.tag in FOREIGN for node in self._stack)

    def handle_starttag(self, tag: str, attrs: List[Tuple[str, Optional[str]]]) -> None:
        self._open(tag, attrs)

    def handle_startendtag(self, tag: str, attrs: List[Tuple[str, Optional[str]]]) -> None:
        # the self-closing flag only counts in svg and math content
        foreign = tag in FOREIGN or self._foreign()
        node = self._open(tag, attrs)
        if foreign and node is not None and self._stack[-1] is node:
            self._stack.pop()

    def handle_endtag(self, tag: str) -> None:
        if tag in ("html", "head", "body"):
            return
        if tag == "p":
            if not self._in_scope(("p",), BUTTON_SCOPE):
                self._enter_body()
                self._insert("p")
            self._pop_to(("p",))
            return
        if tag == "br":
            self._enter_body()
            self._insert("br")
            return
        if tag == "li":
            if self._in_scope(("li",), LIST_SCOPE):
                self._pop_to(("li",))
            return
        if tag in ("dd", "dt") or tag in HEADINGS:
            wanted = HEADINGS if tag in HEADINGS else (tag,)
            if self._in_scope(wanted, SCOPE):
                self._pop_to(wanted)
            return
        if tag in BLOCK_END:
            if self._in_scope((tag,), SCOPE):
                self._pop_to((tag,))
            return
        if tag in TABLE_MODES:
            if self._in_scope((tag,), TABLE_SCOPE):
                self._pop_to((tag,))
            return
        for node in reversed(self._stack[self._floor:]):
            if node.tag == tag:
                self._pop_to((tag,))
                return
            if node.tag in SPECIAL:
                return

    def handle_data(self, data: str) -> None:
        if not self._in_body and len(self._stack) == 1:
            if not data.strip():
                return
            self._enter_body()
        self._stack[-1].Append(data)


def Parse(markup: str) -> Document:
    builder = _TreeBuilder()
    builder.feed(markup or "")
    builder.close()
    return builder.document


def ParseFragment(markup: str, context: str = "body") -> List[Union[Node, str]]:
    """Parse markup as the content of a ``context`` element and detach the nodes.

    The context matters for table parts: ``<td>`` only survives inside a row,
    the way ``element.outerHTML = ...`` treats it in a browser.
    """
    builder = _TreeBuilder(context)
    builder.feed(markup or "")
    builder.close()
    nodes = list(builder.holder.children)
    for node in nodes:
        if isinstance(node, Node):
            node.parent = None
    return nodes
