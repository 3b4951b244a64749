"""Markup normalizer.

Turns whatever a page renders (a markup string or an :class:`~live.Element`
tree) into canonical HTML text and collects the event handlers it references.
Event bindings are written as the ``@on<event>=<handler>`` shorthand and end
up in a single inert ``data-on-event`` attribute per element.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from live import (
    LISTENER_ATTRIBUTE,
    VALUE_ATTRIBUTE,
    VOID_ELEMENTS,
    Classes,
    Element,
    EscapeText,
    Markup,
    attributes,
)
from live_errors import RenderError

_RE_LISTENER_TAG = re.compile(r"<[^<>]*?@on[^<>]*>")
_RE_LISTENER = re.compile(r"""\s*@on([A-Za-z0-9_-]+)\s*=\s*(["']?)([A-Za-z0-9_$]*)\2""")
_RE_HEAD_TAG = re.compile(r"<\s*/?\s*head(?:\s[^>]*)?>", re.IGNORECASE)
_RE_HTML_TAG = re.compile(r"<html(?:\s[^>]*)?>", re.IGNORECASE)
_RE_HTML_CLOSE = re.compile(r"</html\s*>", re.IGNORECASE)
_RE_DOCTYPE = re.compile(r"<!doctype[^>]*>", re.IGNORECASE)
_RE_TAG_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9-]*$")

HEAD = (
    '<head>'
    '<meta charset="UTF-8">'
    '<meta name="viewport" content="width=device-width, initial-scale=1">'
    '</head>'
)

_PROP_NAMES = {"className": "class", "htmlFor": "for"}

Handler = Callable[..., Any]


@dataclass
class Rendered:
    template: str
    exposures: Dict[str, Handler] = field(default_factory=dict)
    error: Optional[RenderError] = None


def ListenerAttributes(markup: str) -> str:
    """Rewrite ``@on<event>=<handler>`` shorthand into ``data-on-event``.

    All bindings of one element are joined into ``event=handler;...``.
    """

    def rewrite(match: "re.Match[str]") -> str:
        tag = match.group(0)
        pairs = [f"{event.lower()}={name}" for event, _, name in _RE_LISTENER.findall(tag)]
        if not pairs:
            return tag
        stripped = _RE_LISTENER.sub("", tag)
        closing = "/>" if stripped.endswith("/>") else ">"
        stripped = stripped[: -len(closing)].rstrip()
        return f'{stripped} {LISTENER_ATTRIBUTE}="{";".join(pairs)}"{closing}'

    return _RE_LISTENER_TAG.sub(rewrite, markup or "")


def Document(template: str, language: str = "en", extra_head: str = "") -> str:
    """Put the fixed head and doctype ahead of the author's markup.

    ``extra_head`` lands at the end of the head; it never reaches the body
    that live updates are computed on.
    """

    body = _RE_DOCTYPE.sub("", _RE_HEAD_TAG.sub("", template or ""))
    match = _RE_HTML_TAG.search(body)
    html_tag = match.group(0) if match else f'<html lang="{language}">'
    body = _RE_HTML_CLOSE.sub("", _RE_HTML_TAG.sub("", body, count=1))
    head = HEAD if not extra_head else HEAD.replace("</head>", f"{extra_head}</head>")
    return f"<!DOCTYPE html>{html_tag}{head}{body.strip()}</html>"


def _handler_name(prop: str, handler: Handler, tag: str, children: int) -> str:
    name = getattr(handler, "__name__", "") or ""
    if not name.isidentifier() or name == prop:
        # anonymous handlers are keyed by their structural position
        return f"{prop}{tag}{children}"
    return name


class _TreeWriter:
    def __init__(self) -> None:
        self.found: Dict[str, Handler] = {}

    def write(self, node: Any) -> str:
        if not isinstance(node, Element):
            raise RenderError(f"Malformed element: {node!r}")
        if callable(node.type):
            return self.component(node)
        tag = node.type
        if not isinstance(tag, str) or not _RE_TAG_NAME.match(tag):
            raise RenderError(f"Invalid tag name: {tag!r}")

        bindings: List[str] = []
        inline: Dict[str, Any] = {}
        values: Dict[str, Any] = {}
        for prop, value in node.props.items():
            if prop == "children":
                continue
            if prop.startswith("on"):
                if isinstance(value, str) and value.isidentifier():
                    # a name already exposed on the page
                    bindings.append(f"@{prop.lower()}={value}")
                    continue
                if not callable(value):
                    raise RenderError(f"Handler {prop!r} on <{tag}> is not a function")
                name = _handler_name(prop, value, tag, len(node.children))
                self.found[name] = value
                bindings.append(f"@{prop.lower()}={name}")
                continue
            attribute = _PROP_NAMES.get(prop, prop)
            if isinstance(value, str):
                inline[attribute] = Classes(value) if attribute == "class" else value
            elif value is True or value is None or value is False:
                inline[attribute] = value
            else:
                values[prop] = value
        if values:
            try:
                inline[VALUE_ATTRIBUTE] = json.dumps(values, separators=(",", ":"))
            except (TypeError, ValueError) as exc:
                raise RenderError(f"Property of <{tag}> cannot be serialized: {exc}") from exc

        head = " ".join(part for part in [tag, " ".join(bindings), attributes(inline)] if part)
        if tag in VOID_ELEMENTS:
            return f"<{head}>"
        inner = "".join(self.child(child) for child in node.children)
        return f"<{head}>{inner}</{tag}>"

    def child(self, child: Any) -> str:
        if child is None or isinstance(child, bool):
            return ""
        if isinstance(child, Element):
            return self.write(child)
        if isinstance(child, Markup):
            return str(child)
        if isinstance(child, str):
            return EscapeText(child)
        if isinstance(child, (int, float)):
            return str(child)
        raise RenderError(f"Unsupported child: {child!r}")

    def component(self, node: Element) -> str:
        props = dict(node.props)
        if node.children:
            props["children"] = list(node.children)
        result = node.type(**props)
        if result is None:
            return ""
        if isinstance(result, str):
            return result
        return self.write(result)


def Render(source: Any) -> Rendered:
    """Render a template (markup, element tree, or a callable producing one).

    Never raises: a failure becomes the escaped error text as page content,
    with ``Rendered.error`` set.
    """

    writer = _TreeWriter()
    try:
        output = source() if callable(source) and not isinstance(source, Element) else source
        if output is None:
            template = ""
        elif isinstance(output, Element):
            template = writer.write(output)
        elif isinstance(output, str):
            template = output
        else:
            raise RenderError(f"Unsupported render output: {type(output).__name__}")
    except RenderError as exc:
        return Rendered(EscapeText(str(exc)), {}, exc)
    except Exception as exc:
        error = RenderError(f"{type(exc).__name__}: {exc}")
        error.__cause__ = exc
        return Rendered(EscapeText(str(error)), {}, error)
    return Rendered(ListenerAttributes(template), writer.found)


def Canonicalize(source: Any, language: str = "en") -> Tuple[str, Dict[str, Handler]]:
    rendered = Render(source)
    return Document(rendered.template, language), rendered.exposures
