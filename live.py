"""Server-side markup utilities for p-live.

Pages render either a markup string or a nested declarative element tree built
with :func:`h`. The helpers here stay dependency free and rely solely on the
standard library.
"""

from __future__ import annotations

import asyncio
import html
import inspect
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

Props = Dict[str, Any]
Child = Union["Element", str, int, float, None, bool]


_RE_INLINE_GAP = re.compile(r"\s{4,}")
_RE_GAP = re.compile(r"[\t\n]+")
_RE_COMMENT_HTML = re.compile(r"<!--[\s\S]*?-->")
_RE_COMMENT_BLOCK = re.compile(r"/\*[\s\S]*?\*/")
_RE_COMMENT_LINE = re.compile(r"^[\t ]*//.*$", re.MULTILINE)

VOID_ELEMENTS = frozenset(
    {
        "area",
        "base",
        "br",
        "col",
        "command",
        "embed",
        "hr",
        "img",
        "input",
        "keygen",
        "link",
        "meta",
        "param",
        "source",
        "track",
        "wbr",
    }
)

RAW_TEXT_ELEMENTS = frozenset({"script", "style"})

# inert attributes resolved by the client runtime after each update
LISTENER_ATTRIBUTE = "data-on-event"
VALUE_ATTRIBUTE = "data-value-for"


def Trim(value: str) -> str:
    """Collapse whitespace and strip comments from inline markup or script."""

    if not value:
        return ""
    result = str(value)
    result = _RE_COMMENT_HTML.sub(" ", result)
    result = _RE_COMMENT_BLOCK.sub(" ", result)
    result = _RE_COMMENT_LINE.sub(" ", result)
    result = _RE_GAP.sub(" ", result)
    result = _RE_INLINE_GAP.sub(" ", result)
    return result.strip()


def Classes(*values: Union[str, None, bool]) -> str:
    parts = [str(v) for v in values if v]
    return Trim(" ".join(parts))


def EscapeText(value: str) -> str:
    return str(value).replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;").replace("\xa0", "&nbsp;")


def EscapeAttribute(value: str) -> str:
    return str(value).replace("&", "&amp;").replace('"', "&quot;").replace("\xa0", "&nbsp;")


def attributes(*items: Optional[Mapping[str, Any]]) -> str:
    result: List[str] = []
    for item in items:
        if not item:
            continue
        for key, value in item.items():
            if value is None or value is False:
                continue
            if value is True:
                result.append(f'{key}="{key}"')
                continue
            result.append(f'{key}="{html.escape(str(value), quote=True)}"')
    return " ".join(result)


class Markup(str):
    """Trusted markup placed into an element tree without escaping."""


@dataclass
class Element:
    """One node of a declarative element tree.

    ``type`` is a tag name or a component callable that receives the props
    (with ``children``) and returns an element, a string, or None.
    """

    type: Union[str, Callable[..., Any]]
    props: Props = field(default_factory=dict)
    children: List[Child] = field(default_factory=list)


def h(type: Union[str, Callable[..., Any]], props: Optional[Props] = None, *children: Child) -> Element:
    flat: List[Child] = []

    def push(child: Any) -> None:
        if isinstance(child, (list, tuple)):
            for item in child:
                push(item)
            return
        flat.append(child)

    push(list(children))
    return Element(type, dict(props or {}), flat)


def Interval(timeout: int, callback: Callable[[], None]) -> Callable[[], None]:
    """Run ``callback`` every ``timeout`` ms on a daemon thread.

    Ticks never overlap: the next wait starts only after the callback
    returned. The returned function stops the timer.
    """

    timer = threading.Event()

    def runner() -> None:
        while not timer.is_set():
            if timer.wait(timeout / 1000):
                break
            callback()

    thread = threading.Thread(target=runner, daemon=True)
    thread.start()

    def stop() -> None:
        timer.set()

    return stop


def Timeout(timeout: int, callback: Callable[[], None]) -> Callable[[], None]:
    timer = threading.Timer(timeout / 1000, callback)
    timer.daemon = True
    timer.start()

    def cancel() -> None:
        timer.cancel()

    return cancel


def Script(body: str) -> str:
    return f"<script>{body}</script>"


def Await(value: Any) -> Any:
    """Resolve ``value`` when a handler returned an awaitable."""

    if not inspect.isawaitable(value):
        return value
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(_settle(value))
    # a loop already runs on this thread; it cannot be re-entered
    with ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(asyncio.run, _settle(value)).result()


async def _settle(value: Any) -> Any:
    return await value
