from __future__ import annotations

from typing import Any, List, Tuple

from live import Trim, h

NAVIGATION: List[Tuple[str, str]] = [
    ("/", "Counter"),
    ("/clock", "Clock"),
    ("/todo", "Todo"),
]

_STYLE = Trim(
    """
    body { margin:0; background:#e5e7eb; font-family:system-ui,-apple-system,'Segoe UI',Roboto,Helvetica,Arial,sans-serif; color:#111827; }
    nav { display:flex; gap:4px; padding:8px 16px; background:#fff; box-shadow:0 1px 3px rgba(0,0,0,.1); }
    nav a { padding:4px 8px; border-radius:4px; color:#374151; text-decoration:none; font-size:14px; }
    nav a.active { background:#1d4ed8; color:#fff; }
    .content { max-width:720px; margin:32px auto; padding:0 8px; display:flex; flex-direction:column; gap:16px; }
    .card { background:#fff; padding:24px; border-radius:8px; border:1px solid #d1d5db; }
    .title { font-size:28px; font-weight:700; }
    .muted { color:#4b5563; }
    button { cursor:pointer; border:1px solid #d1d5db; background:#fff; border-radius:6px; padding:4px 12px; }
    .done { text-decoration:line-through; color:#9ca3af; }
    """
)


def Layout(path: str, title: str, description: str, *content: Any) -> Any:
    links = [
        h("a", {"href": href, "className": "active" if href == path else ""}, label)
        for href, label in NAVIGATION
    ]
    return h(
        "div",
        None,
        h("style", None, _STYLE),
        h("nav", None, links),
        h(
            "div",
            {"className": "content"},
            h("div", {"className": "title"}, title),
            h("div", {"className": "muted"}, description),
            h("div", {"className": "card"}, *content),
        ),
    )
