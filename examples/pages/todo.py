from __future__ import annotations

from typing import Any, Dict, List

from live import EscapeAttribute, EscapeText, Markup
from live_client import ClientFunction
from live_page import BasePage, expose
from pages.layout import Layout


class TodoPage(BasePage):
    """Trusted markup with ``@on<event>`` bindings inside an element tree."""

    def __init__(self, storage, session) -> None:
        super().__init__(storage, session)
        storage.create("todos", ["Write the docs", "Ship it"])
        self.draft = ""

    @expose
    def typed(self, event: Dict[str, Any]) -> None:
        self.draft = event.get("value") or ""

    @expose
    def add(self, event: Dict[str, Any]) -> None:
        text = self.draft.strip()
        if not text:
            return
        self.storage.update("todos", lambda todos: list(todos or []) + [text])
        self.draft = ""

    @expose
    def remove(self, event: Dict[str, Any]) -> None:
        index = int(event.get("name") or -1)
        self.storage.update("todos", lambda todos: [t for i, t in enumerate(todos or []) if i != index])

    @expose("strike", value=True)
    def strike(self) -> ClientFunction:
        return ClientFunction("function(event){ event.target.classList.toggle('done'); }")

    def items(self) -> List[str]:
        todos = self.storage.get("todos") or []
        return [
            f'<li><span @onclick=strike>{EscapeText(todo)}</span> '
            f'<button name="{index}" @onclick=remove>remove</button></li>'
            for index, todo in enumerate(todos)
        ]

    def template(self) -> Any:
        form = (
            f'<input name="draft" @oninput=typed value="{EscapeAttribute(self.draft)}">'
            "<button @onclick=add>Add</button>"
            f'<ul>{"".join(self.items())}</ul>'
        )
        return Layout("/todo", "Todo", "Click an item to strike it through on the client only.", Markup(form))
