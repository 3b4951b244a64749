from __future__ import annotations

from typing import Any, Dict

from live import h
from live_client import ClientFunction
from live_page import BasePage, endpoint, expose
from pages.layout import Layout


class CounterPage(BasePage):
    """Two counters kept in session storage.

    Reloading keeps the values while the page instance lives; a fresh
    instance of this path starts from the defaults again.
    """

    def __init__(self, storage, session) -> None:
        super().__init__(storage, session)
        storage.create("left", 2)
        storage.create("right", 8)

    def decrement(self, event: Dict[str, Any]) -> None:
        self.storage.update(event.get("name") or "left", lambda count: max(0, (count or 0) - 1))

    def increment(self, event: Dict[str, Any]) -> None:
        self.storage.update(event.get("name") or "left", lambda count: (count or 0) + 1)

    @endpoint
    def reset(self) -> Dict[str, int]:
        self.storage.update("left", lambda _: 0)
        self.storage.update("right", lambda _: 0)
        return {"left": 0, "right": 0}

    @expose(value=True)
    def resetAll(self) -> ClientFunction:
        return ClientFunction("function(){ return this.endpoints.reset(); }")

    def counter(self, key: str) -> Any:
        return h(
            "div",
            {"className": "counter"},
            h("button", {"name": key, "onClick": self.decrement}, "-"),
            h("span", {"className": "count"}, str(self.storage.get(key))),
            h("button", {"name": key, "onClick": self.increment}, "+"),
        )

    def template(self) -> Any:
        return Layout(
            "/",
            "Counter",
            "Clicks run on the server; the new count arrives as a patch of the changed span.",
            self.counter("left"),
            self.counter("right"),
            h("button", {"onClick": "resetAll"}, "Reset"),
        )
