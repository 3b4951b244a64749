from __future__ import annotations

from datetime import datetime
from typing import Any

from live import h
from live_page import BasePage
from pages.layout import Layout


def pad2(n: int) -> str:
    return str(n).rjust(2, "0")


def fmt_time(d: datetime) -> str:
    return pad2(d.hour) + ":" + pad2(d.minute) + ":" + pad2(d.second)


class ClockPage(BasePage):
    def __init__(self, storage, session) -> None:
        super().__init__(storage, session)
        self.now = datetime.now()
        self.ticks = 0
        # page state changes on a timer; the live loop picks it up
        self.CreateInterval(self.tick, 1000)

    def tick(self) -> None:
        self.now = datetime.now()
        self.ticks += 1

    def template(self) -> Any:
        return Layout(
            "/clock",
            "Clock",
            "Server time, changed by a page interval and pushed by the live loop.",
            h(
                "div",
                {"className": "clock"},
                h("div", {"style": "font-size:36px;font-family:monospace;letter-spacing:4px"}, fmt_time(self.now)),
                h("div", {"className": "muted", "data-even": self.ticks % 2 == 0}, f"{self.ticks} ticks"),
            ),
        )
