from __future__ import annotations

import sys
from pathlib import Path
from typing import List, Tuple, Type

# Ensure we can import sibling modules in examples/pages when run as a script
_EXAMPLES_DIR = Path(__file__).resolve().parent
_PROJECT_DIR = _EXAMPLES_DIR.parent
if str(_EXAMPLES_DIR) not in sys.path:
    sys.path.insert(0, str(_EXAMPLES_DIR))
if str(_PROJECT_DIR) not in sys.path:
    sys.path.insert(1, str(_PROJECT_DIR))

from live_page import BasePage
from live_server import MakeApp, Options, Request
from pages.clock import ClockPage
from pages.counter import CounterPage
from pages.todo import TodoPage

Route = Tuple[str, Type[BasePage]]


routes: List[Route] = [
    ("/", CounterPage),
    ("/clock", ClockPage),
    ("/todo", TodoPage),
]

app = MakeApp(Options(language="en", debug=True))

for path, page in routes:
    app.Register(path, page)


@app.Use
def health(request: Request) -> str | None:
    if request.path == "/healthz":
        return "ok"
    return None


def run(port: int = 1422) -> None:
    app.Listen(port)


if __name__ == "__main__":
    run()
