"""Page registration tables, intervals and handler invocation."""

import asyncio

from live import Await
from live_client import ClientFunction
from live_page import BasePage, Invoke, endpoint, expose
from live_session import Session


class Editor(BasePage):
    @endpoint
    def save(self, options):
        return {"saved": options.get("text")}

    @endpoint("rename")
    def rename_document(self, options):
        return None

    @expose
    def typed(self, event):
        return event

    @expose("theme", value=True)
    def current_theme(self):
        return "dark"

    @expose(value=True)
    def toggle(self):
        return ClientFunction("function(){ this.open = !this.open; }")

    def template(self):
        return "<p>editor</p>"


class ReadOnlyEditor(Editor):
    @endpoint("save")
    def refuse(self, options):
        return {"saved": None}


class FlakyEditor(Editor):
    @expose(value=True)
    def broken(self):
        raise ValueError("boom")


def make(page_type=Editor):
    session = Session("abc")
    return page_type(session.storage, session)


class TestRegistration:
    def test_tables_are_built_once_per_class(self):
        assert Editor._endpoints == {"save": "save", "rename": "rename_document"}
        assert Editor._exposures == {"typed": "typed"}
        assert Editor._values == {"theme": "current_theme", "toggle": "toggle"}

    def test_subclasses_inherit_and_override(self):
        assert ReadOnlyEditor._endpoints == {"save": "refuse", "rename": "rename_document"}
        assert BasePage._endpoints == {}

    def test_endpoints_are_bound(self):
        page = make()

        assert page.Endpoint("save")({"text": "hi"}) == {"saved": "hi"}
        assert page.Endpoint("missing") is None
        assert sorted(page.Endpoints()) == ["rename", "save"]

    def test_exposures_resolve_values(self):
        exposures = make().Exposures()

        assert exposures["theme"] == "dark"
        assert isinstance(exposures["toggle"], ClientFunction)
        assert exposures["typed"]({"value": 1}) == {"value": 1}

    def test_failing_value_is_left_out_and_reported(self):
        page = make(FlakyEditor)
        errors = []

        exposures = page.Exposures(errors)

        assert "broken" not in exposures
        assert exposures["theme"] == "dark"
        assert [(error.name, error.reason) for error in errors] == [("broken", "ValueError: boom")]

    def test_failing_value_without_error_list(self):
        assert "broken" not in make(FlakyEditor).Exposures()


class TestLifecycle:
    def test_create_interval_runs_immediately(self):
        page = make()
        calls = []

        page.CreateInterval(lambda: calls.append(1), 60000)

        assert calls == [1]
        page.Destroy()
        assert page._intervals == []


class TestInvoke:
    def test_handler_without_parameters(self):
        assert Invoke(lambda: 5, {"x": 1}) == 5

    def test_handler_with_parameter(self):
        assert Invoke(lambda options: options["x"], {"x": 1}) == 1

    def test_bound_method(self):
        assert Invoke(make().save, {"text": "t"}) == {"saved": "t"}


async def doubled(value):
    return value * 2


class TestAwait:
    def test_plain_values_pass_through(self):
        assert Await(3) == 3

    def test_coroutine_without_a_loop(self):
        assert Await(doubled(2)) == 4

    def test_coroutine_inside_a_running_loop(self):
        async def handler():
            return Await(doubled(5))

        assert asyncio.run(handler()) == 10
