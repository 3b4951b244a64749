"""Client exposure bridge and live message format."""

import json

import pytest

from live_client import SEPARATOR, ClientApp, ClientFunction, Exposure, Handlers, Message, Runtime
from live_diff import Patch
from live_errors import SerializationError


def clicked(event):
    return None


class TestExposure:
    def test_client_function_binds_this_to_app(self):
        exposure = Exposure("toggle", ClientFunction("function(){ this.open = !this.open; }"))

        assert exposure == {"type": "function", "value": "function(){ app.open = !app.open; }"}

    def test_server_callable_becomes_a_dispatch_stub(self):
        exposure = Exposure("clicked", clicked)

        assert exposure["type"] == "function"
        assert 'app.__invoke("clicked", event)' in exposure["value"]

    def test_data_is_sent_as_value(self):
        assert Exposure("items", [1, {"a": None}]) == {"type": "value", "value": [1, {"a": None}]}

    @pytest.mark.parametrize("value", [len, print, dict])
    def test_native_callables_cannot_be_exposed(self, value):
        with pytest.raises(SerializationError):
            Exposure("native", value)

    def test_non_json_values_cannot_be_exposed(self):
        with pytest.raises(SerializationError) as info:
            Exposure("thing", object())

        assert info.value.name == "thing"


class TestClientApp:
    def test_failed_exposures_are_dropped_individually(self):
        errors = []
        descriptor = ClientApp(
            {"count": 1, "bad": print, "toggle": ClientFunction("() => 1"), "clicked": clicked},
            ["save"],
            errors,
        )

        assert sorted(descriptor["exposures"]) == ["clicked", "count", "toggle"]
        assert descriptor["endpoints"] == ["save"]
        assert [error.name for error in errors] == ["bad"]

    def test_handlers_are_only_server_callables(self):
        handlers = Handlers({"count": 1, "toggle": ClientFunction("() => 1"), "clicked": clicked, "bad": len})

        assert handlers == {"clicked": clicked}


class TestMessage:
    def test_message_is_padded(self):
        message = Message([Patch([0], "<p>x</p>")], 10000)

        assert len(message) == 10000
        kind, payload = message.rstrip().split(SEPARATOR, 1)
        assert kind == "update_content"
        assert json.loads(payload) == [{"path": [0], "newContent": "<p>x</p>", "attributeChanges": []}]

    def test_long_messages_are_not_cut(self):
        message = Message([Patch([0], "x" * 200)], 50)

        assert len(message) > 200
        assert not message.endswith(" ")


class TestRuntime:
    def test_runtime_embeds_the_descriptor(self):
        script = Runtime({"exposures": {"count": {"type": "value", "value": 3}}, "endpoints": ["save"]})

        assert script.startswith("<script>") and script.endswith("</script>")
        assert '"endpoints": ["save"]' in script
        assert '"data-on-event"' in script
        assert '"data-value-for"' in script
        assert "'/socket'" in script
        assert json.dumps(SEPARATOR) in script

    def test_closing_tags_in_values_are_escaped(self):
        script = Runtime({"exposures": {"s": {"type": "value", "value": "</script>"}}, "endpoints": []})

        assert script.count("</script>") == 1
        assert "<\\/script>" in script
