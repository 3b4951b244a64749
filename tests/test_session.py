"""Sessions, storage ownership and the session store."""

import asyncio
import time

from live_page import BasePage
from live_session import Session, SessionID, SessionStore


class CounterPage(BasePage):
    def __init__(self, storage, session):
        super().__init__(storage, session)
        self.start = storage.create("count", 0)

    def template(self):
        return f"<p>{self.storage.get('count')}</p>"


REGISTRY = {"/counter": CounterPage}


class TestStorage:
    def test_create_get_update(self):
        session = Session("s1")
        session.current_path = "/a"
        storage = session.storage

        assert storage.create("k", 1) == 1
        assert storage.create("k", 2) == 1
        assert storage.get("k") == 1
        assert storage.update("k", lambda value: value + 1) == 2
        assert storage.get("k") == 2
        assert storage.keys() == ["k"]

    def test_missing_keys(self):
        storage = Session("s1").storage
        calls = []

        assert storage.get("missing") is None
        assert storage.update("missing", lambda value: calls.append(value)) is None
        assert calls == []

    def test_update_resolves_coroutines(self):
        storage = Session("s1").storage
        storage.create("k", 1)

        async def double(value):
            await asyncio.sleep(0)
            return value * 2

        assert storage.update("k", double) == 2

    def test_entries_remember_their_paths(self):
        session = Session("s1")
        session.current_path = "/a"
        session.storage.create("k", 1)
        session.current_path = "/b"
        session.storage.update("k", lambda value: value)

        assert session.entries[0].owners == ["/a", "/b"]


class TestPageInstances:
    def test_same_path_reuses_the_instance(self):
        session = Session("s1")
        first = session.Page("/counter", REGISTRY)
        session.storage.update("count", lambda value: 5)

        second = session.Page("/counter", REGISTRY)

        assert second is first
        assert session.storage.get("count") == 5
        assert session.current_path == "/counter"

    def test_new_instance_starts_from_defaults(self):
        session = Session("s1")
        session.Page("/counter", REGISTRY)
        session.storage.update("count", lambda value: 5)
        del session.pages["/counter"]

        session.Page("/counter", REGISTRY)

        assert session.storage.get("count") == 0

    def test_entries_of_other_paths_survive(self):
        session = Session("s1")
        session.current_path = "/elsewhere"
        session.storage.create("shared", "kept")

        session.Page("/counter", REGISTRY)

        assert session.storage.get("shared") == "kept"

    def test_unregistered_path_creates_nothing(self):
        session = Session("s1")

        assert session.Page("/missing", REGISTRY) is None
        assert session.pages == {}
        assert session.current_path is None

    def test_destroy_drops_the_current_page(self):
        session = Session("s1", purge_delay=10)
        session.Page("/counter", REGISTRY)

        session.Destroy()

        deadline = time.time() + 2
        while "/counter" in session.pages and time.time() < deadline:
            time.sleep(0.01)
        assert "/counter" not in session.pages


class TestSessionStore:
    def test_resolve_creates_and_reuses(self):
        store = SessionStore()

        session, created = store.Resolve(None)
        again, created_again = store.Resolve(f"theme=dark; base={session.id}")

        assert created is True
        assert created_again is False
        assert again is session
        assert session.id.isalnum()

    def test_unknown_or_malformed_tokens_get_a_new_session(self):
        store = SessionStore()

        _, created = store.Resolve("base=doesnotexist")
        _, created_bad = store.Resolve('base="not-a-token"')

        assert created is True
        assert created_bad is True
        assert len(store) == 2

    def test_cookie_header(self):
        store = SessionStore("sid")
        session = store.Create()

        assert store.Cookie(session).startswith(f"sid={session.id};")
        assert SessionID(store.Cookie(session), "sid") == session.id

    def test_remove_and_reset(self):
        store = SessionStore()
        first = store.Create()
        store.Create()

        store.Remove(first.id)
        assert store.Get(first.id) is None
        assert len(store) == 1

        store.Reset()
        assert len(store) == 0
