"""Sessions, page instances and session storage."""

from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass, field
from http.cookies import CookieError, SimpleCookie
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Type

from live import Await, Timeout
from live_dom import Document
from live_page import BasePage

Handler = Callable[..., Any]


@dataclass
class StorageEntry:
    key: str
    value: Any
    owners: List[str] = field(default_factory=list)


@dataclass
class PageInstance:
    """A page object together with what was last sent to its client."""

    path: str
    page: BasePage
    last_served: Optional[Document] = None
    last_served_html: Optional[str] = None
    last_diffed: Optional[Document] = None
    last_diffed_html: Optional[str] = None
    handlers: Dict[str, Handler] = field(default_factory=dict)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)


class Storage:
    """Key/value storage shared by all pages of one session.

    Every entry remembers the paths that created or updated it. When a page
    at one of those paths gets instantiated again, the entry is dropped so the
    new instance starts from its defaults.
    """

    def __init__(self, session: "Session") -> None:
        self._session = session

    def _find(self, key: str) -> Optional[StorageEntry]:
        for entry in self._session.entries:
            if entry.key == key:
                return entry
        return None

    def _tag(self, entry: StorageEntry) -> None:
        path = self._session.current_path
        if path is not None and path not in entry.owners:
            entry.owners.append(path)

    def get(self, key: str) -> Any:
        with self._session.lock:
            entry = self._find(key)
            return entry.value if entry else None

    def create(self, key: str, default: Any) -> Any:
        with self._session.lock:
            entry = self._find(key)
            if entry is None:
                entry = StorageEntry(key, default)
                self._session.entries.append(entry)
            self._tag(entry)
            return entry.value

    def update(self, key: str, handler: Callable[[Any], Any]) -> Any:
        # the handler runs outside the lock: read-modify-write is not atomic
        with self._session.lock:
            entry = self._find(key)
            if entry is None:
                return None
            current = entry.value
        value = Await(handler(current))
        with self._session.lock:
            entry.value = value
            self._tag(entry)
        return value

    def keys(self) -> List[str]:
        with self._session.lock:
            return [entry.key for entry in self._session.entries]


class Session:
    def __init__(self, id: str, purge_delay: int = 100) -> None:
        self.id = id
        self.purge_delay = purge_delay
        self.pages: Dict[str, PageInstance] = {}
        self.entries: List[StorageEntry] = []
        self.current_path: Optional[str] = None
        self.lock = threading.RLock()
        self.storage = Storage(self)

    def __repr__(self) -> str:
        return f"<Session {self.id} pages={list(self.pages)}>"

    def Page(self, path: str, registry: Mapping[str, Type[BasePage]]) -> Optional[PageInstance]:
        """Return the live page at ``path``, creating it on first request."""

        with self.lock:
            instance = self.pages.get(path)
            if instance is not None:
                self.current_path = path
                return instance
            page_type = registry.get(path)
            if page_type is None:
                return None
            self.entries = [entry for entry in self.entries if path not in entry.owners]
            self.current_path = path
            instance = PageInstance(path, page_type(self.storage, self))
            self.pages[path] = instance
            return instance

    def Destroy(self, delay: Optional[int] = None) -> Callable[[], None]:
        """Drop the current page after ``delay`` ms; returns a cancel function."""

        path = self.current_path
        delay = self.purge_delay if delay is None else delay

        def remove() -> None:
            with self.lock:
                instance = self.pages.get(path) if path is not None else None
                if instance is None:
                    return
                del self.pages[path]
            instance.page.Destroy()

        return Timeout(delay, remove)

    def Close(self) -> None:
        with self.lock:
            pages, self.pages = list(self.pages.values()), {}
        for instance in pages:
            instance.page.Destroy()


def SessionID(cookie_header: Optional[str], cookie_name: str) -> Optional[str]:
    if not cookie_header:
        return None
    cookies = SimpleCookie()
    try:
        cookies.load(cookie_header)
    except CookieError:
        return None
    morsel = cookies.get(cookie_name)
    if morsel is None or not morsel.value.isalnum():
        return None
    return morsel.value


class SessionStore:
    def __init__(self, cookie_name: str = "base", purge_delay: int = 100) -> None:
        self.cookie_name = cookie_name
        self.purge_delay = purge_delay
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def Get(self, id: Optional[str]) -> Optional[Session]:
        if not id:
            return None
        with self._lock:
            return self._sessions.get(id)

    def Create(self) -> Session:
        with self._lock:
            id = secrets.token_hex(16)
            while id in self._sessions:
                id = secrets.token_hex(16)
            session = Session(id, self.purge_delay)
            self._sessions[id] = session
            return session

    def Resolve(self, cookie_header: Optional[str]) -> Tuple[Session, bool]:
        """Session named by the request cookie, or a new one (``created=True``)."""

        session = self.Get(SessionID(cookie_header, self.cookie_name))
        if session is not None:
            return session, False
        return self.Create(), True

    def Cookie(self, session: Session) -> str:
        return f"{self.cookie_name}={session.id}; Path=/; HttpOnly; SameSite=Lax"

    def Remove(self, id: str) -> None:
        with self._lock:
            session = self._sessions.pop(id, None)
        if session is not None:
            session.Close()

    def Reset(self) -> None:
        with self._lock:
            sessions, self._sessions = list(self._sessions.values()), {}
        for session in sessions:
            session.Close()
