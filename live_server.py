"""Python server for p-live.

Serves registered pages over HTTP, answers page endpoints, and keeps every
open page in sync over a WebSocket: each connection re-renders its page on a
fixed interval and pushes the structural diff against what the browser shows.
The module avoids third-party dependencies.
"""

from __future__ import annotations

import base64
import hashlib
import json
import re
import socket
import struct
import threading
from dataclasses import dataclass, field
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, HTTPServer
from socketserver import ThreadingMixIn
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple, Type
from urllib.parse import parse_qsl, urlparse

from live import Await, Interval, Trim
from live_client import ClientApp, Handlers, Message, Runtime
from live_diff import Diff, Patch
from live_dom import Document, Parse
from live_errors import LiveConnectionError, NotFoundError, SerializationError
from live_markup import Document as PageDocument
from live_markup import Render
from live_page import BasePage, Invoke
from live_session import PageInstance, Session, SessionStore

NO_PAGE = "No page found."
NO_ENDPOINT = "Endpoint does not exist."
NO_SOCKET = "Could not setup socket connection."

API_SEGMENT = "/api/"
SOCKET_SEGMENT = "/socket"

UNCHANGED = "UNCHANGED"
DIFF_COMPUTED = "DIFF_COMPUTED"
SENT = "SENT"
SEND_FAILED = "SEND_FAILED"
FAILED = "FAILED"

_ERROR_PAGE = Trim(
    """
    <!DOCTYPE html>
    <html lang="en">
      <head>
        <meta charset="UTF-8">
        <meta name="viewport" content="width=device-width, initial-scale=1.0">
        <title>Something went wrong</title>
        <style>
          html,body{height:100%;}
          body{margin:0;display:flex;align-items:center;justify-content:center;background:#f3f4f6;font-family:system-ui,-apple-system,'Segoe UI',Roboto,Helvetica,Arial,sans-serif;color:#111827;}
          .card{background:#fff;box-shadow:0 10px 25px rgba(0,0,0,.08);border-radius:14px;padding:28px 32px;border:1px solid rgba(0,0,0,.06);text-align:center;max-width:360px;}
          .title{font-size:20px;font-weight:600;margin-bottom:6px;}
          .sub{font-size:14px;color:#6b7280;}
        </style>
      </head>
      <body>
        <div class="card">
          <div class="title">Something went wrong</div>
          <div class="sub">The page could not be produced. Reload to try again.</div>
        </div>
      </body>
    </html>
    """
)

_RE_MULTIPART_FIELD = re.compile(r'name="([^"]*)"[^\r\n]*\r?\n(?:[^\r\n]+\r?\n)*\r?\n(.*?)\r?\n--', re.S)


@dataclass
class Options:
    host: str = "0.0.0.0"
    port: int = 1422
    language: str = "en"
    poll_interval: int = 75
    minimum_message_length: int = 10000
    cookie_name: str = "base"
    purge_delay: int = 100
    debug: bool = False


@dataclass
class Request:
    method: str
    path: str
    query: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None

    def Header(self, name: str, default: str = "") -> str:
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return default


@dataclass
class Response:
    status: int = HTTPStatus.OK
    headers: List[Tuple[str, str]] = field(default_factory=list)
    body: str = ""

    def Header(self, name: str) -> Optional[str]:
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return None


class Channel(Protocol):
    def Send(self, text: str) -> None: ...

    def Close(self) -> None: ...


def _ensure_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", "ignore")
    return str(value)


def _normalize_path(path: str) -> str:
    value = (path or "/").strip()
    if not value.startswith("/"):
        value = "/" + value
    if len(value) > 1:
        value = value.rstrip("/") or "/"
    return value


def _etag_matches(header: str, etag: str) -> bool:
    for candidate in (header or "").split(","):
        candidate = candidate.strip()
        if candidate.startswith("W/"):
            candidate = candidate[2:]
        if candidate == etag or candidate.strip('"') == etag.strip('"'):
            return True
    return False


def ParseBody(raw: Any, content_type: str = "") -> Dict[str, Any]:
    """Decode a request body: JSON first, then simple multipart form fields."""

    text = _ensure_text(raw)
    if not text.strip():
        return {}
    try:
        data = json.loads(text)
    except ValueError:
        data = None
    if isinstance(data, dict):
        return data
    if data is not None:
        return {"value": data}
    fields = {name: value.strip() for name, value in _RE_MULTIPART_FIELD.findall(text)}
    if fields or "multipart" in (content_type or ""):
        return fields
    return dict(parse_qsl(text, keep_blank_values=True))


class LiveUpdater:
    """Keeps one connected client in sync with its page.

    The baseline starts as the tree the client received on its last full
    page load. Every tick re-renders the page, diffs against the baseline and
    sends the patches. A failed send or an unexpected error stops the loop and
    closes the channel.
    """

    def __init__(self, app: "App", instance: PageInstance, channel: Channel) -> None:
        self._app = app
        self._instance = instance
        self._channel = channel
        self._stop: Optional[Callable[[], None]] = None
        self._closed = threading.Event()
        self.baseline: Document = instance.last_served or Parse("")
        self.baseline_html: Optional[str] = instance.last_served_html

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def Start(self) -> "LiveUpdater":
        self._stop = Interval(self._app.options.poll_interval, self.Tick)
        return self

    def Stop(self) -> None:
        self._closed.set()
        if self._stop is not None:
            self._stop()
            self._stop = None

    def Tick(self) -> str:
        if self.closed:
            return UNCHANGED
        instance = self._instance
        try:
            patches = self._advance()
        except Exception as exc:
            self._app._log("Live update stopped for", instance.path, repr(exc))
            self.Stop()
            self._channel.Close()
            return FAILED
        if patches is None:
            return UNCHANGED
        if not patches:
            return DIFF_COMPUTED
        message = Message(patches, self._app.options.minimum_message_length)
        try:
            self._channel.Send(message)
        except LiveConnectionError as exc:
            self._app._log("Live update failed for", instance.path, exc)
            self.Stop()
            self._channel.Close()
            return SEND_FAILED
        return SENT

    def _advance(self) -> Optional[List[Patch]]:
        """Render, diff and move the baseline; None when the HTML is unchanged."""

        instance = self._instance
        with instance.lock:
            html, _ = self._app._render(instance)
            if html == self.baseline_html:
                return None
            tree = Parse(html)
            patches = Diff(self.baseline, tree)
            self.baseline, self.baseline_html = tree, html
            instance.last_diffed, instance.last_diffed_html = tree, html
        return patches


class App:
    def __init__(self, options: Optional[Options] = None) -> None:
        self.options = options or Options()
        self.sessions = SessionStore(self.options.cookie_name, self.options.purge_delay)
        self._pages: Dict[str, Type[BasePage]] = {}
        self._middleware: List[Callable[[Request], Any]] = []
        self._debug = self.options.debug

    def Debug(self, enable: bool) -> None:
        self._debug = bool(enable)

    def _log(self, *parts: Any) -> None:
        if self._debug:
            print("[p-live]", *parts)

    def Register(self, path: str, page: Type[BasePage]) -> Type[BasePage]:
        self._pages[_normalize_path(path)] = page
        return page

    def Use(self, handler: Callable[[Request], Any]) -> Callable[[Request], Any]:
        self._middleware.append(handler)
        return handler

    def KillSessions(self) -> None:
        self.sessions.Reset()
        self._log("All sessions removed")

    def _render(self, instance: PageInstance) -> Tuple[str, str]:
        """Canonical HTML of the page body plus the full page with its runtime."""

        page = instance.page
        rendered = Render(page.template)
        if rendered.error is not None:
            self._log("Render error on", instance.path, rendered.error)
        errors: List[SerializationError] = []
        exposures = page.Exposures(errors)
        exposures.update(rendered.exposures)
        descriptor = ClientApp(exposures, page.Endpoints(), errors)
        for error in errors:
            self._log("Exposure dropped on", instance.path, error)
        instance.handlers = Handlers(exposures)
        canonical = PageDocument(rendered.template, self.options.language)
        full = PageDocument(rendered.template, self.options.language, Runtime(descriptor))
        return canonical, full

    def Handle(self, request: Request) -> Response:
        for handler in self._middleware:
            result = Await(handler(request))
            if isinstance(result, str):
                return Response(HTTPStatus.OK, [("Content-Type", "text/html; charset=utf-8")], result)
            if isinstance(result, Response) and result.body:
                return result

        session, created = self.sessions.Resolve(request.Header("Cookie") or None)
        try:
            response = self._route(request, session)
        except NotFoundError as exc:
            response = Response(HTTPStatus.NOT_FOUND, [("Content-Type", "text/plain; charset=utf-8")], exc.body)
        if created:
            response.headers.append(("Set-Cookie", self.sessions.Cookie(session)))
        return response

    def _route(self, request: Request, session: Session) -> Response:
        path = _normalize_path(request.path)
        if API_SEGMENT in path + "/":
            return self._endpoint(request, session, path)
        if path.endswith(SOCKET_SEGMENT):
            # the upgrade itself is done by the listener
            self.Connect(session, path)
            return Response(HTTPStatus.BAD_REQUEST, [("Content-Type", "text/plain; charset=utf-8")], NO_SOCKET)
        return self._page(request, session, path)

    def _page(self, request: Request, session: Session, path: str) -> Response:
        instance = session.Page(path, self._pages)
        if instance is None:
            raise NotFoundError(NO_PAGE)
        with instance.lock:
            canonical, full = self._render(instance)
            etag = '"' + hashlib.md5(full.encode("utf-8")).hexdigest() + '"'
            unchanged = instance.last_diffed_html is None or instance.last_diffed_html == instance.last_served_html
            not_modified = unchanged and _etag_matches(request.Header("If-None-Match"), etag)
            instance.last_served = Parse(canonical)
            instance.last_served_html = canonical
        headers = [
            ("Content-Type", "text/html; charset=utf-8"),
            ("Cache-Control", "max-age=0, must-revalidate"),
            ("ETag", etag),
        ]
        if not_modified:
            return Response(HTTPStatus.NOT_MODIFIED, headers, "")
        return Response(HTTPStatus.OK, headers, full)

    def _endpoint(self, request: Request, session: Session, path: str) -> Response:
        page_path, _, name = (path + ("/" if path.endswith("/api") else "")).partition(API_SEGMENT)
        page_path = _normalize_path(page_path)
        name = name.strip("/")
        instance = session.Page(page_path, self._pages)
        if instance is None or not name:
            raise NotFoundError(NO_ENDPOINT)
        body = request.body
        if not isinstance(body, dict):
            body = ParseBody(body, request.Header("Content-Type"))

        handler = instance.page.Endpoint(name)
        argument: Any = body
        if handler is None:
            handler = instance.handlers.get(name)
            argument = body.get("event", body)
        if handler is None:
            raise NotFoundError(NO_ENDPOINT)
        result = Await(Invoke(handler, argument))
        payload = json.dumps({} if result is None else result)
        return Response(HTTPStatus.OK, [("Content-Type", "application/json; charset=utf-8")], payload)

    def Connect(self, session: Session, path: str) -> PageInstance:
        """Page instance a live connection at ``<page>/socket`` attaches to."""

        page_path = _normalize_path(path[: -len(SOCKET_SEGMENT)] if path.endswith(SOCKET_SEGMENT) else path)
        instance = session.Page(page_path, self._pages)
        if instance is None:
            raise NotFoundError(NO_SOCKET)
        return instance

    def Stream(self, instance: PageInstance, channel: Channel) -> LiveUpdater:
        self._log("Live connection opened for", instance.path)
        return LiveUpdater(self, instance, channel).Start()

    def Listen(self, port: Optional[int] = None) -> None:
        app = self
        port = self.options.port if port is None else port

        class _Handler(BaseHTTPRequestHandler):
            protocol_version = "HTTP/1.1"

            def _write(self, response: Response) -> None:
                body = response.body.encode("utf-8")
                self.send_response(response.status)
                for name, value in response.headers:
                    self.send_header(name, value)
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                try:
                    self.wfile.write(body)
                except (BrokenPipeError, ConnectionResetError):
                    pass

            def _request(self, method: str) -> Request:
                parsed = urlparse(self.path)
                payload = b""
                if method == "POST":
                    length = int(self.headers.get("Content-Length", "0") or 0)
                    payload = self.rfile.read(length) if length > 0 else b""
                return Request(
                    method=method,
                    path=parsed.path,
                    query=dict(parse_qsl(parsed.query)),
                    headers={key: value for key, value in self.headers.items()},
                    body=ParseBody(payload, self.headers.get("Content-Type", "")),
                )

            def _upgrade(self, request: Request) -> None:
                session, created = app.sessions.Resolve(request.Header("Cookie") or None)
                try:
                    instance = app.Connect(session, _normalize_path(request.path))
                except NotFoundError as exc:
                    self._write(Response(HTTPStatus.NOT_FOUND, [("Content-Type", "text/plain; charset=utf-8")], exc.body))
                    return
                key = request.Header("Sec-WebSocket-Key")
                if not key:
                    self._write(Response(HTTPStatus.BAD_REQUEST, [], NO_SOCKET))
                    return
                accept = AcceptKey(key)
                self.send_response(HTTPStatus.SWITCHING_PROTOCOLS)
                if created:
                    self.send_header("Set-Cookie", app.sessions.Cookie(session))
                self.send_header("Upgrade", "websocket")
                self.send_header("Connection", "Upgrade")
                self.send_header("Sec-WebSocket-Accept", accept)
                self.end_headers()
                self.wfile.flush()
                connection = _WebSocketConnection(self.connection)
                updater = app.Stream(instance, connection)
                try:
                    connection.Serve()
                finally:
                    updater.Stop()
                    connection.Close()
                    self.close_connection = True
                    app._log("Live connection closed for", instance.path)

            def _handle(self, method: str) -> None:
                try:
                    request = self._request(method)
                    upgrade = (self.headers.get("Upgrade", "") or "").lower()
                    if method == "GET" and upgrade == "websocket" and _normalize_path(request.path).endswith(SOCKET_SEGMENT):
                        self._upgrade(request)
                        return
                    self._write(app.Handle(request))
                except Exception as exc:
                    app._log("Handler error:", repr(exc))
                    self._write(Response(HTTPStatus.INTERNAL_SERVER_ERROR, [("Content-Type", "text/html; charset=utf-8")], _ERROR_PAGE))

            def do_GET(self) -> None:  # noqa: N802
                self._handle("GET")

            def do_POST(self) -> None:  # noqa: N802
                self._handle("POST")

            def log_message(self, format: str, *args: Any) -> None:  # noqa: A003
                if app._debug:
                    super().log_message(format, *args)

        class _ThreadingHTTPServer(ThreadingMixIn, HTTPServer):
            daemon_threads = True
            allow_reuse_address = True

        server = _ThreadingHTTPServer((self.options.host, port), _Handler)
        self._log(f"Listening on http://{self.options.host}:{port}")
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            pass
        finally:
            server.server_close()
            self.sessions.Reset()


def MakeApp(options: Optional[Options] = None, **overrides: Any) -> App:
    options = options or Options()
    for key, value in overrides.items():
        if not hasattr(options, key):
            raise TypeError(f"Unknown option: {key}")
        setattr(options, key, value)
    return App(options)


_WS_GUID = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"

OP_TEXT = 0x1
OP_CLOSE = 0x8
OP_PING = 0x9
OP_PONG = 0xA

Reader = Callable[[int], bytes]


def AcceptKey(key: str) -> str:
    return base64.b64encode(hashlib.sha1((key + _WS_GUID).encode("utf-8")).digest()).decode("utf-8")


def EncodeFrame(opcode: int, payload: bytes) -> bytes:
    """A single unmasked final frame, as servers send them."""

    length = len(payload)
    if length < 126:
        header = struct.pack("!BB", 0x80 | opcode, length)
    elif length < (1 << 16):
        header = struct.pack("!BBH", 0x80 | opcode, 126, length)
    else:
        header = struct.pack("!BBQ", 0x80 | opcode, 127, length)
    return header + payload


def DecodeFrame(read: Reader) -> Tuple[int, bytes]:
    """Read one frame through ``read(size)`` and unmask its payload."""

    first, second = read(2)
    length = second & 0x7F
    if length == 126:
        (length,) = struct.unpack("!H", read(2))
    elif length == 127:
        (length,) = struct.unpack("!Q", read(8))
    mask = read(4) if second & 0x80 else b""
    payload = read(length) if length else b""
    if mask:
        payload = bytes(byte ^ mask[index % 4] for index, byte in enumerate(payload))
    return first & 0x0F, payload


class _WebSocketConnection:
    """Live channel over an upgraded socket; the client only sends control frames."""

    def __init__(self, sock: socket.socket) -> None:
        self._socket = sock
        self._lock = threading.Lock()
        self._closed = False
        try:
            self._socket.settimeout(1.0)
        except OSError:
            pass

    @property
    def closed(self) -> bool:
        return self._closed

    def Send(self, text: str) -> None:
        if not self._write(OP_TEXT, text.encode("utf-8")):
            raise LiveConnectionError("peer is gone")

    def Close(self) -> None:
        if not self._closed:
            self._write(OP_CLOSE, struct.pack("!H", 1000))
            self._shutdown()

    def Serve(self) -> None:
        """Answer pings until the client closes or the socket fails."""

        while not self._closed:
            try:
                opcode, payload = DecodeFrame(self._read)
            except (OSError, ValueError):
                break
            if opcode == OP_CLOSE:
                break
            if opcode == OP_PING:
                self._write(OP_PONG, payload)
        self._shutdown()

    def _read(self, size: int) -> bytes:
        data = b""
        while len(data) < size:
            try:
                chunk = self._socket.recv(size - len(data))
            except socket.timeout:
                # the timeout only lets a closed connection stop waiting
                if self._closed:
                    raise OSError("Socket closed")
                continue
            if not chunk:
                raise OSError("Socket closed")
            data += chunk
        return data

    def _write(self, opcode: int, payload: bytes) -> bool:
        if self._closed:
            return False
        with self._lock:
            try:
                self._socket.sendall(EncodeFrame(opcode, payload))
            except OSError:
                self._shutdown()
                return False
        return True

    def _shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        for step in (lambda: self._socket.shutdown(socket.SHUT_RDWR), self._socket.close):
            try:
                step()
            except OSError:
                pass
