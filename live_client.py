"""Client exposure bridge.

Builds the description of everything a page makes available to browser code
(exposures and endpoint names) and the runtime script that reconstructs it,
binds event listeners and applies live patches.

Server-side Python callables never travel to the browser. They are exposed as
a small generated stub that posts the DOM event back to
``<page-path>/api/<name>``; logic that has to run in the browser is written as
JavaScript and wrapped in :class:`ClientFunction`.
"""

from __future__ import annotations

import inspect
import json
import re
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from live import LISTENER_ATTRIBUTE, VALUE_ATTRIBUTE, Script, Trim
from live_errors import SerializationError

SEPARATOR = "[t--c]"
UPDATE_CONTENT = "update_content"

_RE_THIS = re.compile(r"\bthis\b")

_HANDLER_STUB = "function(event){ return app.__invoke(%s, event); }"


class ClientFunction:
    """JavaScript function source to run in the browser.

    The source must be an expression (``function(event){...}`` or an arrow
    function). ``this`` refers to the client app object.
    """

    def __init__(self, source: str) -> None:
        self.source = source

    def __repr__(self) -> str:
        return f"ClientFunction({self.source!r})"


def _is_server_callable(value: Any) -> bool:
    if isinstance(value, type):
        return False
    if inspect.isfunction(value) or inspect.ismethod(value):
        return True
    if inspect.isbuiltin(value) or inspect.isroutine(value):
        return False
    call = getattr(type(value), "__call__", None)
    return inspect.isfunction(call)


def Exposure(name: str, value: Any) -> Dict[str, Any]:
    """Serialize one exposure as ``{"type": ..., "value": ...}``."""

    if isinstance(value, ClientFunction):
        return {"type": "function", "value": _RE_THIS.sub("app", value.source)}
    if callable(value):
        if not _is_server_callable(value):
            raise SerializationError(name, "native functions have no source")
        return {"type": "function", "value": _HANDLER_STUB % json.dumps(name)}
    try:
        json.dumps(value)
    except (TypeError, ValueError) as exc:
        raise SerializationError(name, str(exc)) from exc
    return {"type": "value", "value": value}


def ClientApp(
    exposures: Mapping[str, Any],
    endpoints: Iterable[str],
    errors: Optional[List[SerializationError]] = None,
) -> Dict[str, Any]:
    serialized: Dict[str, Dict[str, Any]] = {}
    for name, value in exposures.items():
        try:
            serialized[name] = Exposure(name, value)
        except SerializationError as exc:
            if errors is not None:
                errors.append(exc)
    return {"exposures": serialized, "endpoints": list(endpoints)}


def Handlers(exposures: Mapping[str, Any]) -> Dict[str, Callable[..., Any]]:
    """Exposures dispatched on the server when the client invokes them."""
    return {
        name: value
        for name, value in exposures.items()
        if not isinstance(value, ClientFunction) and callable(value) and _is_server_callable(value)
    }


def Message(patches: Iterable[Any], minimum_length: int = 0) -> str:
    payload = json.dumps([patch.ToDict() if hasattr(patch, "ToDict") else patch for patch in patches])
    message = f"{UPDATE_CONTENT}{SEPARATOR}{payload}"
    if len(message) < minimum_length:
        message += " " * (minimum_length - len(message))
    return message


def Runtime(descriptor: Mapping[str, Any]) -> str:
    data = json.dumps(descriptor).replace("</", "<\\/")
    source = (
        _RUNTIME.replace("__separator__", json.dumps(SEPARATOR))
        .replace("__update__", json.dumps(UPDATE_CONTENT))
        .replace("__listener__", json.dumps(LISTENER_ATTRIBUTE))
        .replace("__values__", json.dumps(VALUE_ATTRIBUTE))
        .replace("__descriptor__", data)
    )
    return Script(source)


_RUNTIME = Trim(
    """
    (function(){
        if ((window).__live) return;
        var descriptor = __descriptor__;
        var separator = __separator__;
        var listenerAttribute = __listener__;
        var valuesAttribute = __values__;
        var app = {};
        (window).__live = app;
        function pagePath(){
            return document.location.pathname.replace(/\\/$/, '');
        }
        function callEndpoint(name, options){
            return fetch(pagePath() + '/api/' + name, {
                method: 'POST',
                headers: { 'Content-Type': 'application/json' },
                body: JSON.stringify(options === undefined ? {} : options)
            }).then(function(resp){ return resp.json(); });
        }
        function eventData(event){
            var target = event && event.target;
            return {
                type: event ? event.type : null,
                key: event && event.key !== undefined ? event.key : null,
                name: target && target.name ? target.name : null,
                value: target && target.value !== undefined ? target.value : null,
                checked: target && target.checked !== undefined ? !!target.checked : null
            };
        }
        app.__invoke = function(name, event){
            return callEndpoint(name, { event: eventData(event) });
        };
        Object.keys(descriptor.exposures).forEach(function(name){
            var exposure = descriptor.exposures[name];
            if (exposure.type === 'function') {
                try { app[name] = (new Function('app', 'return (' + exposure.value + ');'))(app); }
                catch (error) { console.error('[p-live] cannot load exposure', name, error); return; }
            } else {
                app[name] = exposure.value;
            }
            if (name.indexOf('on') === 0 && window[name] !== undefined) {
                window[name] = function(event){ return app[name](event); };
            }
        });
        app.exposures = app;
        app.endpoints = {};
        descriptor.endpoints.forEach(function(name){
            app.endpoints[name] = function(options){ return callEndpoint(name, options); };
        });
        function applyValues(){
            document.querySelectorAll('[' + valuesAttribute + ']').forEach(function(el){
                var values = {};
                try { values = JSON.parse(el.getAttribute(valuesAttribute)) || {}; } catch(_) { }
                el.removeAttribute(valuesAttribute);
                Object.keys(values).forEach(function(key){
                    var value = values[key];
                    if (value !== null && typeof value === 'object' && !Array.isArray(value) && el[key] && typeof el[key] === 'object') {
                        Object.keys(value).forEach(function(inner){ el[key][inner] = value[inner]; });
                        return;
                    }
                    el[key] = value;
                });
            });
        }
        function bindListeners(){
            document.querySelectorAll('[' + listenerAttribute + ']').forEach(function(el){
                var pairs = (el.getAttribute(listenerAttribute) || '').split(';');
                pairs.forEach(function(pair){
                    var parts = pair.split('=');
                    if (parts.length < 2 || !parts[0]) { return; }
                    var listener = parts[1];
                    el['on' + parts[0]] = function(event){
                        if (typeof app[listener] === 'function') { return app[listener](event); }
                        return app.__invoke(listener, event);
                    };
                });
                el.removeAttribute(listenerAttribute);
            });
        }
        function locate(path){
            var node = document.body;
            for (var i = 0; i < path.length; i++) {
                if (!node) { return null; }
                node = node.children[path[i]];
            }
            return node || null;
        }
        function applyPatch(patch){
            var target = locate(patch.path || []);
            if (!target) { return; }
            if (patch.newContent !== null && patch.newContent !== undefined) {
                if (target.outerHTML === patch.newContent) { return; }
                if (target === document.body) {
                    var doc = new DOMParser().parseFromString(patch.newContent, 'text/html');
                    [].slice.call(target.attributes).forEach(function(a){ target.removeAttribute(a.name); });
                    [].slice.call(doc.body.attributes).forEach(function(a){ target.setAttribute(a.name, a.value); });
                    target.innerHTML = doc.body.innerHTML;
                    return;
                }
                target.outerHTML = patch.newContent;
                return;
            }
            (patch.attributeChanges || []).forEach(function(change){
                if (change.action === 'SET') { target.setAttribute(change.name, change.value); }
                else { target.removeAttribute(change.name); }
            });
        }
        function handleMessage(event){
            var text = String(event.data || '').replace(/\\s+$/, '');
            var index = text.indexOf(separator);
            if (index < 0) { return; }
            var type = text.slice(0, index);
            if (type !== __update__) { return; }
            var patches = [];
            try { patches = JSON.parse(text.slice(index + separator.length)); } catch(_) { return; }
            for (var i = 0; i < patches.length; i++) { applyPatch(patches[i]); }
            applyValues();
            bindListeners();
        }
        function connect(){
            var proto = document.location.protocol === 'https:' ? 'wss' : 'ws';
            var ws = new WebSocket(proto + '://' + document.location.host + pagePath() + '/socket');
            ws.onmessage = handleMessage;
        }
        function start(){
            applyValues();
            bindListeners();
            connect();
        }
        if (document.readyState === 'loading') { document.addEventListener('DOMContentLoaded', start); }
        else { start(); }
    })();
    """
)
