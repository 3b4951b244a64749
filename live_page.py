"""Page types.

A page is a class deriving from :class:`BasePage`. One instance exists per
session and path; it renders its ``template`` on every request and every live
tick. Methods marked with :func:`endpoint` answer ``POST <path>/api/<name>``,
methods marked with :func:`expose` become part of the client app.

    class Counter(BasePage):
        def __init__(self, storage, session):
            super().__init__(storage, session)
            self.count = storage.create("count", 0)

        @endpoint
        def increment(self, options):
            self.count += 1
            return {"count": self.count}

        def template(self):
            return h("button", {"onClick": self.clicked}, f"Clicked {self.count}")
"""

from __future__ import annotations

import inspect
import threading
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, TypeVar, Union

from live import Interval
from live_errors import SerializationError

if TYPE_CHECKING:
    from live_session import Session, Storage

F = TypeVar("F", bound=Callable[..., Any])

_ENDPOINT_MARK = "_live_endpoint"
_EXPOSURE_MARK = "_live_exposure"


def _mark(attribute: str, name_or_fn: Union[str, F, None], **extra: Any) -> Any:
    def decorate(fn: F) -> F:
        name = name_or_fn if isinstance(name_or_fn, str) else fn.__name__
        setattr(fn, attribute, (name, extra))
        return fn

    if callable(name_or_fn):
        return decorate(name_or_fn)
    return decorate


def endpoint(name_or_fn: Union[str, F, None] = None) -> Any:
    """Register a method as a page endpoint, optionally under another name."""
    return _mark(_ENDPOINT_MARK, name_or_fn)


def expose(name_or_fn: Union[str, F, None] = None, *, value: bool = False) -> Any:
    """Expose a method to the client app.

    By default the method itself is exposed and runs on the server when the
    browser calls it. With ``value=True`` the method is called on every render
    and its result (JSON data or a ``ClientFunction``) is exposed instead.
    """
    return _mark(_EXPOSURE_MARK, name_or_fn, value=value)


def Invoke(handler: Callable[..., Any], argument: Any) -> Any:
    """Call ``handler`` with ``argument`` when it accepts one."""

    try:
        signature = inspect.signature(handler)
    except (TypeError, ValueError):
        return handler(argument)
    for parameter in signature.parameters.values():
        if parameter.kind in (parameter.VAR_POSITIONAL, parameter.POSITIONAL_ONLY, parameter.POSITIONAL_OR_KEYWORD):
            return handler(argument)
    return handler()


class BasePage:
    _endpoints: Dict[str, str] = {}
    _exposures: Dict[str, str] = {}
    _values: Dict[str, str] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        endpoints: Dict[str, str] = {}
        exposures: Dict[str, str] = {}
        values: Dict[str, str] = {}
        for klass in reversed(cls.__mro__):
            for attribute, member in vars(klass).items():
                target = member.__func__ if isinstance(member, (staticmethod, classmethod)) else member
                mark = getattr(target, _ENDPOINT_MARK, None)
                if mark:
                    endpoints[mark[0]] = attribute
                mark = getattr(target, _EXPOSURE_MARK, None)
                if mark:
                    name, extra = mark
                    if extra.get("value"):
                        values[name] = attribute
                        exposures.pop(name, None)
                    else:
                        exposures[name] = attribute
                        values.pop(name, None)
        cls._endpoints = endpoints
        cls._exposures = exposures
        cls._values = values

    def __init__(self, storage: "Storage", session: "Session") -> None:
        self.storage = storage
        self.session = session
        self._intervals: List[Callable[[], None]] = []
        self._lock = threading.Lock()

    def template(self) -> Any:
        raise NotImplementedError(f"{type(self).__name__} does not define a template")

    def Endpoints(self) -> Dict[str, Callable[..., Any]]:
        return {name: getattr(self, attribute) for name, attribute in self._endpoints.items()}

    def Endpoint(self, name: str) -> Optional[Callable[..., Any]]:
        attribute = self._endpoints.get(name)
        return getattr(self, attribute) if attribute else None

    def Exposures(self, errors: Optional[List[SerializationError]] = None) -> Dict[str, Any]:
        """Exposed handlers plus the current result of every value method.

        A value method that raises is left out and reported in ``errors``.
        """

        exposures: Dict[str, Any] = {name: getattr(self, attribute) for name, attribute in self._exposures.items()}
        for name, attribute in self._values.items():
            try:
                exposures[name] = getattr(self, attribute)()
            except Exception as exc:
                if errors is not None:
                    errors.append(SerializationError(name, f"{type(exc).__name__}: {exc}"))
        return exposures

    def CreateInterval(self, callback: Callable[[], None], interval: int) -> Callable[[], None]:
        """Run ``callback`` now and then every ``interval`` ms until destroyed."""

        callback()
        stop = Interval(interval, callback)
        with self._lock:
            self._intervals.append(stop)
        return stop

    def Destroy(self) -> None:
        with self._lock:
            intervals, self._intervals = self._intervals, []
        for stop in intervals:
            stop()
