"""Error taxonomy for p-live.

Every error is scoped to a single request or a single live connection.
"""

from __future__ import annotations


class LiveError(Exception):
    pass


class RenderError(LiveError):
    """A page's markup or element tree could not be turned into HTML."""


class SerializationError(LiveError):
    """An exposure cannot be sent to the client."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"Cannot expose {name!r}: {reason}")
        self.name = name
        self.reason = reason


class NotFoundError(LiveError):
    """Unknown page path or endpoint name."""

    def __init__(self, body: str) -> None:
        super().__init__(body)
        self.body = body


class LiveConnectionError(ConnectionError, LiveError):
    """Sending on a live-update channel failed; the peer is gone."""
