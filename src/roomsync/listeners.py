"""Ordered callback registries used by rooms and the client."""

import inspect
import logging
import uuid
from typing import Any, Callable, Dict, Iterator, NamedTuple, Optional

from .constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


class Listener(NamedTuple):
    listener_id: str
    callback: Callable[..., Any]
    event_type: Optional[str] = None

    def matches(self, event_type: Optional[str]) -> bool:
        return self.event_type is None or self.event_type == event_type


class ListenerRegistry:
    """
    Keeps listeners in registration order and dispatches events to them.

    Callbacks may be plain functions or coroutine functions; awaitable results
    are awaited before the next listener runs. Exceptions raised by a callback
    propagate to whoever dispatched the event.
    """

    def __init__(self, name: str = "listeners"):
        self.name = name
        self._listeners: Dict[str, Listener] = {}

    def subscribe(
        self, callback: Callable[..., Any], event_type: Optional[str] = None
    ) -> str:
        """Register ``callback`` and return its id; ``event_type=None`` matches everything."""
        listener_id = uuid.uuid4().hex
        self._listeners[listener_id] = Listener(listener_id, callback, event_type)
        return listener_id

    def unsubscribe(self, listener_id: str) -> bool:
        """Remove a listener; returns False when the id is unknown."""
        return self._listeners.pop(listener_id, None) is not None

    def __len__(self) -> int:
        return len(self._listeners)

    def __iter__(self) -> Iterator[Listener]:
        return iter(list(self._listeners.values()))

    def __contains__(self, listener_id: object) -> bool:
        return listener_id in self._listeners

    async def dispatch(self, event_type: Optional[str], *args: Any) -> None:
        """Invoke every listener whose filter matches ``event_type`` with ``*args``."""
        for listener in list(self._listeners.values()):
            if not listener.matches(event_type):
                continue
            result = listener.callback(*args)
            if inspect.isawaitable(result):
                await result
