"""
Host-owned event bus.

The host creates one bus at startup and hands it to whatever wants to
subscribe. The core never keeps a module-level registry, so two hosts in
one process (or two tests) can't see each other's listeners.
"""

import inspect
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Union

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Union[Any, Awaitable[Any]]]


class EventBus:
    """Minimal async publish/subscribe for host events such as "remove"."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def on(self, event: str, handler: Handler) -> None:
        self._handlers[event].append(handler)
        logger.debug("Registered event handler", extra={"event": event})

    def off(self, event: str, handler: Handler) -> None:
        if handler in self._handlers.get(event, []):
            self._handlers[event].remove(handler)

    def handlers(self, event: str) -> list[Handler]:
        return list(self._handlers.get(event, []))

    async def emit(self, event: str, payload: Any = None) -> list[Any]:
        """
        Call every handler for the event in registration order.

        Handlers run one after another. Their return values are collected
        so request/response style hosts can report what happened.
        """
        results = []
        for handler in self.handlers(event):
            result = handler(payload)
            if inspect.isawaitable(result):
                result = await result
            results.append(result)
        return results
