"""Lifecycle event dispatch.

The recovery logic never calls into the web layer or the worker directly.
Entry points (routes, middleware, Celery tasks) fire named events and the
plugin subscribes handlers to them.
"""

import enum
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[Any]]

DEFAULT_PRIORITY = 10


class HookEvent(str, enum.Enum):
    """Events the recovery plugin listens to."""

    CHECKOUT_VALIDATED = "checkout_validated"
    SWEEP = "scrm_check_abandoned_carts"
    REQUEST_INIT = "request_init"
    ORDER_CREATED = "order_created"
    ORDER_STATUS_CHANGED = "order_status_changed"


class HookRegistry:
    """Ordered registry of async event handlers."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[tuple[int, Handler]]] = defaultdict(list)

    def add_action(
        self, event: HookEvent | str, handler: Handler, priority: int = DEFAULT_PRIORITY
    ) -> None:
        """Subscribe a handler. Lower priority runs first; ties keep insertion order."""
        handlers = self._handlers[_key(event)]
        handlers.append((priority, handler))
        handlers.sort(key=lambda entry: entry[0])

    def remove_action(self, event: HookEvent | str, handler: Handler) -> bool:
        """Unsubscribe a handler. Returns True if it was registered."""
        handlers = self._handlers.get(_key(event), [])
        for entry in handlers:
            if entry[1] == handler:
                handlers.remove(entry)
                return True
        return False

    def has_action(self, event: HookEvent | str) -> bool:
        return bool(self._handlers.get(_key(event)))

    async def do_action(self, event: HookEvent | str, **kwargs: Any) -> list[Any]:
        """Run every handler for an event in order and collect the results."""
        results: list[Any] = []
        for _priority, handler in list(self._handlers.get(_key(event), [])):
            results.append(await handler(**kwargs))
        logger.debug("Dispatched %s to %d handler(s)", _key(event), len(results))
        return results


def _key(event: HookEvent | str) -> str:
    return event.value if isinstance(event, HookEvent) else event
