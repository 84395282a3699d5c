"""In-process typed event bus for account lifecycle events.

The registration flow publishes ``AccountRegistered`` after the account row
is committed; ApiKeyIssuer subscribes to it. Delivery is synchronous:
``publish()`` awaits every handler in subscription order before returning,
and a handler exception propagates to the publisher — so an issuance failure
surfaces in the registration response instead of being dropped.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from latchkey.utils.logger import get_logger

logger = get_logger(__name__)

E = TypeVar("E")

EventHandler = Callable[[Any], Awaitable[None]]


@dataclass(frozen=True)
class AccountRegistered:
    """Published once per new account, after it is durably created."""

    owner_id: str
    user_name: Optional[str] = None


class EventBus:
    """Maps event types to ordered lists of async handlers."""

    def __init__(self) -> None:
        self._handlers: dict[type, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Callable[[E], Awaitable[None]]) -> None:
        self._handlers[event_type].append(handler)
        logger.debug(
            "Event handler subscribed",
            event_type=event_type.__name__,
            handler=getattr(handler, "__qualname__", repr(handler)),
        )

    def handlers_for(self, event_type: type) -> list[EventHandler]:
        return list(self._handlers.get(event_type, ()))

    async def publish(self, event: Any) -> None:
        """Deliver ``event`` to every handler of its exact type, in order.

        Raises:
            Whatever the first failing handler raises; later handlers do not run.
        """
        event_type = type(event)
        handlers = self.handlers_for(event_type)
        logger.debug("Publishing event", event_type=event_type.__name__, handlers=len(handlers))
        for handler in handlers:
            await handler(event)
