"""Unit tests for latchkey/auth/events.py — synchronous typed event bus."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from latchkey.auth.events import AccountRegistered, EventBus


@dataclass(frozen=True)
class _OtherEvent:
    value: int


async def test_publish_calls_handlers_in_subscription_order() -> None:
    bus = EventBus()
    calls: list[str] = []

    async def first(event: AccountRegistered) -> None:
        calls.append(f"first:{event.owner_id}")

    async def second(event: AccountRegistered) -> None:
        calls.append(f"second:{event.owner_id}")

    bus.subscribe(AccountRegistered, first)
    bus.subscribe(AccountRegistered, second)

    await bus.publish(AccountRegistered(owner_id="U1"))

    assert calls == ["first:U1", "second:U1"]


async def test_publish_dispatches_by_exact_type() -> None:
    bus = EventBus()
    seen: list[object] = []

    async def handler(event) -> None:
        seen.append(event)

    bus.subscribe(_OtherEvent, handler)
    await bus.publish(AccountRegistered(owner_id="U1"))
    assert seen == []

    await bus.publish(_OtherEvent(value=3))
    assert seen == [_OtherEvent(value=3)]


async def test_publish_without_subscribers_is_noop() -> None:
    await EventBus().publish(AccountRegistered(owner_id="U1"))


async def test_handler_failure_propagates_and_stops_delivery() -> None:
    """A failing subscriber surfaces to the publisher; later ones do not run."""
    bus = EventBus()
    calls: list[str] = []

    async def failing(event: AccountRegistered) -> None:
        raise RuntimeError("issuance failed")

    async def after(event: AccountRegistered) -> None:
        calls.append("after")

    bus.subscribe(AccountRegistered, failing)
    bus.subscribe(AccountRegistered, after)

    with pytest.raises(RuntimeError, match="issuance failed"):
        await bus.publish(AccountRegistered(owner_id="U1"))
    assert calls == []


async def test_handlers_for_returns_copy() -> None:
    bus = EventBus()

    async def handler(event) -> None:
        pass

    bus.subscribe(AccountRegistered, handler)
    handlers = bus.handlers_for(AccountRegistered)
    handlers.clear()
    assert len(bus.handlers_for(AccountRegistered)) == 1
