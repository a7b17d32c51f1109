"""In-process publisher for settlement events.

Handlers run synchronously in the publishing thread, after the state
change they describe has been committed. A failing handler is logged and
reported back to the publisher; it never aborts the settlement step or
starves the handlers registered after it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, TypeVar

from blockwage.settlement.events.types import DomainEvent, EventCategory

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=DomainEvent)

EventHandler = Callable[[DomainEvent], None]


@dataclass(frozen=True)
class Subscription:
    """A handler plus the events it wants. Empty filters match everything."""

    handler: EventHandler
    event_types: frozenset[str] = frozenset()
    categories: frozenset[EventCategory] = frozenset()

    def matches(self, event: DomainEvent) -> bool:
        if self.event_types and event.event_type not in self.event_types:
            return False
        if self.categories and event.category not in self.categories:
            return False
        return True


def _as_set(value: Any) -> Iterable[Any]:
    return value if isinstance(value, (list, tuple, set, frozenset)) else (value,)


def _handler_name(handler: EventHandler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


class EventEmitter:
    """Synchronous event emitter shared by the settlement services.

    Usage:
        emitter = EventEmitter()
        emitter.on(SalaryDue, start_facilitator_payment)
        emitter.on_category(EventCategory.VAULT, audit_vault)

        with emitter.batch() as batch:
            batch.add(deposited)
            batch.add(underfunded)
        # both delivered here, or neither if the block raised
    """

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []
        self._pending: list[DomainEvent] | None = None

    def on(self, event_type: type[T] | list[type[T]], handler: EventHandler) -> None:
        """Subscribe to one event class or a list of them."""
        names = frozenset(t.__name__ for t in _as_set(event_type))
        self._subscriptions.append(Subscription(handler, event_types=names))

    def on_category(
        self, category: EventCategory | list[EventCategory], handler: EventHandler
    ) -> None:
        self._subscriptions.append(
            Subscription(handler, categories=frozenset(_as_set(category)))
        )

    def on_all(self, handler: EventHandler) -> None:
        self._subscriptions.append(Subscription(handler))

    def off(self, handler: EventHandler) -> None:
        """Drop every subscription registered with this exact handler object."""
        self._subscriptions = [s for s in self._subscriptions if s.handler is not handler]

    def subscriber_count(self, event: DomainEvent | None = None) -> int:
        """Number of subscriptions, or of those that would receive ``event``."""
        if event is None:
            return len(self._subscriptions)
        return sum(1 for s in self._subscriptions if s.matches(event))

    def emit(self, event: DomainEvent) -> list[Exception]:
        """Deliver an event, or hold it if a batch is open.

        Returns the exceptions raised by handlers (empty while batching).
        """
        if self._pending is not None:
            self._pending.append(event)
            return []
        return self._deliver(event)

    def _deliver(self, event: DomainEvent) -> list[Exception]:
        errors: list[Exception] = []
        # Snapshot so handlers may subscribe or unsubscribe while running
        for subscription in tuple(self._subscriptions):
            if not subscription.matches(event):
                continue
            try:
                subscription.handler(event)
            except Exception as exc:
                logger.exception(
                    "Handler %s failed for %s (%s)",
                    _handler_name(subscription.handler),
                    event.event_type,
                    event.metadata.event_id,
                )
                errors.append(exc)
        return errors

    def batch(self) -> EventBatch:
        """Hold events until the returned context exits cleanly."""
        return EventBatch(self)


class EventBatch:
    """Collects events and delivers them on a clean exit."""

    def __init__(self, emitter: EventEmitter) -> None:
        self._emitter = emitter
        self._outer: list[DomainEvent] | None = None
        self.errors: list[Exception] = []

    def __enter__(self) -> EventBatch:
        self._outer = self._emitter._pending
        self._emitter._pending = []
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        held = self._emitter._pending or []
        self._emitter._pending = self._outer
        if exc_type is not None:
            logger.debug("Discarding %d batched events after %s", len(held), exc_type.__name__)
            return
        for event in held:
            # A nested batch hands its events to the enclosing one
            self.errors.extend(self._emitter.emit(event))

    def add(self, event: DomainEvent) -> None:
        self._emitter.emit(event)
