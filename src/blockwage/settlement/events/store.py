"""Event store for persistence and replay.

Persisted due signals let a restarted scheduler rescan what it missed
instead of relying on an in-memory processed set.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterator
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from blockwage.models import SettlementEventRecord
from blockwage.settlement.events.types import DomainEvent, EventCategory


@dataclass
class StoredEvent:
    """A persisted event record."""

    event_id: str
    event_type: str
    category: str
    correlation_id: str
    employee_id: str | None
    timestamp: datetime
    payload: dict[str, Any]
    version: int

    @classmethod
    def from_event(cls, event: DomainEvent) -> StoredEvent:
        """Create stored event from domain event."""
        return cls(
            event_id=str(event.metadata.event_id),
            event_type=event.event_type,
            category=event.category.value,
            correlation_id=str(event.metadata.correlation_id),
            employee_id=getattr(event, "employee_id", None),
            timestamp=event.metadata.timestamp,
            payload=event.to_dict(),
            version=event.metadata.version,
        )

    @classmethod
    def from_record(cls, record: SettlementEventRecord) -> StoredEvent:
        return cls(
            event_id=record.event_id,
            event_type=record.event_type,
            category=record.category,
            correlation_id=record.correlation_id,
            employee_id=record.employee_id,
            timestamp=record.occurred_at,
            payload=record.payload,
            version=record.version,
        )


class EventStore:
    """Synchronous event store backed by SQL.

    Usage:
        store = EventStore(session)
        emitter.on_all(store.handler)

        for stored in store.replay(event_type="SalaryDue", after=cutoff):
            resume(stored)
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def append(self, event: DomainEvent) -> bool:
        """Append event to store.

        Returns True if event was stored, False if duplicate (idempotent).
        """
        stored = StoredEvent.from_event(event)
        if self._session.get(SettlementEventRecord, stored.event_id) is not None:
            return False

        self._session.add(
            SettlementEventRecord(
                event_id=stored.event_id,
                event_type=stored.event_type,
                category=stored.category,
                correlation_id=stored.correlation_id,
                employee_id=stored.employee_id,
                occurred_at=stored.timestamp,
                version=stored.version,
                payload=stored.payload,
            )
        )
        self._session.flush()
        return True

    def append_batch(self, events: list[DomainEvent]) -> int:
        """Append batch of events.

        Returns count of newly stored events (excludes duplicates).
        """
        return sum(1 for event in events if self.append(event))

    def handler(self, event: DomainEvent) -> None:
        """Emitter handler: persist and commit each event as it is published."""
        self.append(event)
        self._session.commit()

    def get_by_id(self, event_id: UUID | str) -> StoredEvent | None:
        record = self._session.get(SettlementEventRecord, str(event_id))
        return StoredEvent.from_record(record) if record else None

    def get_by_correlation(self, correlation_id: UUID | str) -> list[StoredEvent]:
        """Get all events with same correlation ID (related events)."""
        stmt = (
            select(SettlementEventRecord)
            .where(SettlementEventRecord.correlation_id == str(correlation_id))
            .order_by(SettlementEventRecord.occurred_at)
        )
        return [StoredEvent.from_record(r) for r in self._session.scalars(stmt)]

    def get_by_employee(self, employee_id: str) -> list[StoredEvent]:
        stmt = (
            select(SettlementEventRecord)
            .where(SettlementEventRecord.employee_id == employee_id)
            .order_by(SettlementEventRecord.occurred_at)
        )
        return [StoredEvent.from_record(r) for r in self._session.scalars(stmt)]

    def replay(
        self,
        *,
        event_type: str | None = None,
        category: EventCategory | None = None,
        after: datetime | None = None,
        limit: int | None = None,
    ) -> Iterator[StoredEvent]:
        """Replay events in emission order, optionally filtered."""
        stmt = select(SettlementEventRecord)
        if event_type:
            stmt = stmt.where(SettlementEventRecord.event_type == event_type)
        if category:
            stmt = stmt.where(SettlementEventRecord.category == category.value)
        if after:
            stmt = stmt.where(SettlementEventRecord.occurred_at > after)
        stmt = stmt.order_by(SettlementEventRecord.occurred_at)
        if limit:
            stmt = stmt.limit(limit)

        for record in self._session.scalars(stmt):
            yield StoredEvent.from_record(record)
