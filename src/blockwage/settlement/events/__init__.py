"""Settlement domain events.

This package provides:
- Typed domain events for schedule, vault, proof and settlement operations
- Event emitter for publishing events
- Event store for persistence and replay
"""

from blockwage.settlement.events.emitter import EventBatch, EventEmitter, EventHandler
from blockwage.settlement.events.store import EventStore, StoredEvent
from blockwage.settlement.events.types import (
    EVENT_TYPES,
    DomainEvent,
    DueNotificationFailed,
    EmployeeAssigned,
    EmployeeRemoved,
    EmployeeUpdated,
    EventCategory,
    EventMetadata,
    ExcessWithdrawn,
    FundTransferFailed,
    LastPaidAdjusted,
    PaidFlagCleared,
    PaymentConfirmed,
    PaymentRecorded,
    PaymentVerified,
    PayrollDeposited,
    PeriodUnderfunded,
    ProcessedFlagCleared,
    ProcessedFlagBackfilled,
    ProofConsumed,
    ReconciliationCompleted,
    SalaryDue,
    SalaryReleased,
    ScheduleConfirmationFailed,
    ScheduleSyncFailed,
    SettlementCompleted,
    SettlementDuplicate,
    VaultEmployeeAssigned,
)

__all__ = [
    "EventEmitter",
    "EventBatch",
    "EventHandler",
    "EventStore",
    "StoredEvent",
    "EVENT_TYPES",
    "DomainEvent",
    "EventCategory",
    "EventMetadata",
    "EmployeeAssigned",
    "EmployeeUpdated",
    "EmployeeRemoved",
    "SalaryDue",
    "DueNotificationFailed",
    "PaymentConfirmed",
    "ProcessedFlagCleared",
    "ProcessedFlagBackfilled",
    "LastPaidAdjusted",
    "PayrollDeposited",
    "ExcessWithdrawn",
    "VaultEmployeeAssigned",
    "ScheduleSyncFailed",
    "PeriodUnderfunded",
    "SalaryReleased",
    "PaymentRecorded",
    "FundTransferFailed",
    "ScheduleConfirmationFailed",
    "PaidFlagCleared",
    "PaymentVerified",
    "ProofConsumed",
    "SettlementCompleted",
    "SettlementDuplicate",
    "ReconciliationCompleted",
]
