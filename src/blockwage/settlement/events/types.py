"""Domain event types for settlement operations.

All events are:
- Immutable (frozen dataclasses)
- Typed with explicit payloads
- Traceable via metadata
- Serializable for persistence and replay

Due signals, payouts and best-effort failures are all published as
events so subscribers (scheduler, alerting, audit) never have to poll.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    SCHEDULE = "schedule"
    VAULT = "vault"
    PROOF = "proof"
    SETTLEMENT = "settlement"
    RECONCILIATION = "reconciliation"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    correlation_id: UUID  # Links related events
    causation_id: UUID | None  # Event that caused this one
    actor_id: str | None  # Address or operator that triggered
    actor_type: str  # 'system', 'employer', 'facilitator', 'admin', 'scheduler'
    source_service: str  # Component that emitted
    version: int = 1  # Schema version for evolution

    @classmethod
    def create(
        cls,
        correlation_id: UUID | None = None,
        causation_id: UUID | None = None,
        actor_id: str | None = None,
        actor_type: str = "system",
        source_service: str = "settlement",
    ) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=datetime.now(timezone.utc),
            correlation_id=correlation_id or uuid4(),
            causation_id=causation_id,
            actor_id=actor_id,
            actor_type=actor_type,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        """Event category for filtering."""
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        return _serialize_dict(asdict(self))

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), default=str)


def _serialize_dict(obj: Any) -> Any:
    """Recursively serialize objects for JSON compatibility.

    Integers beyond 53 bits lose precision in most JSON consumers, so
    uint256 quantities are rendered as decimal strings.
    """
    if isinstance(obj, dict):
        return {k: _serialize_dict(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_serialize_dict(v) for v in obj]
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, datetime):
        return obj.isoformat()
    elif isinstance(obj, date):
        return obj.isoformat()
    elif isinstance(obj, Enum):
        return obj.value
    elif isinstance(obj, bool):
        return obj
    elif isinstance(obj, int) and abs(obj) > 2**53:
        return str(obj)
    return obj


# =============================================================================
# Schedule Events
# =============================================================================


@dataclass(frozen=True)
class EmployeeAssigned(DomainEvent):
    """A new employee schedule was created."""

    employee_id: str
    salary: int
    cadence: str
    last_paid_timestamp: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.SCHEDULE


@dataclass(frozen=True)
class EmployeeUpdated(DomainEvent):
    """Salary or cadence changed for an existing employee."""

    employee_id: str
    salary: int
    cadence: str
    previous_salary: int
    previous_cadence: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.SCHEDULE


@dataclass(frozen=True)
class EmployeeRemoved(DomainEvent):
    """An employee schedule was deleted. Processed flags are retained."""

    employee_id: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.SCHEDULE


@dataclass(frozen=True)
class SalaryDue(DomainEvent):
    """A period became due; facilitators should start payment."""

    employee_id: str
    amount: int
    asset: str
    period_id: int
    admin_emitted: bool = False

    @property
    def category(self) -> EventCategory:
        return EventCategory.SCHEDULE


@dataclass(frozen=True)
class DueNotificationFailed(DomainEvent):
    """The vault callback for a due signal raised. The processed flag stays."""

    employee_id: str
    period_id: int
    error: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.SCHEDULE


@dataclass(frozen=True)
class PaymentConfirmed(DomainEvent):
    """last_paid_timestamp advanced after a payout."""

    employee_id: str
    period_id: int
    paid_timestamp: int
    previous_last_paid: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.SCHEDULE


@dataclass(frozen=True)
class ProcessedFlagCleared(DomainEvent):
    """An operator cleared a processed flag."""

    employee_id: str
    period_id: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.SCHEDULE


@dataclass(frozen=True)
class ProcessedFlagBackfilled(DomainEvent):
    """A settled period that was never signalled due got its processed flag."""

    employee_id: str
    period_id: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.SCHEDULE


@dataclass(frozen=True)
class LastPaidAdjusted(DomainEvent):
    """An operator overwrote last_paid_timestamp."""

    employee_id: str
    last_paid_timestamp: int
    previous_last_paid: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.SCHEDULE


# =============================================================================
# Vault Events
# =============================================================================


@dataclass(frozen=True)
class PayrollDeposited(DomainEvent):
    """Employer funds were collected into a period balance."""

    period_id: int
    amount: int
    depositor: str
    transfer_reference: str | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.VAULT


@dataclass(frozen=True)
class ExcessWithdrawn(DomainEvent):
    """Unallocated funds left the vault."""

    recipient: str
    amount: int
    transfer_reference: str | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.VAULT


@dataclass(frozen=True)
class VaultEmployeeAssigned(DomainEvent):
    """The vault mirror was created or updated."""

    employee_id: str
    salary: int
    cadence: str
    schedule_synced: bool

    @property
    def category(self) -> EventCategory:
        return EventCategory.VAULT


@dataclass(frozen=True)
class ScheduleSyncFailed(DomainEvent):
    """Mirroring an assignment into the schedule store failed."""

    employee_id: str
    error: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.VAULT


@dataclass(frozen=True)
class PeriodUnderfunded(DomainEvent):
    """A due period does not yet hold enough to cover the salary."""

    employee_id: str
    period_id: int
    required: int
    available: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.VAULT


@dataclass(frozen=True)
class SalaryReleased(DomainEvent):
    """The vault paid an employee out of escrow."""

    employee_id: str
    period_id: int
    amount: int
    recipient: str
    transfer_reference: str | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.VAULT


@dataclass(frozen=True)
class PaymentRecorded(DomainEvent):
    """An externally settled payment was booked against the vault."""

    employee_id: str
    period_id: int
    amount: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.VAULT


@dataclass(frozen=True)
class FundTransferFailed(DomainEvent):
    """An outbound transfer failed after the paid flag was committed."""

    employee_id: str
    period_id: int
    amount: int
    error: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.VAULT


@dataclass(frozen=True)
class ScheduleConfirmationFailed(DomainEvent):
    """confirm_paid after a payout failed; the two stores have drifted."""

    employee_id: str
    period_id: int
    error: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.VAULT


@dataclass(frozen=True)
class PaidFlagCleared(DomainEvent):
    """An operator cleared a paid flag. Funds were not restored."""

    employee_id: str
    period_id: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.VAULT


# =============================================================================
# Proof Events
# =============================================================================


@dataclass(frozen=True)
class PaymentVerified(DomainEvent):
    """A proof was accepted for (employee, period)."""

    employee_id: str
    period_id: int
    amount: int
    proof_hash: str
    submitter: str | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.PROOF


@dataclass(frozen=True)
class ProofConsumed(DomainEvent):
    """A proof id was marked consumed."""

    proof_hash: str
    submitter: str | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.PROOF


# =============================================================================
# Settlement Events
# =============================================================================


@dataclass(frozen=True)
class SettlementCompleted(DomainEvent):
    """The orchestrator verified and settled a period."""

    employee_id: str
    period_id: int
    amount: int
    mode: str
    proof_hash: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.SETTLEMENT


@dataclass(frozen=True)
class SettlementDuplicate(DomainEvent):
    """A settle request arrived for an already paid period."""

    employee_id: str
    period_id: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.SETTLEMENT


# =============================================================================
# Reconciliation Events
# =============================================================================


@dataclass(frozen=True)
class ReconciliationCompleted(DomainEvent):
    """A drift scan between vault payouts and schedules finished."""

    payouts_checked: int
    drift_count: int
    repaired_count: int
    failed_transfer_count: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.RECONCILIATION


EVENT_TYPES: dict[str, type[DomainEvent]] = {
    cls.__name__: cls
    for cls in (
        EmployeeAssigned,
        EmployeeUpdated,
        EmployeeRemoved,
        SalaryDue,
        DueNotificationFailed,
        PaymentConfirmed,
        ProcessedFlagCleared,
        ProcessedFlagBackfilled,
        LastPaidAdjusted,
        PayrollDeposited,
        ExcessWithdrawn,
        VaultEmployeeAssigned,
        ScheduleSyncFailed,
        PeriodUnderfunded,
        SalaryReleased,
        PaymentRecorded,
        FundTransferFailed,
        ScheduleConfirmationFailed,
        PaidFlagCleared,
        PaymentVerified,
        ProofConsumed,
        SettlementCompleted,
        SettlementDuplicate,
        ReconciliationCompleted,
    )
}
