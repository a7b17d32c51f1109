"""Schedule Store - per-employee cadence validation and due signalling.

Owns employee schedules and processed flags. A period becomes "due" at
most once: trigger_due commits the processed flag before anything is
published, so a retry after a crash can never emit a second signal.

Due-ness checks run in a fixed order and report the first failure:
    1. employee exists
    2. period aligned to the cadence
    3. period not already processed
    4. period later than the last confirmed payment
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, NamedTuple, Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from blockwage.models import EmployeeSchedule, ProcessedPeriod
from blockwage.settlement import cadence as cadence_engine
from blockwage.settlement.cadence import Cadence, parse_cadence
from blockwage.settlement.errors import (
    AlreadyProcessedError,
    DueNotificationError,
    DueReason,
    InvalidPeriodError,
    NotAssignedError,
    PeriodNotProcessedError,
    TimestampNotLaterError,
    due_error,
)
from blockwage.settlement.events import (
    DueNotificationFailed,
    EmployeeAssigned,
    EmployeeRemoved,
    EmployeeUpdated,
    EventEmitter,
    EventMetadata,
    LastPaidAdjusted,
    PaymentConfirmed,
    ProcessedFlagBackfilled,
    ProcessedFlagCleared,
    SalaryDue,
)
from blockwage.settlement.locks import KeyedLock
from blockwage.settlement.proofs import normalize_employee_id, require_positive_uint256

logger = logging.getLogger(__name__)

SOURCE_SERVICE = "schedule_store"


class DueNotificationHandler(Protocol):
    """Receives due signals synchronously after the processed flag is set."""

    def on_salary_due(self, employee_id: str, period_id: int, amount: int) -> None:
        ...


@dataclass(frozen=True)
class EmployeeRecord:
    """Snapshot of an employee schedule."""

    employee_id: str
    salary: int
    cadence: Cadence
    last_paid_timestamp: int

    @classmethod
    def from_row(cls, row: EmployeeSchedule) -> EmployeeRecord:
        return cls(
            employee_id=row.employee_id,
            salary=row.salary,
            cadence=Cadence(row.cadence),
            last_paid_timestamp=row.last_paid_timestamp,
        )

    @property
    def never_paid(self) -> bool:
        return self.last_paid_timestamp == 0


class DueCheck(NamedTuple):
    """Outcome of a due-ness check. Unpacks as ``(due, reason)``."""

    due: bool
    reason: DueReason | None = None


@dataclass(frozen=True)
class DueSignal:
    """A due signal that was (or would have been) published."""

    employee_id: str
    period_id: int
    amount: int
    asset: str


class ScheduleStore:
    """Employee schedules, processed flags and due signals.

    Usage:
        store = ScheduleStore(session, asset="USDC", emitter=emitter)
        store.assign("0xabc...", 1_000_000, Cadence.MONTHLY)
        due, reason = store.is_due("0xabc...", period_id)
        if due:
            store.trigger_due("0xabc...", period_id)
    """

    def __init__(
        self,
        db: Session,
        *,
        asset: str,
        emitter: EventEmitter | None = None,
        locks: KeyedLock | None = None,
        clock: Callable[[], int] | None = None,
    ):
        self.db = db
        self.asset = asset
        self.emitter = emitter or EventEmitter()
        self.locks = locks or KeyedLock()
        self.clock = clock or (lambda: int(time.time()))
        self._vault: DueNotificationHandler | None = None

    def set_payroll_vault(self, vault: DueNotificationHandler | None) -> None:
        """Register the component notified on every due signal."""
        self._vault = vault

    # ------------------------------------------------------------------
    # Employee records
    # ------------------------------------------------------------------

    def assign(
        self,
        employee_id: str,
        salary: int,
        cadence: Cadence | str | int,
        *,
        initial_last_paid: int = 0,
    ) -> EmployeeRecord:
        """Create or update an employee schedule.

        Updating changes salary and cadence only; last_paid_timestamp is
        kept so history is not rewritten.

        Args:
            employee_id: 20-byte hex address
            salary: Positive amount paid per period
            cadence: Pay cadence
            initial_last_paid: last_paid_timestamp for new records (0 = never paid)

        Returns:
            The stored record
        """
        employee_id = normalize_employee_id(employee_id)
        require_positive_uint256(salary, "salary")
        cadence = parse_cadence(cadence)
        if initial_last_paid < 0:
            raise InvalidPeriodError(initial_last_paid)

        row = self.db.get(EmployeeSchedule, employee_id)
        if row is None:
            row = EmployeeSchedule(
                employee_id=employee_id,
                salary=salary,
                cadence=cadence.value,
                last_paid_timestamp=initial_last_paid,
            )
            self.db.add(row)
            self.db.commit()
            logger.info(
                "Assigned %s: salary=%s cadence=%s", employee_id, salary, cadence.value
            )
            self._emit(
                EmployeeAssigned(
                    metadata=self._metadata(),
                    employee_id=employee_id,
                    salary=salary,
                    cadence=cadence.value,
                    last_paid_timestamp=initial_last_paid,
                )
            )
        else:
            previous_salary, previous_cadence = row.salary, row.cadence
            row.salary = salary
            row.cadence = cadence.value
            self.db.commit()
            logger.info(
                "Updated %s: salary %s -> %s, cadence %s -> %s",
                employee_id,
                previous_salary,
                salary,
                previous_cadence,
                cadence.value,
            )
            self._emit(
                EmployeeUpdated(
                    metadata=self._metadata(),
                    employee_id=employee_id,
                    salary=salary,
                    cadence=cadence.value,
                    previous_salary=previous_salary,
                    previous_cadence=previous_cadence,
                )
            )

        return EmployeeRecord.from_row(row)

    def remove(self, employee_id: str) -> None:
        """Delete an employee schedule.

        Processed flags are intentionally left behind; re-assigning the
        same employee will still see earlier periods as processed.
        """
        employee_id = normalize_employee_id(employee_id)
        row = self.db.get(EmployeeSchedule, employee_id)
        if row is None:
            raise NotAssignedError(employee_id)

        self.db.delete(row)
        self.db.commit()
        logger.info("Removed schedule for %s", employee_id)
        self._emit(EmployeeRemoved(metadata=self._metadata(), employee_id=employee_id))

    def get_employee(self, employee_id: str) -> EmployeeRecord | None:
        row = self.db.get(EmployeeSchedule, normalize_employee_id(employee_id))
        return EmployeeRecord.from_row(row) if row else None

    def list_employees(self) -> list[EmployeeRecord]:
        rows = self.db.scalars(select(EmployeeSchedule).order_by(EmployeeSchedule.employee_id))
        return [EmployeeRecord.from_row(r) for r in rows]

    def next_expected_period(self, employee_id: str) -> int:
        """Next period boundary the employee should be paid for."""
        employee_id = normalize_employee_id(employee_id)
        record = self.get_employee(employee_id)
        if record is None:
            raise NotAssignedError(employee_id)
        return cadence_engine.next_aligned_period(
            record.cadence, record.last_paid_timestamp, self.clock()
        )

    # ------------------------------------------------------------------
    # Due-ness
    # ------------------------------------------------------------------

    def is_processed(self, employee_id: str, period_id: int) -> bool:
        return (
            self.db.get(ProcessedPeriod, (normalize_employee_id(employee_id), period_id))
            is not None
        )

    def is_due(self, employee_id: str, period_id: int) -> DueCheck:
        """Check whether a due signal may be emitted for (employee, period)."""
        return self._evaluate(normalize_employee_id(employee_id), period_id, check_processed=True)

    def is_settleable(self, employee_id: str, period_id: int) -> DueCheck:
        """Like is_due, but a period that was already signalled stays payable.

        The vault settles periods after their due signal went out, so the
        processed check must not block it. The other checks still apply in
        the same order.
        """
        return self._evaluate(normalize_employee_id(employee_id), period_id, check_processed=False)

    def _evaluate(self, employee_id: str, period_id: int, *, check_processed: bool) -> DueCheck:
        row = self.db.get(EmployeeSchedule, employee_id)
        if row is None:
            return DueCheck(False, DueReason.NOT_ASSIGNED)
        if not cadence_engine.is_aligned(Cadence(row.cadence), period_id):
            return DueCheck(False, DueReason.PERIOD_MISALIGNED)
        if check_processed and self.db.get(ProcessedPeriod, (employee_id, period_id)) is not None:
            return DueCheck(False, DueReason.ALREADY_PROCESSED)
        if period_id <= row.last_paid_timestamp:
            return DueCheck(False, DueReason.PERIOD_NOT_LATER_THAN_LAST_PAID)
        return DueCheck(True)

    def trigger_due(self, employee_id: str, period_id: int) -> DueSignal:
        """Mark a period processed and publish its due signal.

        The processed flag is committed first, then SalaryDue is emitted,
        then the registered vault is notified. If the vault callback
        raises, the flag stays set and DueNotificationError is raised;
        use admin_clear_processed to re-run the period.

        Raises:
            NotAssignedError, PeriodMisalignedError, AlreadyProcessedError,
            PeriodNotLaterThanLastPaidError: First failing due check
            DueNotificationError: Vault callback failed
        """
        employee_id = normalize_employee_id(employee_id)

        with self.locks.hold("due", employee_id, period_id):
            check = self._evaluate(employee_id, period_id, check_processed=True)
            if not check.due:
                raise due_error(check.reason, employee_id, period_id)

            salary = self.db.get(EmployeeSchedule, employee_id).salary
            self.db.add(ProcessedPeriod(employee_id=employee_id, period_id=period_id))
            try:
                self.db.commit()
            except IntegrityError:
                # Another process set the flag between our check and insert
                self.db.rollback()
                raise AlreadyProcessedError(employee_id, period_id) from None

        signal = DueSignal(employee_id, period_id, salary, self.asset)
        logger.info("Salary due: %s period %s amount %s", employee_id, period_id, salary)
        self._publish_due(signal)

        if self._vault is not None:
            try:
                self._vault.on_salary_due(employee_id, period_id, salary)
            except Exception as exc:
                logger.warning(
                    "Due notification failed for %s period %s: %s",
                    employee_id,
                    period_id,
                    exc,
                )
                self._emit(
                    DueNotificationFailed(
                        metadata=self._metadata(),
                        employee_id=employee_id,
                        period_id=period_id,
                        error=str(exc),
                    )
                )
                raise DueNotificationError(employee_id, period_id, exc) from exc

        return signal

    # ------------------------------------------------------------------
    # Payment confirmation
    # ------------------------------------------------------------------

    def confirm_paid(self, employee_id: str, period_id: int, paid_timestamp: int) -> None:
        """Advance last_paid_timestamp after a payout.

        Raises:
            NotAssignedError: No schedule for the employee
            PeriodNotProcessedError: The period was never signalled due
            TimestampNotLaterError: paid_timestamp does not advance last paid
        """
        employee_id = normalize_employee_id(employee_id)

        with self.locks.hold("schedule", employee_id):
            row = self.db.get(EmployeeSchedule, employee_id, with_for_update=True)
            if row is None:
                raise NotAssignedError(employee_id, period_id)
            if self.db.get(ProcessedPeriod, (employee_id, period_id)) is None:
                raise PeriodNotProcessedError(employee_id, period_id)
            previous = row.last_paid_timestamp
            if paid_timestamp <= previous:
                raise TimestampNotLaterError(employee_id, paid_timestamp, previous)

            row.last_paid_timestamp = paid_timestamp
            self.db.commit()

        logger.info(
            "Confirmed payment for %s period %s (last paid %s -> %s)",
            employee_id,
            period_id,
            previous,
            paid_timestamp,
        )
        self._emit(
            PaymentConfirmed(
                metadata=self._metadata(),
                employee_id=employee_id,
                period_id=period_id,
                paid_timestamp=paid_timestamp,
                previous_last_paid=previous,
            )
        )

    # ------------------------------------------------------------------
    # Operator escape hatches
    # ------------------------------------------------------------------

    def admin_clear_processed(self, employee_id: str, period_id: int) -> bool:
        """Clear a processed flag. Returns False if none was set."""
        employee_id = normalize_employee_id(employee_id)
        result = self.db.execute(
            delete(ProcessedPeriod).where(
                ProcessedPeriod.employee_id == employee_id,
                ProcessedPeriod.period_id == period_id,
            )
        )
        self.db.commit()
        if not result.rowcount:
            return False

        logger.warning("Processed flag cleared for %s period %s", employee_id, period_id)
        self._emit(
            ProcessedFlagCleared(
                metadata=self._metadata(actor_type="admin"),
                employee_id=employee_id,
                period_id=period_id,
            )
        )
        return True

    def backfill_processed(self, employee_id: str, period_id: int) -> bool:
        """Set the processed flag for a period the vault already paid.

        Settlement does not require a due signal, so a payout can exist for
        a period that was never processed; confirm_paid refuses such a
        period. No due signal is published and the vault is not notified.
        Returns False if the flag was already set.

        Raises:
            NotAssignedError, PeriodMisalignedError: Not a schedulable period
        """
        employee_id = normalize_employee_id(employee_id)

        with self.locks.hold("due", employee_id, period_id):
            row = self.db.get(EmployeeSchedule, employee_id)
            if row is None:
                raise NotAssignedError(employee_id, period_id)
            if not cadence_engine.is_aligned(Cadence(row.cadence), period_id):
                raise due_error(DueReason.PERIOD_MISALIGNED, employee_id, period_id)
            if self.db.get(ProcessedPeriod, (employee_id, period_id)) is not None:
                return False

            self.db.add(ProcessedPeriod(employee_id=employee_id, period_id=period_id))
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                return False

        logger.warning("Processed flag backfilled for %s period %s", employee_id, period_id)
        self._emit(
            ProcessedFlagBackfilled(
                metadata=self._metadata(),
                employee_id=employee_id,
                period_id=period_id,
            )
        )
        return True

    def admin_emit_due_signal(self, employee_id: str, period_id: int) -> DueSignal:
        """Re-publish a due signal without touching flags or the vault."""
        employee_id = normalize_employee_id(employee_id)
        record = self.get_employee(employee_id)
        if record is None:
            raise NotAssignedError(employee_id, period_id)

        signal = DueSignal(employee_id, period_id, record.salary, self.asset)
        logger.warning("Admin due signal for %s period %s", employee_id, period_id)
        self._publish_due(signal, admin_emitted=True)
        return signal

    def admin_set_last_paid(self, employee_id: str, last_paid_timestamp: int) -> None:
        """Overwrite last_paid_timestamp, bypassing the monotonic check."""
        employee_id = normalize_employee_id(employee_id)
        if last_paid_timestamp < 0:
            raise InvalidPeriodError(last_paid_timestamp)
        row = self.db.get(EmployeeSchedule, employee_id)
        if row is None:
            raise NotAssignedError(employee_id)

        previous = row.last_paid_timestamp
        row.last_paid_timestamp = last_paid_timestamp
        self.db.commit()
        logger.warning(
            "last_paid_timestamp for %s set %s -> %s", employee_id, previous, last_paid_timestamp
        )
        self._emit(
            LastPaidAdjusted(
                metadata=self._metadata(actor_type="admin"),
                employee_id=employee_id,
                last_paid_timestamp=last_paid_timestamp,
                previous_last_paid=previous,
            )
        )

    # ------------------------------------------------------------------

    def _publish_due(self, signal: DueSignal, *, admin_emitted: bool = False) -> None:
        self._emit(
            SalaryDue(
                metadata=self._metadata(actor_type="admin" if admin_emitted else "scheduler"),
                employee_id=signal.employee_id,
                amount=signal.amount,
                asset=signal.asset,
                period_id=signal.period_id,
                admin_emitted=admin_emitted,
            )
        )

    def _metadata(self, actor_type: str = "system") -> EventMetadata:
        return EventMetadata.create(actor_type=actor_type, source_service=SOURCE_SERVICE)

    def _emit(self, event) -> None:
        self.emitter.emit(event)
