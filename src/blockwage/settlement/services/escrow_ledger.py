"""Escrow Ledger - employer-funded payroll vault.

Holds funds per pay period and pays each (employee, period) at most once.

Invariants:
- period balances never go negative
- reserved_total == sum of all period balances
- total_balance >= reserved_total
- a paid flag, once committed, is never cleared except by an operator

Release ordering:
    validate -> set paid flag + deduct balances -> COMMIT
    -> outbound transfer -> event -> best-effort schedule confirmation

Nothing outside the vault sees the payout until the flag is durable, and
no lock is held while the transfer or the schedule call runs.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from blockwage.models import (
    VaultDeposit,
    VaultEmployee,
    VaultPayout,
    VaultPeriodBalance,
    VaultTotals,
    VaultWithdrawal,
)
from blockwage.settlement.cadence import Cadence, parse_cadence
from blockwage.settlement.config import VaultConfig
from blockwage.settlement.errors import (
    AlreadyPaidError,
    EmployeeNotAssignedError,
    FundTransferError,
    InsufficientPeriodFundsError,
    InsufficientUnallocatedError,
    InvalidPeriodError,
    PaymentNotVerifiedError,
    UnauthorizedDepositorError,
    due_error,
)
from blockwage.settlement.events import (
    EventEmitter,
    EventMetadata,
    ExcessWithdrawn,
    FundTransferFailed,
    PaidFlagCleared,
    PaymentRecorded,
    PayrollDeposited,
    PeriodUnderfunded,
    SalaryReleased,
    ScheduleConfirmationFailed,
    ScheduleSyncFailed,
    VaultEmployeeAssigned,
)
from blockwage.settlement.locks import KeyedLock
from blockwage.settlement.proofs import normalize_employee_id, require_positive_uint256
from blockwage.settlement.providers.base import FundTransferProvider
from blockwage.settlement.services.proof_verifier import ProofVerifier
from blockwage.settlement.services.schedule_store import ScheduleStore

logger = logging.getLogger(__name__)

SOURCE_SERVICE = "payroll_vault"


class PayoutMode(str, Enum):
    """RELEASE moves funds out of escrow; RECORD only books an external payment."""

    RELEASE = "release"
    RECORD = "record"


class TransferStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    NOT_APPLICABLE = "not_applicable"


@dataclass(frozen=True)
class VaultBalances:
    """Snapshot of vault totals."""

    total_balance: int
    reserved_total: int

    @property
    def unallocated(self) -> int:
        """Funds not reserved for any period."""
        return self.total_balance - self.reserved_total


@dataclass(frozen=True)
class DepositResult:
    period_id: int
    amount: int
    period_balance: int
    transfer_reference: str | None


@dataclass(frozen=True)
class WithdrawalResult:
    recipient: str
    amount: int
    transfer_reference: str | None


@dataclass(frozen=True)
class VaultAssignResult:
    """Vault mirror update. ``schedule_synced`` is False if the sync failed."""

    employee_id: str
    salary: int
    cadence: Cadence
    schedule_synced: bool


@dataclass(frozen=True)
class PayoutResult:
    """Result of release or record_payment."""

    employee_id: str
    period_id: int
    amount: int
    mode: PayoutMode
    transfer_status: TransferStatus
    transfer_reference: str | None
    schedule_confirmed: bool


@dataclass(frozen=True)
class PayoutRecord:
    """A persisted paid flag."""

    employee_id: str
    period_id: int
    amount: int
    mode: PayoutMode
    transfer_status: TransferStatus
    transfer_reference: str | None
    schedule_confirmed: bool

    @classmethod
    def from_row(cls, row: VaultPayout) -> PayoutRecord:
        return cls(
            employee_id=row.employee_id,
            period_id=row.period_id,
            amount=row.amount,
            mode=PayoutMode(row.mode),
            transfer_status=TransferStatus(row.transfer_status),
            transfer_reference=row.transfer_reference,
            schedule_confirmed=row.schedule_confirmed,
        )


class PayrollVault:
    """Per-period escrow with exactly-once payout.

    Usage:
        vault = PayrollVault(session, schedule=store, verifier=verifier,
                             provider=custody, config=VaultConfig(...))
        vault.deposit(period_id, 3_000_000, depositor=employer)
        vault.assign_employee(employee, 1_000_000, Cadence.MONTHLY)
        vault.release(employee, period_id)
    """

    def __init__(
        self,
        db: Session,
        *,
        schedule: ScheduleStore,
        verifier: ProofVerifier,
        provider: FundTransferProvider,
        config: VaultConfig,
        emitter: EventEmitter | None = None,
        locks: KeyedLock | None = None,
    ):
        self.db = db
        self.schedule = schedule
        self.verifier = verifier
        self.provider = provider
        self.config = config
        self.emitter = emitter or EventEmitter()
        self.locks = locks or KeyedLock()

    # ------------------------------------------------------------------
    # Funding
    # ------------------------------------------------------------------

    def deposit(self, period_id: int, amount: int, *, depositor: str) -> DepositResult:
        """Fund a period from an authorized depositor.

        Funds are collected through the provider before any balance moves;
        a failed collection leaves the vault untouched.

        Raises:
            InvalidAmountError: amount is not a positive uint256
            InvalidPeriodError: period_id is not positive
            UnauthorizedDepositorError: depositor lacks the role
            FundTransferError: the provider could not collect the funds
        """
        require_positive_uint256(amount)
        if period_id <= 0:
            raise InvalidPeriodError(period_id)
        depositor = normalize_employee_id(depositor)
        if not self.config.is_authorized(depositor):
            raise UnauthorizedDepositorError(depositor)

        reference = f"deposit:{period_id}:{uuid.uuid4().hex[:12]}"
        transfer = self.provider.collect(depositor, amount, reference)
        if not transfer.success:
            raise FundTransferError(
                f"Could not collect {amount} from {depositor}: {transfer.message}",
                reference=reference,
            )

        with self.locks.hold("vault"):
            balance_row = self._period_balance_row(period_id, create=True)
            balance_row.balance += amount
            totals = self._totals_row()
            totals.total_balance += amount
            totals.reserved_total += amount
            self.db.add(
                VaultDeposit(
                    period_id=period_id,
                    amount=amount,
                    depositor=depositor,
                    transfer_reference=transfer.reference,
                )
            )
            self.db.commit()
            new_balance = balance_row.balance

        logger.info(
            "Deposited %s for period %s from %s (period balance %s)",
            amount,
            period_id,
            depositor,
            new_balance,
        )
        self.emitter.emit(
            PayrollDeposited(
                metadata=self._metadata(actor_id=depositor, actor_type="employer"),
                period_id=period_id,
                amount=amount,
                depositor=depositor,
                transfer_reference=transfer.reference,
            )
        )
        return DepositResult(period_id, amount, new_balance, transfer.reference)

    def withdraw_unallocated(self, to: str, amount: int) -> WithdrawalResult:
        """Withdraw funds not reserved for any period.

        Raises:
            InsufficientUnallocatedError: amount exceeds total - reserved
            FundTransferError: the outbound transfer failed (funds stay booked out)
        """
        require_positive_uint256(amount)
        to = normalize_employee_id(to)

        with self.locks.hold("vault"):
            totals = self._totals_row()
            available = totals.total_balance - totals.reserved_total
            if amount > available:
                self.db.rollback()
                raise InsufficientUnallocatedError(amount, available)
            totals.total_balance -= amount
            withdrawal = VaultWithdrawal(recipient=to, amount=amount)
            self.db.add(withdrawal)
            self.db.commit()

        reference = f"withdraw:{withdrawal.withdrawal_id}"
        try:
            transfer = self.provider.disburse(to, amount, reference)
        except Exception as exc:
            withdrawal.transfer_status = TransferStatus.FAILED.value
            self.db.commit()
            logger.error("Withdrawal of %s to %s failed: %s", amount, to, exc)
            raise FundTransferError(
                f"Withdrawal of {amount} to {to} failed: {exc}",
                reference=reference,
            ) from exc
        withdrawal.transfer_status = (
            TransferStatus.COMPLETED.value if transfer.success else TransferStatus.FAILED.value
        )
        withdrawal.transfer_reference = transfer.reference
        self.db.commit()

        if not transfer.success:
            logger.error("Withdrawal of %s to %s failed: %s", amount, to, transfer.message)
            raise FundTransferError(
                f"Withdrawal of {amount} to {to} failed: {transfer.message}",
                reference=reference,
            )

        logger.info("Withdrew %s unallocated to %s", amount, to)
        self.emitter.emit(
            ExcessWithdrawn(
                metadata=self._metadata(actor_type="employer"),
                recipient=to,
                amount=amount,
                transfer_reference=transfer.reference,
            )
        )
        return WithdrawalResult(to, amount, transfer.reference)

    def period_balance(self, period_id: int) -> int:
        row = self.db.get(VaultPeriodBalance, period_id)
        return row.balance if row else 0

    def balances(self) -> VaultBalances:
        totals = self.db.get(VaultTotals, self.config.vault_key)
        if totals is None:
            return VaultBalances(0, 0)
        return VaultBalances(totals.total_balance, totals.reserved_total)

    def total_balance(self) -> int:
        return self.balances().total_balance

    def reserved_total(self) -> int:
        return self.balances().reserved_total

    def unallocated_balance(self) -> int:
        return self.balances().unallocated

    # ------------------------------------------------------------------
    # Employees
    # ------------------------------------------------------------------

    def assign_employee(
        self,
        employee_id: str,
        salary: int,
        cadence: Cadence | str | int,
        *,
        initial_last_paid: int = 0,
    ) -> VaultAssignResult:
        """Create or update the vault mirror, then sync the schedule store.

        The schedule sync is best-effort: a failure is logged and published
        as ScheduleSyncFailed but the mirror update stands.
        """
        employee_id = normalize_employee_id(employee_id)
        require_positive_uint256(salary, "salary")
        cadence = parse_cadence(cadence)

        row = self.db.get(VaultEmployee, employee_id)
        if row is None:
            self.db.add(VaultEmployee(employee_id=employee_id, salary=salary, cadence=cadence.value))
        else:
            row.salary = salary
            row.cadence = cadence.value
        self.db.commit()

        synced = True
        try:
            self.schedule.assign(
                employee_id, salary, cadence, initial_last_paid=initial_last_paid
            )
        except Exception as exc:
            synced = False
            self.db.rollback()
            logger.warning("Schedule sync failed for %s: %s", employee_id, exc)
            self.emitter.emit(
                ScheduleSyncFailed(
                    metadata=self._metadata(),
                    employee_id=employee_id,
                    error=str(exc),
                )
            )

        self.emitter.emit(
            VaultEmployeeAssigned(
                metadata=self._metadata(),
                employee_id=employee_id,
                salary=salary,
                cadence=cadence.value,
                schedule_synced=synced,
            )
        )
        return VaultAssignResult(employee_id, salary, cadence, synced)

    def get_employee(self, employee_id: str) -> VaultAssignResult | None:
        row = self.db.get(VaultEmployee, normalize_employee_id(employee_id))
        if row is None:
            return None
        return VaultAssignResult(row.employee_id, row.salary, Cadence(row.cadence), True)

    def on_salary_due(self, employee_id: str, period_id: int, amount: int) -> None:
        """Due-signal callback from the schedule store.

        Flags periods that cannot yet cover the salary so the employer can
        top them up before a proof arrives.
        """
        available = self.period_balance(period_id)
        logger.info(
            "Due notification: %s period %s amount %s (period balance %s)",
            employee_id,
            period_id,
            amount,
            available,
        )
        if available < amount:
            logger.warning(
                "Period %s underfunded for %s: needs %s, holds %s",
                period_id,
                employee_id,
                amount,
                available,
            )
            self.emitter.emit(
                PeriodUnderfunded(
                    metadata=self._metadata(),
                    employee_id=employee_id,
                    period_id=period_id,
                    required=amount,
                    available=available,
                )
            )

    # ------------------------------------------------------------------
    # Payouts
    # ------------------------------------------------------------------

    def is_paid(self, employee_id: str, period_id: int) -> bool:
        key = (normalize_employee_id(employee_id), period_id)
        return self.db.get(VaultPayout, key) is not None

    def get_payout(self, employee_id: str, period_id: int) -> PayoutRecord | None:
        row = self.db.get(VaultPayout, (normalize_employee_id(employee_id), period_id))
        return PayoutRecord.from_row(row) if row else None

    def list_payouts(self) -> list[PayoutRecord]:
        rows = self.db.scalars(select(VaultPayout))
        return sorted(
            (PayoutRecord.from_row(r) for r in rows),
            key=lambda p: (p.period_id, p.employee_id),
        )

    def release(self, employee_id: str, period_id: int) -> PayoutResult:
        """Pay an employee's salary for a verified period out of escrow.

        Raises:
            EmployeeNotAssignedError: No vault mirror
            AlreadyPaidError: Paid flag already set
            NotAssignedError, PeriodMisalignedError,
            PeriodNotLaterThanLastPaidError: Period not payable per schedule
            PaymentNotVerifiedError: No accepted proof for the period
            InsufficientPeriodFundsError: Period balance below salary
            FundTransferError: Transfer failed after the paid flag was committed
        """
        return self._settle(employee_id, period_id, PayoutMode.RELEASE)

    def record_payment(self, employee_id: str, period_id: int) -> PayoutResult:
        """Book a verified, externally settled payment against the period.

        Same checks and paid flag as release, but no funds leave custody:
        the period balance and reserved total drop, total_balance does not.
        """
        return self._settle(employee_id, period_id, PayoutMode.RECORD)

    def _settle(self, employee_id: str, period_id: int, mode: PayoutMode) -> PayoutResult:
        employee_id = normalize_employee_id(employee_id)

        with self.locks.hold("payout", employee_id, period_id):
            salary = self._validate_payout(employee_id, period_id)

            transfer_status = (
                TransferStatus.PENDING if mode is PayoutMode.RELEASE else TransferStatus.NOT_APPLICABLE
            )
            with self.locks.hold("vault"):
                self.db.add(
                    VaultPayout(
                        employee_id=employee_id,
                        period_id=period_id,
                        amount=salary,
                        mode=mode.value,
                        transfer_status=transfer_status.value,
                        schedule_confirmed=False,
                    )
                )
                try:
                    self.db.flush()
                except IntegrityError:
                    # Paid flag set by another process after our check
                    self.db.rollback()
                    raise AlreadyPaidError(employee_id, period_id) from None

                balance_row = self._period_balance_row(period_id)
                if balance_row is None or balance_row.balance < salary:
                    available = balance_row.balance if balance_row else 0
                    self.db.rollback()
                    raise InsufficientPeriodFundsError(period_id, salary, available)
                balance_row.balance -= salary
                totals = self._totals_row()
                totals.reserved_total -= salary
                if mode is PayoutMode.RELEASE:
                    totals.total_balance -= salary
                self.db.commit()

        logger.info(
            "Paid flag set for %s period %s (%s, amount %s)",
            employee_id,
            period_id,
            mode.value,
            salary,
        )

        reference = None
        if mode is PayoutMode.RELEASE:
            reference = self._disburse(employee_id, period_id, salary)
            transfer_status = TransferStatus.COMPLETED
            self.emitter.emit(
                SalaryReleased(
                    metadata=self._metadata(),
                    employee_id=employee_id,
                    period_id=period_id,
                    amount=salary,
                    recipient=employee_id,
                    transfer_reference=reference,
                )
            )
        else:
            self.emitter.emit(
                PaymentRecorded(
                    metadata=self._metadata(),
                    employee_id=employee_id,
                    period_id=period_id,
                    amount=salary,
                )
            )

        confirmed = self.confirm_schedule(employee_id, period_id)

        return PayoutResult(
            employee_id=employee_id,
            period_id=period_id,
            amount=salary,
            mode=mode,
            transfer_status=transfer_status,
            transfer_reference=reference,
            schedule_confirmed=confirmed,
        )

    def _validate_payout(self, employee_id: str, period_id: int) -> int:
        """Run release checks 1-5 in order and return the salary to pay."""
        mirror = self.db.get(VaultEmployee, employee_id)
        if mirror is None:
            raise EmployeeNotAssignedError(employee_id)

        if self.db.get(VaultPayout, (employee_id, period_id)) is not None:
            raise AlreadyPaidError(employee_id, period_id)

        due, reason = self.schedule.is_settleable(employee_id, period_id)
        if not due:
            raise due_error(reason, employee_id, period_id)

        if not self.verifier.is_verified(employee_id, period_id):
            raise PaymentNotVerifiedError(employee_id, period_id)

        salary = mirror.salary
        available = self.period_balance(period_id)
        if available < salary:
            raise InsufficientPeriodFundsError(period_id, salary, available)
        return salary

    def _disburse(self, employee_id: str, period_id: int, amount: int) -> str | None:
        reference = f"salary:{employee_id}:{period_id}"
        try:
            transfer = self.provider.disburse(employee_id, amount, reference)
        except Exception as exc:
            self._mark_transfer_failed(employee_id, period_id, amount, str(exc))
            raise FundTransferError(
                f"Salary transfer to {employee_id} for period {period_id} failed: {exc}",
                reference=reference,
            ) from exc

        if not transfer.success:
            self._mark_transfer_failed(employee_id, period_id, amount, transfer.message)
            raise FundTransferError(
                f"Salary transfer to {employee_id} for period {period_id} failed: "
                f"{transfer.message}",
                reference=reference,
            )

        row = self.db.get(VaultPayout, (employee_id, period_id))
        row.transfer_status = TransferStatus.COMPLETED.value
        row.transfer_reference = transfer.reference
        self.db.commit()
        return transfer.reference

    def _mark_transfer_failed(
        self, employee_id: str, period_id: int, amount: int, error: str
    ) -> None:
        # The paid flag stays set: at most one payout, never two
        row = self.db.get(VaultPayout, (employee_id, period_id))
        row.transfer_status = TransferStatus.FAILED.value
        self.db.commit()
        logger.error(
            "Transfer failed after paid flag for %s period %s: %s",
            employee_id,
            period_id,
            error,
        )
        self.emitter.emit(
            FundTransferFailed(
                metadata=self._metadata(),
                employee_id=employee_id,
                period_id=period_id,
                amount=amount,
                error=error,
            )
        )

    def confirm_schedule(self, employee_id: str, period_id: int) -> bool:
        """Best-effort confirm_paid on the schedule, using period_id as timestamp.

        Returns True on success. Failures leave the two stores drifted; they
        are logged and published for reconciliation.
        """
        employee_id = normalize_employee_id(employee_id)
        try:
            self.schedule.confirm_paid(employee_id, period_id, period_id)
        except Exception as exc:
            self.db.rollback()
            logger.warning(
                "Schedule confirmation failed for %s period %s: %s",
                employee_id,
                period_id,
                exc,
            )
            self.emitter.emit(
                ScheduleConfirmationFailed(
                    metadata=self._metadata(),
                    employee_id=employee_id,
                    period_id=period_id,
                    error=str(exc),
                )
            )
            return False

        row = self.db.get(VaultPayout, (employee_id, period_id))
        if row is not None:
            row.schedule_confirmed = True
            self.db.commit()
        return True

    # ------------------------------------------------------------------
    # Operator escape hatches
    # ------------------------------------------------------------------

    def admin_clear_paid(self, employee_id: str, period_id: int) -> bool:
        """Clear a paid flag. Funds are NOT restored to the period."""
        employee_id = normalize_employee_id(employee_id)
        result = self.db.execute(
            delete(VaultPayout).where(
                VaultPayout.employee_id == employee_id,
                VaultPayout.period_id == period_id,
            )
        )
        self.db.commit()
        if not result.rowcount:
            return False

        logger.warning("Paid flag cleared for %s period %s", employee_id, period_id)
        self.emitter.emit(
            PaidFlagCleared(
                metadata=self._metadata(actor_type="admin"),
                employee_id=employee_id,
                period_id=period_id,
            )
        )
        return True

    # ------------------------------------------------------------------

    def _period_balance_row(
        self, period_id: int, *, create: bool = False
    ) -> VaultPeriodBalance | None:
        row = self.db.get(VaultPeriodBalance, period_id, with_for_update=True)
        if row is None and create:
            row = VaultPeriodBalance(period_id=period_id, balance=0)
            self.db.add(row)
        return row

    def _totals_row(self) -> VaultTotals:
        row = self.db.get(VaultTotals, self.config.vault_key, with_for_update=True)
        if row is None:
            row = VaultTotals(vault_key=self.config.vault_key, total_balance=0, reserved_total=0)
            self.db.add(row)
        return row

    def _metadata(self, actor_id: str | None = None, actor_type: str = "system") -> EventMetadata:
        return EventMetadata.create(
            actor_id=actor_id,
            actor_type=actor_type,
            source_service=SOURCE_SERVICE,
        )
