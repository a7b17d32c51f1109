"""Settlement error taxonomy.

Every error carries a stable machine-readable ``code`` plus the fields
needed to act on it. Presentation (user-facing text, HTTP status) is
mapped from the code elsewhere.
"""

from __future__ import annotations

from enum import Enum


class DueReason(str, Enum):
    """Why a (employee, period) pair is not due, in evaluation order."""

    NOT_ASSIGNED = "NOT_ASSIGNED"
    PERIOD_MISALIGNED = "PERIOD_MISALIGNED"
    ALREADY_PROCESSED = "ALREADY_PROCESSED"
    PERIOD_NOT_LATER_THAN_LAST_PAID = "PERIOD_NOT_LATER_THAN_LAST_PAID"


class SettlementError(Exception):
    """Base class for all settlement failures."""

    code = "SETTLEMENT_ERROR"

    def to_dict(self) -> dict[str, object]:
        return {"code": self.code, "message": str(self)}


# --- Validation -------------------------------------------------------------


class InvalidEmployeeIdError(SettlementError, ValueError):
    code = "INVALID_EMPLOYEE_ID"

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid employee id: {value!r}")


class InvalidAmountError(SettlementError, ValueError):
    code = "INVALID_AMOUNT"

    def __init__(self, amount: object, field: str = "amount"):
        self.amount = amount
        self.field = field
        super().__init__(f"{field} must be a positive uint256, got {amount!r}")


class InvalidPeriodError(SettlementError, ValueError):
    code = "INVALID_PERIOD"

    def __init__(self, period_id: object):
        self.period_id = period_id
        super().__init__(f"Invalid period id: {period_id!r}")


# --- Schedule ---------------------------------------------------------------


class ScheduleError(SettlementError):
    """Raised by the schedule store."""

    code = "SCHEDULE_ERROR"
    reason: DueReason | None = None


class NotAssignedError(ScheduleError):
    code = "NOT_ASSIGNED"
    reason = DueReason.NOT_ASSIGNED

    def __init__(self, employee_id: str, period_id: int | None = None):
        self.employee_id = employee_id
        self.period_id = period_id
        super().__init__(f"Employee {employee_id} has no schedule")


class PeriodMisalignedError(ScheduleError):
    code = "PERIOD_MISALIGNED"
    reason = DueReason.PERIOD_MISALIGNED

    def __init__(self, employee_id: str, period_id: int):
        self.employee_id = employee_id
        self.period_id = period_id
        super().__init__(
            f"Period {period_id} is not on a cadence boundary for {employee_id}"
        )


class AlreadyProcessedError(ScheduleError):
    code = "ALREADY_PROCESSED"
    reason = DueReason.ALREADY_PROCESSED

    def __init__(self, employee_id: str, period_id: int):
        self.employee_id = employee_id
        self.period_id = period_id
        super().__init__(f"Period {period_id} already processed for {employee_id}")


class PeriodNotLaterThanLastPaidError(ScheduleError):
    code = "PERIOD_NOT_LATER_THAN_LAST_PAID"
    reason = DueReason.PERIOD_NOT_LATER_THAN_LAST_PAID

    def __init__(self, employee_id: str, period_id: int, last_paid: int | None = None):
        self.employee_id = employee_id
        self.period_id = period_id
        self.last_paid = last_paid
        super().__init__(
            f"Period {period_id} is not after last paid {last_paid} for {employee_id}"
        )


class PeriodNotProcessedError(ScheduleError):
    code = "PERIOD_NOT_PROCESSED"

    def __init__(self, employee_id: str, period_id: int):
        self.employee_id = employee_id
        self.period_id = period_id
        super().__init__(
            f"Period {period_id} was never signalled due for {employee_id}"
        )


class TimestampNotLaterError(ScheduleError):
    code = "TIMESTAMP_NOT_LATER"

    def __init__(self, employee_id: str, paid_timestamp: int, last_paid: int):
        self.employee_id = employee_id
        self.paid_timestamp = paid_timestamp
        self.last_paid = last_paid
        super().__init__(
            f"Paid timestamp {paid_timestamp} does not advance last paid {last_paid}"
        )


class DueNotificationError(ScheduleError):
    """The due callback failed after the processed flag was committed."""

    code = "DUE_NOTIFICATION_FAILED"

    def __init__(self, employee_id: str, period_id: int, cause: Exception):
        self.employee_id = employee_id
        self.period_id = period_id
        self.cause = cause
        super().__init__(
            f"Due notification for {employee_id} period {period_id} failed: {cause}"
        )


_DUE_REASON_ERRORS: dict[DueReason, type[ScheduleError]] = {
    DueReason.NOT_ASSIGNED: NotAssignedError,
    DueReason.PERIOD_MISALIGNED: PeriodMisalignedError,
    DueReason.ALREADY_PROCESSED: AlreadyProcessedError,
    DueReason.PERIOD_NOT_LATER_THAN_LAST_PAID: PeriodNotLaterThanLastPaidError,
}


def due_error(reason: DueReason, employee_id: str, period_id: int) -> ScheduleError:
    """Build the typed error for a failed due check."""
    return _DUE_REASON_ERRORS[reason](employee_id, period_id)


# --- Vault ------------------------------------------------------------------


class VaultError(SettlementError):
    """Raised by the escrow vault."""

    code = "VAULT_ERROR"


class EmployeeNotAssignedError(VaultError):
    code = "EMPLOYEE_NOT_ASSIGNED"

    def __init__(self, employee_id: str):
        self.employee_id = employee_id
        super().__init__(f"Employee {employee_id} is not assigned in the vault")


class AlreadyPaidError(VaultError):
    code = "ALREADY_PAID"

    def __init__(self, employee_id: str, period_id: int):
        self.employee_id = employee_id
        self.period_id = period_id
        super().__init__(f"Period {period_id} already paid to {employee_id}")


class PaymentNotVerifiedError(VaultError):
    code = "PAYMENT_NOT_VERIFIED"

    def __init__(self, employee_id: str, period_id: int):
        self.employee_id = employee_id
        self.period_id = period_id
        super().__init__(
            f"No verified payment proof for {employee_id} period {period_id}"
        )


class InsufficientPeriodFundsError(VaultError):
    code = "INSUFFICIENT_PERIOD_FUNDS"

    def __init__(self, period_id: int, required: int, available: int):
        self.period_id = period_id
        self.required = required
        self.available = available
        super().__init__(
            f"Period {period_id} holds {available}, needs {required}"
        )


class InsufficientUnallocatedError(VaultError):
    code = "INSUFFICIENT_UNALLOCATED"

    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Requested {requested} but only {available} is unallocated"
        )


class UnauthorizedDepositorError(VaultError):
    code = "UNAUTHORIZED_DEPOSITOR"

    def __init__(self, depositor: str):
        self.depositor = depositor
        super().__init__(f"{depositor} is not an authorized depositor")


class FundTransferError(VaultError):
    code = "FUND_TRANSFER_FAILED"

    def __init__(self, message: str, *, reference: str | None = None):
        self.reference = reference
        super().__init__(message)


# --- Proofs -----------------------------------------------------------------


class ProofError(SettlementError):
    """Raised by the proof verifier."""

    code = "PROOF_ERROR"


class MalformedProofError(ProofError):
    code = "MALFORMED_PROOF"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Malformed proof: {detail}")


class ProofAlreadyConsumedError(ProofError):
    code = "PROOF_ALREADY_CONSUMED"

    def __init__(self, proof_hash: str):
        self.proof_hash = proof_hash
        super().__init__(f"Proof {proof_hash} has already been consumed")


class ProofMismatchError(ProofError):
    code = "PROOF_MISMATCH"

    def __init__(
        self,
        *,
        expected_employee: str,
        expected_period: int,
        proof_employee: str,
        proof_period: int,
    ):
        self.expected_employee = expected_employee
        self.expected_period = expected_period
        self.proof_employee = proof_employee
        self.proof_period = proof_period
        super().__init__(
            f"Proof is for {proof_employee} period {proof_period}, "
            f"not {expected_employee} period {expected_period}"
        )


class AttestationFailedError(ProofError):
    code = "ATTESTATION_FAILED"

    def __init__(self, proof_hash: str):
        self.proof_hash = proof_hash
        super().__init__(f"Proof {proof_hash} failed attestation")
