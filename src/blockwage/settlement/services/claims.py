"""Claim projection - what an employee is owed right now.

Answers "pay me" requests with either a payment-required body for the
facilitator (recipient, amount, asset, period) or the reason nothing is
payable. Also maps error codes to the text shown to employees.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from blockwage.settlement.cadence import Cadence, duration_seconds
from blockwage.settlement.errors import SettlementError
from blockwage.settlement.proofs import normalize_employee_id
from blockwage.settlement.services.escrow_ledger import PayrollVault
from blockwage.settlement.services.schedule_store import ScheduleStore

USER_MESSAGES: dict[str, str] = {
    "NOT_ASSIGNED": "no salary configured",
    "EMPLOYEE_NOT_ASSIGNED": "no salary configured",
    "PERIOD_MISALIGNED": "not currently due",
    "ALREADY_PROCESSED": "not currently due",
    "PERIOD_NOT_LATER_THAN_LAST_PAID": "not currently due",
    "ALREADY_PAID": "already paid",
    "PAYMENT_NOT_VERIFIED": "payment not yet verified",
    "INSUFFICIENT_PERIOD_FUNDS": "employer has not funded this period yet",
    "PROOF_ALREADY_CONSUMED": "this payment proof was already used",
    "MALFORMED_PROOF": "payment proof could not be read",
    "PROOF_MISMATCH": "payment proof is for a different employee or period",
    "ATTESTATION_FAILED": "payment proof could not be verified",
    "FUND_TRANSFER_FAILED": "payout transfer failed; support has been notified",
}


def describe_error(exc: SettlementError) -> str:
    """Employee-facing text for a settlement error."""
    return USER_MESSAGES.get(exc.code, str(exc))


class ClaimOutcome(str, Enum):
    PAYMENT_REQUIRED = "payment_required"
    NO_SALARY = "no_salary"
    ALREADY_PAID = "already_paid"
    NOT_DUE = "not_due"
    UNFUNDED = "unfunded"


@dataclass(frozen=True)
class PaymentRequired:
    """What the facilitator must pay to settle the period."""

    to: str
    amount: int
    asset: str
    period_id: int
    currency: str

    def to_x402(self) -> dict[str, Any]:
        """Body of an HTTP 402 payment-required response."""
        return {
            "to": self.to,
            "amount": str(self.amount),
            "token": self.asset,
            "periodId": str(self.period_id),
            "currency": self.currency,
        }


@dataclass(frozen=True)
class ClaimStatus:
    outcome: ClaimOutcome
    employee_id: str
    period_id: int | None
    message: str
    payment_required: PaymentRequired | None = None


class ClaimService:
    """Read-only view over the schedule store and the vault."""

    def __init__(
        self,
        *,
        schedule: ScheduleStore,
        vault: PayrollVault,
        asset: str,
        currency: str | None = None,
    ):
        self.schedule = schedule
        self.vault = vault
        self.asset = asset
        self.currency = currency or asset

    def claim(self, employee_id: str) -> ClaimStatus:
        """Project the employee's next payable period."""
        employee_id = normalize_employee_id(employee_id)
        record = self.schedule.get_employee(employee_id)
        if record is None:
            return ClaimStatus(
                ClaimOutcome.NO_SALARY, employee_id, None, USER_MESSAGES["NOT_ASSIGNED"]
            )

        period_id = self._next_unpaid_period(employee_id, record.cadence)

        if self.vault.is_paid(employee_id, period_id):
            return ClaimStatus(
                ClaimOutcome.ALREADY_PAID, employee_id, period_id, USER_MESSAGES["ALREADY_PAID"]
            )

        due, reason = self.schedule.is_settleable(employee_id, period_id)
        if not due:
            return ClaimStatus(
                ClaimOutcome.NOT_DUE,
                employee_id,
                period_id,
                USER_MESSAGES.get(reason.value, reason.value),
            )

        available = self.vault.period_balance(period_id)
        if available < record.salary:
            return ClaimStatus(
                ClaimOutcome.UNFUNDED,
                employee_id,
                period_id,
                USER_MESSAGES["INSUFFICIENT_PERIOD_FUNDS"],
            )

        return ClaimStatus(
            ClaimOutcome.PAYMENT_REQUIRED,
            employee_id,
            period_id,
            "payment required",
            PaymentRequired(
                to=employee_id,
                amount=record.salary,
                asset=self.asset,
                period_id=period_id,
                currency=self.currency,
            ),
        )

    def _next_unpaid_period(self, employee_id: str, cadence: Cadence) -> int:
        """Expected period, moved past payouts the schedule never confirmed.

        Only boundaries already reached are considered; if every one of
        them is paid, the last paid period is returned.
        """
        period_id = self.schedule.next_expected_period(employee_id)
        step = duration_seconds(cadence)
        now = self.schedule.clock()
        while self.vault.is_paid(employee_id, period_id) and period_id + step <= now:
            period_id += step
        return period_id
