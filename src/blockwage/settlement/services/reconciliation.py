"""Reconciliation - detect and repair drift between vault and schedules.

The vault confirms payouts on the schedule store best-effort, so the two
can disagree: a payout exists but last_paid_timestamp never advanced, or
an outbound transfer failed after the paid flag was committed. This job
finds those cases and, when asked, retries schedule confirmations,
backfilling the processed flag for periods settled without a due signal.
Failed transfers are reported only; they need an operator.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from blockwage.settlement.errors import ScheduleError
from blockwage.settlement.events import (
    EventEmitter,
    EventMetadata,
    ReconciliationCompleted,
)
from blockwage.settlement.services.escrow_ledger import PayrollVault, TransferStatus
from blockwage.settlement.services.schedule_store import ScheduleStore

logger = logging.getLogger(__name__)


class DriftKind(str, Enum):
    UNCONFIRMED_SCHEDULE = "unconfirmed_schedule"
    MISSING_SCHEDULE = "missing_schedule"
    FAILED_TRANSFER = "failed_transfer"
    PENDING_TRANSFER = "pending_transfer"


@dataclass(frozen=True)
class DriftItem:
    employee_id: str
    period_id: int
    kind: DriftKind
    detail: str = ""


@dataclass
class ReconciliationResult:
    """Result of a reconciliation run."""

    payouts_checked: int = 0
    drift: list[DriftItem] = field(default_factory=list)
    repaired: list[DriftItem] = field(default_factory=list)

    @property
    def drift_count(self) -> int:
        return len(self.drift)

    @property
    def outstanding(self) -> list[DriftItem]:
        """Drift still present after repairs."""
        return [item for item in self.drift if item not in self.repaired]

    @property
    def success(self) -> bool:
        """Whether the vault and schedules agree after this run."""
        return not self.outstanding

    def count(self, kind: DriftKind) -> int:
        return sum(1 for item in self.drift if item.kind is kind)


class ReconciliationService:
    """Compares vault payouts against schedule state."""

    def __init__(
        self,
        *,
        vault: PayrollVault,
        schedule: ScheduleStore,
        emitter: EventEmitter | None = None,
    ):
        self.vault = vault
        self.schedule = schedule
        self.emitter = emitter or EventEmitter()

    def run_reconciliation(self, *, repair: bool = False) -> ReconciliationResult:
        """Scan every payout; optionally retry missing schedule confirmations.

        Payouts are visited in period order so retried confirmations move
        last_paid_timestamp forward monotonically.
        """
        result = ReconciliationResult()

        for payout in self.vault.list_payouts():
            result.payouts_checked += 1

            if payout.transfer_status is TransferStatus.FAILED:
                result.drift.append(
                    DriftItem(payout.employee_id, payout.period_id, DriftKind.FAILED_TRANSFER)
                )
            elif payout.transfer_status is TransferStatus.PENDING:
                result.drift.append(
                    DriftItem(payout.employee_id, payout.period_id, DriftKind.PENDING_TRANSFER)
                )

            if payout.schedule_confirmed:
                continue

            record = self.schedule.get_employee(payout.employee_id)
            if record is None:
                result.drift.append(
                    DriftItem(
                        payout.employee_id,
                        payout.period_id,
                        DriftKind.MISSING_SCHEDULE,
                        "employee has no schedule",
                    )
                )
                continue
            if record.last_paid_timestamp >= payout.period_id:
                continue

            item = DriftItem(
                payout.employee_id,
                payout.period_id,
                DriftKind.UNCONFIRMED_SCHEDULE,
                f"last paid {record.last_paid_timestamp}",
            )
            result.drift.append(item)
            if repair and payout.transfer_status is not TransferStatus.FAILED:
                if self._repair_confirmation(payout.employee_id, payout.period_id):
                    result.repaired.append(item)

        if result.drift:
            logger.warning(
                "Reconciliation found %d drift item(s), repaired %d",
                result.drift_count,
                len(result.repaired),
            )
        else:
            logger.info("Reconciliation clean: %d payouts checked", result.payouts_checked)

        self.emitter.emit(
            ReconciliationCompleted(
                metadata=EventMetadata.create(actor_type="system", source_service="reconciliation"),
                payouts_checked=result.payouts_checked,
                drift_count=result.drift_count,
                repaired_count=len(result.repaired),
                failed_transfer_count=result.count(DriftKind.FAILED_TRANSFER),
            )
        )
        return result

    def _repair_confirmation(self, employee_id: str, period_id: int) -> bool:
        """Backfill a missing processed flag, then retry confirm_paid."""
        if not self.schedule.is_processed(employee_id, period_id):
            try:
                self.schedule.backfill_processed(employee_id, period_id)
            except ScheduleError as exc:
                logger.warning(
                    "Cannot backfill processed flag for %s period %s: %s",
                    employee_id,
                    period_id,
                    exc,
                )
                return False
        return self.vault.confirm_schedule(employee_id, period_id)
