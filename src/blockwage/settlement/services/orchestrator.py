"""Settlement Orchestrator - proof in, payout out, exactly once.

Stateless composition of the proof verifier and the vault. The only
idempotency record is the vault's paid flag, checked before the proof is
touched so a repeated request never burns a second proof.

Flow:
    1. Paid flag set?            -> ALREADY_PROCESSED (cached result, with
                                    the original transfer status)
    2. Proof names this key?     -> else ProofMismatchError
    3. Register proof            -> a retry of the same proof for the same
                                    key skips registration
    4. vault.release / vault.record_payment per mode; losing a race for
       the paid flag also yields ALREADY_PROCESSED
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from blockwage.settlement.config import SettlementMode
from blockwage.settlement.errors import (
    AlreadyPaidError,
    ProofAlreadyConsumedError,
    ProofMismatchError,
)
from blockwage.settlement.events import (
    EventEmitter,
    EventMetadata,
    SettlementCompleted,
    SettlementDuplicate,
)
from blockwage.settlement.locks import KeyedLock
from blockwage.settlement.proofs import normalize_employee_id
from blockwage.settlement.services.escrow_ledger import (
    PayoutMode,
    PayoutRecord,
    PayrollVault,
    TransferStatus,
)
from blockwage.settlement.services.proof_verifier import ProofVerifier

logger = logging.getLogger(__name__)

SOURCE_SERVICE = "settlement_orchestrator"


class SettlementStatus(str, Enum):
    SETTLED = "settled"
    ALREADY_PROCESSED = "already_processed"


@dataclass(frozen=True)
class SettlementResult:
    """Result of a settle request.

    IMPORTANT: check ``was_duplicate``. A duplicate means the period was
    already paid by an earlier request and nothing moved this time; check
    ``transfer_failed`` too, since a failed transfer still sets the paid flag.
    """

    status: SettlementStatus
    employee_id: str
    period_id: int
    amount: int
    mode: PayoutMode
    proof_id: str | None = None
    transfer_status: TransferStatus | None = None
    transfer_reference: str | None = None
    schedule_confirmed: bool = False

    @property
    def was_duplicate(self) -> bool:
        return self.status is SettlementStatus.ALREADY_PROCESSED

    @property
    def transfer_failed(self) -> bool:
        """The paid flag is set but the salary never left custody."""
        return self.transfer_status is TransferStatus.FAILED


class SettlementOrchestrator:
    """Verifies a payment proof and settles it against the vault."""

    def __init__(
        self,
        *,
        vault: PayrollVault,
        verifier: ProofVerifier,
        mode: SettlementMode = SettlementMode.RELEASE,
        emitter: EventEmitter | None = None,
        locks: KeyedLock | None = None,
    ):
        self.vault = vault
        self.verifier = verifier
        self.mode = SettlementMode(mode)
        self.emitter = emitter or EventEmitter()
        self.locks = locks or KeyedLock()

    def settle(
        self,
        employee_id: str,
        period_id: int,
        proof: bytes | str,
        *,
        submitter: str | None = None,
    ) -> SettlementResult:
        """Settle (employee, period) with a payment proof.

        Args:
            employee_id: Employee address
            period_id: Period being paid
            proof: Proof bytes, 0x-hex or base64
            submitter: Who presented the proof

        Returns:
            SettlementResult; ALREADY_PROCESSED if the period was paid before

        Raises:
            The first verifier or vault error, unchanged.
        """
        employee_id = normalize_employee_id(employee_id)

        with self.locks.hold("settle", employee_id, period_id):
            existing = self.vault.get_payout(employee_id, period_id)
            if existing is not None:
                return self._duplicate(existing, submitter)

            decoded = self.verifier.decode(proof)
            if decoded.employee_id != employee_id or decoded.period_id != period_id:
                raise ProofMismatchError(
                    expected_employee=employee_id,
                    expected_period=period_id,
                    proof_employee=decoded.employee_id,
                    proof_period=decoded.period_id,
                )

            proof_id = decoded.proof_hash
            try:
                self.verifier.register_proof(decoded.raw, submitter=submitter)
            except ProofAlreadyConsumedError:
                consumed = self.verifier.get_consumed(proof_id)
                if consumed is None or (consumed.employee_id, consumed.period_id) != (
                    employee_id,
                    period_id,
                ):
                    raise
                logger.info(
                    "Proof %s already registered for %s period %s; retrying payout",
                    proof_id,
                    employee_id,
                    period_id,
                )

        # Vault takes its own locks; none are held across the payout hand-off
        try:
            if self.mode is SettlementMode.RELEASE:
                payout = self.vault.release(employee_id, period_id)
            else:
                payout = self.vault.record_payment(employee_id, period_id)
        except AlreadyPaidError:
            # A concurrent request set the paid flag after our check
            existing = self.vault.get_payout(employee_id, period_id)
            if existing is None:
                raise
            return self._duplicate(existing, submitter)

        logger.info(
            "Settled %s period %s: %s %s",
            employee_id,
            period_id,
            payout.mode.value,
            payout.amount,
        )
        self.emitter.emit(
            SettlementCompleted(
                metadata=self._metadata(submitter),
                employee_id=employee_id,
                period_id=period_id,
                amount=payout.amount,
                mode=payout.mode.value,
                proof_hash=proof_id,
            )
        )
        return SettlementResult(
            status=SettlementStatus.SETTLED,
            employee_id=employee_id,
            period_id=period_id,
            amount=payout.amount,
            mode=payout.mode,
            proof_id=proof_id,
            transfer_status=payout.transfer_status,
            transfer_reference=payout.transfer_reference,
            schedule_confirmed=payout.schedule_confirmed,
        )

    def _duplicate(self, existing: PayoutRecord, submitter: str | None) -> SettlementResult:
        if existing.transfer_status is TransferStatus.FAILED:
            logger.warning(
                "Settlement for %s period %s already processed but its transfer failed",
                existing.employee_id,
                existing.period_id,
            )
        else:
            logger.info(
                "Settlement for %s period %s already processed",
                existing.employee_id,
                existing.period_id,
            )
        self.emitter.emit(
            SettlementDuplicate(
                metadata=self._metadata(submitter),
                employee_id=existing.employee_id,
                period_id=existing.period_id,
            )
        )
        return SettlementResult(
            status=SettlementStatus.ALREADY_PROCESSED,
            employee_id=existing.employee_id,
            period_id=existing.period_id,
            amount=existing.amount,
            mode=existing.mode,
            transfer_status=existing.transfer_status,
            transfer_reference=existing.transfer_reference,
            schedule_confirmed=existing.schedule_confirmed,
        )

    def _metadata(self, submitter: str | None) -> EventMetadata:
        return EventMetadata.create(
            actor_id=submitter,
            actor_type="facilitator" if submitter else "system",
            source_service=SOURCE_SERVICE,
        )
