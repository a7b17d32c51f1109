"""Proof Verifier - single-use payment proofs.

A proof is accepted at most once, ever. Acceptance records two facts:
the proof id is consumed, and (employee, period) is verified. The vault
reads the second fact before releasing funds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from blockwage.models import ConsumedProof, VerifiedPayment
from blockwage.settlement.errors import (
    AttestationFailedError,
    ProofAlreadyConsumedError,
)
from blockwage.settlement.events import (
    EventEmitter,
    EventMetadata,
    PaymentVerified,
    ProofConsumed,
)
from blockwage.settlement.proofs import (
    DecodedProof,
    ProofAttestor,
    decode_proof,
    normalize_employee_id,
    proof_bytes,
    proof_hash,
)

logger = logging.getLogger(__name__)

SOURCE_SERVICE = "proof_verifier"


@dataclass(frozen=True)
class ProofRegistration:
    """Result of accepting a proof."""

    proof_id: str
    employee_id: str
    period_id: int
    amount: int


@dataclass(frozen=True)
class ConsumedProofRecord:
    """What a consumed proof was accepted for."""

    proof_id: str
    employee_id: str
    period_id: int
    amount: int
    submitter: str | None


class ProofVerifier:
    """Replay-protected proof registry.

    Structural checks only, unless an attestor is configured; production
    deployments must pair this with attestation of the trailer bytes.
    """

    def __init__(
        self,
        db: Session,
        *,
        emitter: EventEmitter | None = None,
        attestor: ProofAttestor | None = None,
    ):
        self.db = db
        self.emitter = emitter or EventEmitter()
        self.attestor = attestor

    def decode(self, proof: bytes | str) -> DecodedProof:
        """Structurally decode a proof without registering it."""
        return decode_proof(proof)

    def register_proof(
        self,
        proof: bytes | str,
        *,
        submitter: str | None = None,
    ) -> ProofRegistration:
        """Accept a proof, marking it consumed and its payment verified.

        Args:
            proof: Raw bytes, 0x-hex or base64
            submitter: Who presented the proof (for audit)

        Returns:
            ProofRegistration with the proof id and decoded fields

        Raises:
            MalformedProofError: Structurally invalid
            AttestationFailedError: Attestor rejected the trailer
            ProofAlreadyConsumedError: Proof id was accepted before
        """
        decoded = decode_proof(proof)
        proof_id = decoded.proof_hash

        if self.attestor is not None and not self.attestor.verify(decoded):
            logger.warning("Proof %s failed attestation", proof_id)
            raise AttestationFailedError(proof_id)

        if self.db.get(ConsumedProof, proof_id) is not None:
            raise ProofAlreadyConsumedError(proof_id)

        self.db.add(
            ConsumedProof(
                proof_hash=proof_id,
                employee_id=decoded.employee_id,
                period_id=decoded.period_id,
                amount=decoded.amount,
                submitter=submitter,
            )
        )
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            raise ProofAlreadyConsumedError(proof_id) from None

        key = (decoded.employee_id, decoded.period_id)
        if self.db.get(VerifiedPayment, key) is None:
            self.db.add(
                VerifiedPayment(
                    employee_id=decoded.employee_id,
                    period_id=decoded.period_id,
                    proof_hash=proof_id,
                    amount=decoded.amount,
                )
            )
        try:
            self.db.commit()
        except IntegrityError:
            # Another proof verified this period first; the rollback dropped
            # our consumed row too, so record it alone as the serial path does
            self.db.rollback()
            self._consume_only(decoded, submitter)

        logger.info(
            "Payment verified: %s period %s amount %s (proof %s)",
            decoded.employee_id,
            decoded.period_id,
            decoded.amount,
            proof_id,
        )

        metadata = EventMetadata.create(
            actor_id=submitter,
            actor_type="facilitator",
            source_service=SOURCE_SERVICE,
        )
        with self.emitter.batch():
            self.emitter.emit(
                PaymentVerified(
                    metadata=metadata,
                    employee_id=decoded.employee_id,
                    period_id=decoded.period_id,
                    amount=decoded.amount,
                    proof_hash=proof_id,
                    submitter=submitter,
                )
            )
            self.emitter.emit(
                ProofConsumed(
                    metadata=EventMetadata.create(
                        correlation_id=metadata.correlation_id,
                        causation_id=metadata.event_id,
                        actor_id=submitter,
                        actor_type="facilitator",
                        source_service=SOURCE_SERVICE,
                    ),
                    proof_hash=proof_id,
                    submitter=submitter,
                )
            )

        return ProofRegistration(
            proof_id=proof_id,
            employee_id=decoded.employee_id,
            period_id=decoded.period_id,
            amount=decoded.amount,
        )

    def _consume_only(self, decoded: DecodedProof, submitter: str | None) -> None:
        self.db.add(
            ConsumedProof(
                proof_hash=decoded.proof_hash,
                employee_id=decoded.employee_id,
                period_id=decoded.period_id,
                amount=decoded.amount,
                submitter=submitter,
            )
        )
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ProofAlreadyConsumedError(decoded.proof_hash) from None

    def is_verified(self, employee_id: str, period_id: int) -> bool:
        key = (normalize_employee_id(employee_id), period_id)
        return self.db.get(VerifiedPayment, key) is not None

    def is_consumed(self, proof: bytes | str) -> bool:
        """True if the proof (or a proof id given as 64 hex chars) was accepted."""
        return self.get_consumed(proof) is not None

    def get_consumed(self, proof: bytes | str) -> ConsumedProofRecord | None:
        proof_id = _proof_id(proof)
        row = self.db.get(ConsumedProof, proof_id)
        if row is None:
            return None
        return ConsumedProofRecord(
            proof_id=row.proof_hash,
            employee_id=row.employee_id,
            period_id=row.period_id,
            amount=row.amount,
            submitter=row.submitter,
        )


def _proof_id(proof: bytes | str) -> str:
    if isinstance(proof, str) and len(proof) == 64:
        try:
            bytes.fromhex(proof)
            return proof.lower()
        except ValueError:
            pass
    return proof_hash(proof_bytes(proof))
