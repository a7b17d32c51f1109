"""Facilitator stub: answers payment requests with proofs.

Stands in for the external payment rail during development. Given the
payment-required body of a claim (or a SalaryDue event) it "pays" and
returns proof bytes in the wire layout, attested when an attestor is
configured.
"""

from __future__ import annotations

import logging
import secrets

from blockwage.settlement.events.types import SalaryDue
from blockwage.settlement.proofs import (
    HmacProofAttestor,
    encode_proof,
    normalize_employee_id,
)
from blockwage.settlement.providers.base import FacilitatorPayment

logger = logging.getLogger(__name__)


class FacilitatorStub:
    """Produces proofs for payment requests."""

    provider_name = "facilitator_stub"

    def __init__(self, attestor: HmacProofAttestor | None = None):
        self.attestor = attestor
        self.payments: list[FacilitatorPayment] = []

    def pay(self, recipient: str, amount: int, period_id: int) -> FacilitatorPayment:
        """Simulate a payment and return its proof."""
        payload = encode_proof(recipient, period_id, amount)
        if self.attestor is not None:
            proof = self.attestor.attach(payload)
        else:
            # Random trailer keeps repeated payments distinct
            proof = payload + secrets.token_bytes(16)

        payment = FacilitatorPayment(
            recipient=normalize_employee_id(recipient),
            period_id=period_id,
            amount=amount,
            proof=proof,
        )
        self.payments.append(payment)
        logger.info(
            "Facilitator paid %s for period %s (amount=%s)",
            payment.recipient,
            period_id,
            amount,
        )
        return payment

    def handle_salary_due(self, event: SalaryDue) -> FacilitatorPayment:
        """Emitter handler for due signals."""
        return self.pay(event.employee_id, event.amount, event.period_id)
