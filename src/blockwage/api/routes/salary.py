"""Salary claim and settlement endpoints.

GET  /salary/claim/{employee}      402 + x402 body when a payment is owed
POST /salary/verify                settle a facilitator proof
POST /salary/simulate-facilitator  local facilitator stub (opt-in)
"""

import logging

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import JSONResponse

from blockwage.api.dependencies import Payroll
from blockwage.api.schemas import (
    ClaimResponse,
    PaymentRequiredBody,
    SimulatePaymentRequest,
    SimulatePaymentResponse,
    TransferFailedResponse,
    VerifyRequest,
    VerifyResponse,
)
from blockwage.settlement.proofs import HmacProofAttestor, proof_hash
from blockwage.settlement.providers.facilitator_stub import FacilitatorStub
from blockwage.settlement.services.claims import USER_MESSAGES, ClaimOutcome

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/salary", tags=["salary"])

X402_MEDIA_TYPE = "application/x402+json"


@router.get(
    "/claim/{employee}",
    response_model=ClaimResponse,
    responses={
        402: {"model": PaymentRequiredBody, "description": "Payment required"},
        404: {"description": "No salary assigned"},
    },
)
def claim_salary(employee: str, payroll: Payroll):
    """Tell a facilitator what to pay, or why nothing is owed."""
    claim = payroll.claims.claim(employee)

    if claim.outcome is ClaimOutcome.NO_SALARY:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": "no-salary-assigned"},
        )

    if claim.outcome is ClaimOutcome.PAYMENT_REQUIRED:
        return JSONResponse(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            content=claim.payment_required.to_x402(),
            media_type=X402_MEDIA_TYPE,
        )

    return ClaimResponse(
        outcome=claim.outcome.value,
        employee=claim.employee_id,
        period_id=str(claim.period_id) if claim.period_id is not None else None,
        message=claim.message,
    )


@router.post(
    "/verify",
    response_model=VerifyResponse,
    responses={502: {"model": TransferFailedResponse, "description": "Payout transfer failed"}},
)
def verify_salary(body: VerifyRequest, payroll: Payroll):
    """Verify a facilitator proof and settle the period."""
    result = payroll.orchestrator.settle(
        body.employee,
        body.period_id,
        body.facilitator_proof,
        submitter="facilitator",
    )
    logger.info(
        "Verify %s period %s -> %s", result.employee_id, result.period_id, result.status.value
    )
    response = VerifyResponse(
        result=result.status.value,
        employee=result.employee_id,
        period_id=str(result.period_id),
        amount=str(result.amount),
        mode=result.mode.value,
        proof_id=result.proof_id,
        transfer_status=result.transfer_status.value if result.transfer_status else None,
        transfer_reference=result.transfer_reference,
        schedule_confirmed=result.schedule_confirmed,
    )
    if result.transfer_failed:
        failed = TransferFailedResponse(
            **response.model_dump(),
            detail=USER_MESSAGES["FUND_TRANSFER_FAILED"],
            code="FUND_TRANSFER_FAILED",
        )
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content=failed.model_dump(),
        )
    return response


@router.post("/simulate-facilitator", response_model=SimulatePaymentResponse)
def simulate_facilitator(body: SimulatePaymentRequest, request: Request):
    """Pay a payment-required body with the facilitator stub."""
    settings = request.app.state.settings
    if not settings.enable_facilitator_simulator:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

    secret = request.app.state.settlement_config.proofs.hmac_secret
    facilitator = FacilitatorStub(HmacProofAttestor(secret) if secret else None)
    payment = facilitator.pay(body.to, body.amount, body.period_id)
    response = SimulatePaymentResponse(
        facilitator_proof=payment.proof_hex,
        proof_id=proof_hash(payment.proof),
    )
    return JSONResponse(content=response.model_dump(by_alias=True))
