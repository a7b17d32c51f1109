"""Pydantic schemas for API request/response models.

uint256 quantities travel as decimal strings; JSON numbers past 2**53
are not safe in most clients. Requests accept either form.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ============================================================================
# Salary schemas
# ============================================================================


class PaymentRequiredBody(BaseModel):
    """x402 payment-required body returned with HTTP 402."""

    to: str
    amount: str
    token: str
    period_id: str = Field(serialization_alias="periodId")
    currency: str


class ClaimResponse(BaseModel):
    """Claim outcome when no payment is currently required."""

    outcome: str
    employee: str
    period_id: str | None = None
    message: str


class VerifyRequest(BaseModel):
    """A facilitator proof presented for settlement."""

    model_config = ConfigDict(populate_by_name=True)

    facilitator_proof: str = Field(alias="facilitatorProof", min_length=1)
    employee: str
    period_id: int = Field(alias="periodId", gt=0)


class VerifyResponse(BaseModel):
    """Settlement result."""

    result: str
    employee: str
    period_id: str
    amount: str
    mode: str
    proof_id: str | None = None
    transfer_status: str | None = None
    transfer_reference: str | None = None
    schedule_confirmed: bool


class TransferFailedResponse(VerifyResponse):
    """Paid flag set but the salary transfer failed (HTTP 502)."""

    detail: str
    code: str


class SimulatePaymentRequest(BaseModel):
    """Ask the facilitator stub to pay a payment-required body.

    Accepts the body flat or wrapped as ``{"x402": {...}}``.
    """

    model_config = ConfigDict(populate_by_name=True)

    to: str
    amount: int = Field(gt=0)
    period_id: int = Field(alias="periodId", gt=0)

    @model_validator(mode="before")
    @classmethod
    def unwrap_x402(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("x402"), dict):
            return data["x402"]
        return data


class SimulatePaymentResponse(BaseModel):
    facilitator_proof: str = Field(serialization_alias="facilitatorProof")
    proof_id: str


class ErrorResponse(BaseModel):
    detail: str
    code: str
    message: str
