"""Fund transfer and facilitator adapters."""

from blockwage.settlement.providers.base import (
    FacilitatorPayment,
    FundTransferProvider,
    TransferResult,
)
from blockwage.settlement.providers.custody_stub import CustodyStubProvider
from blockwage.settlement.providers.facilitator_stub import FacilitatorStub

__all__ = [
    "FundTransferProvider",
    "TransferResult",
    "FacilitatorPayment",
    "CustodyStubProvider",
    "FacilitatorStub",
]
