"""Base protocol and types for fund transfer collaborators.

The vault never moves tokens itself. Deposits are pulled from a
pre-authorized employer account and payouts are pushed to employees
through an adapter implementing FundTransferProvider. Both operations
are all-or-nothing: a result with ``success=False`` means no funds moved.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class TransferResult:
    """Result of a collect or disburse call."""

    success: bool
    reference: str | None = None
    message: str = ""


@runtime_checkable
class FundTransferProvider(Protocol):
    """Protocol for custody adapters (token contract, bank, wallet API)."""

    provider_name: str

    def collect(self, source: str, amount: int, reference: str) -> TransferResult:
        """Pull ``amount`` from ``source`` into vault custody.

        ``source`` must have pre-authorized at least ``amount``.
        """
        ...

    def disburse(self, recipient: str, amount: int, reference: str) -> TransferResult:
        """Push ``amount`` from vault custody to ``recipient``."""
        ...


@dataclass(frozen=True)
class FacilitatorPayment:
    """A payment produced by a facilitator in answer to a payment request."""

    recipient: str
    period_id: int
    amount: int
    proof: bytes

    @property
    def proof_hex(self) -> str:
        return "0x" + self.proof.hex()
