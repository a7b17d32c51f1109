"""In-memory custody provider for local development and testing.

Models a token with balances and allowances: the employer approves the
vault, ``collect`` pulls against the allowance and ``disburse`` pays out
of the vault's own balance.
"""

from __future__ import annotations

import uuid
from collections import defaultdict

from blockwage.settlement.providers.base import TransferResult


class CustodyStubProvider:
    """Stub custody adapter.

    In production this would call the token contract (transferFrom /
    transfer) or a custodial wallet API.
    """

    provider_name = "custody_stub"

    def __init__(self, vault_account: str = "vault"):
        self.vault_account = vault_account
        self.balances: dict[str, int] = defaultdict(int)
        self.allowances: dict[str, int] = defaultdict(int)
        self.transfers: list[dict[str, object]] = []
        self._fail_next: str | None = None

    def mint(self, account: str, amount: int) -> None:
        self.balances[account] += amount

    def approve(self, owner: str, amount: int) -> None:
        """Let the vault pull up to ``amount`` from ``owner``."""
        self.allowances[owner] = amount

    def fail_next(self, message: str = "simulated transfer failure") -> None:
        """Make the next collect or disburse fail without moving funds."""
        self._fail_next = message

    def collect(self, source: str, amount: int, reference: str) -> TransferResult:
        failure = self._take_failure()
        if failure:
            return TransferResult(success=False, message=failure)
        if self.allowances[source] < amount:
            return TransferResult(success=False, message="allowance too low")
        if self.balances[source] < amount:
            return TransferResult(success=False, message="balance too low")

        self.allowances[source] -= amount
        return self._move(source, self.vault_account, amount, reference)

    def disburse(self, recipient: str, amount: int, reference: str) -> TransferResult:
        failure = self._take_failure()
        if failure:
            return TransferResult(success=False, message=failure)
        if self.balances[self.vault_account] < amount:
            return TransferResult(success=False, message="vault custody balance too low")

        return self._move(self.vault_account, recipient, amount, reference)

    def _move(self, source: str, target: str, amount: int, reference: str) -> TransferResult:
        self.balances[source] -= amount
        self.balances[target] += amount
        transfer_id = f"stub-{uuid.uuid4().hex[:16]}"
        self.transfers.append(
            {
                "transfer_id": transfer_id,
                "source": source,
                "target": target,
                "amount": amount,
                "reference": reference,
            }
        )
        return TransferResult(success=True, reference=transfer_id)

    def _take_failure(self) -> str | None:
        failure, self._fail_next = self._fail_next, None
        return failure
