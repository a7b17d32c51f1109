"""Settlement configuration objects.

Explicit configuration for the settlement core. Nothing here reads the
environment; ``SettlementConfig.from_settings`` is the one bridge from
process settings.

Pattern:
    config = SettlementConfig(
        asset="USDC",
        mode=SettlementMode.RELEASE,
        vault=VaultConfig(authorized_depositors=("0xemployer...",)),
        proofs=ProofConfig(hmac_secret="..."),
    )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from blockwage.settlement.proofs import normalize_employee_id

if TYPE_CHECKING:
    from blockwage.config import Settings


class SettlementMode(str, Enum):
    """How a verified payment settles against the vault.

    RELEASE: the vault pays the employee out of escrow.
    RECORD: the external rail already paid; the vault only books it.
    """

    RELEASE = "release"
    RECORD = "record"


@dataclass(frozen=True)
class VaultConfig:
    """
    Escrow vault configuration.

    Attributes:
        authorized_depositors: Addresses allowed to fund periods. An empty
            tuple means nobody can deposit.
        vault_key: Row key of the totals record, one per vault.
    """

    authorized_depositors: tuple[str, ...] = ()
    vault_key: str = "default"

    def __post_init__(self) -> None:
        normalized = tuple(normalize_employee_id(a) for a in self.authorized_depositors)
        object.__setattr__(self, "authorized_depositors", normalized)
        if not self.vault_key:
            raise ValueError("vault_key must not be empty")

    def is_authorized(self, depositor: str) -> bool:
        return depositor in self.authorized_depositors


@dataclass(frozen=True)
class ProofConfig:
    """
    Proof acceptance configuration.

    Attributes:
        hmac_secret: Shared secret for HMAC attestation. None disables
            attestation and accepts any structurally valid proof.
    """

    hmac_secret: str | None = None

    @property
    def attestation_enabled(self) -> bool:
        return bool(self.hmac_secret)


@dataclass(frozen=True)
class SettlementConfig:
    """Top-level settlement configuration."""

    asset: str
    mode: SettlementMode = SettlementMode.RELEASE
    vault: VaultConfig = field(default_factory=VaultConfig)
    proofs: ProofConfig = field(default_factory=ProofConfig)

    def __post_init__(self) -> None:
        if not self.asset:
            raise ValueError("asset is required")
        object.__setattr__(self, "mode", SettlementMode(self.mode))

    @classmethod
    def from_settings(cls, settings: Settings) -> SettlementConfig:
        return cls(
            asset=settings.asset,
            mode=SettlementMode(settings.settlement_mode.lower()),
            vault=VaultConfig(authorized_depositors=settings.authorized_depositors),
            proofs=ProofConfig(hmac_secret=settings.proof_hmac_secret),
        )


def create_sandbox_config(
    depositor: str,
    *,
    asset: str = "USDC",
    mode: SettlementMode = SettlementMode.RELEASE,
) -> SettlementConfig:
    """
    Create a sandbox configuration for testing.

    Args:
        depositor: The single authorized depositor (employer) address
        asset: Asset label carried in due signals
        mode: Settlement mode

    Returns:
        SettlementConfig without attestation
    """
    return SettlementConfig(
        asset=asset,
        mode=mode,
        vault=VaultConfig(authorized_depositors=(depositor,)),
        proofs=ProofConfig(),
    )


def validate_production_config(config: SettlementConfig) -> list[str]:
    """
    Validate that a configuration is safe for production.

    Returns a list of warnings/errors. Empty list = safe.
    """
    issues: list[str] = []

    if not config.proofs.attestation_enabled:
        issues.append(
            "CRITICAL: proof attestation disabled. Any well-formed proof will be accepted."
        )

    if not config.vault.authorized_depositors:
        issues.append("WARNING: no authorized depositors. The vault cannot be funded.")

    return issues
