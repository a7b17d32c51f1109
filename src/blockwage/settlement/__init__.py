"""Payroll settlement core.

Components:
- Cadence engine (pure period arithmetic)
- Schedule store (employee schedules, due signals)
- Payroll vault (per-period escrow, exactly-once payout)
- Proof verifier (single-use payment proofs)
- Settlement orchestrator (proof -> payout)
"""

from blockwage.settlement.cadence import Cadence, duration_seconds, is_aligned, next_aligned_period
from blockwage.settlement.config import (
    ProofConfig,
    SettlementConfig,
    SettlementMode,
    VaultConfig,
    create_sandbox_config,
    validate_production_config,
)
from blockwage.settlement.payroll import PayrollSystem

__all__ = [
    "Cadence",
    "duration_seconds",
    "is_aligned",
    "next_aligned_period",
    "SettlementConfig",
    "SettlementMode",
    "VaultConfig",
    "ProofConfig",
    "create_sandbox_config",
    "validate_production_config",
    "PayrollSystem",
]
