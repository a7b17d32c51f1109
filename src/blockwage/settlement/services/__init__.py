"""Settlement services."""

from blockwage.settlement.services.claims import (
    ClaimOutcome,
    ClaimService,
    ClaimStatus,
    PaymentRequired,
    describe_error,
)
from blockwage.settlement.services.escrow_ledger import (
    DepositResult,
    PayoutMode,
    PayoutRecord,
    PayoutResult,
    PayrollVault,
    TransferStatus,
    VaultAssignResult,
    VaultBalances,
    WithdrawalResult,
)
from blockwage.settlement.services.orchestrator import (
    SettlementOrchestrator,
    SettlementResult,
    SettlementStatus,
)
from blockwage.settlement.services.proof_verifier import (
    ConsumedProofRecord,
    ProofRegistration,
    ProofVerifier,
)
from blockwage.settlement.services.reconciliation import (
    DriftItem,
    DriftKind,
    ReconciliationResult,
    ReconciliationService,
)
from blockwage.settlement.services.schedule_store import (
    DueCheck,
    DueSignal,
    EmployeeRecord,
    ScheduleStore,
)

__all__ = [
    "ScheduleStore",
    "EmployeeRecord",
    "DueCheck",
    "DueSignal",
    "PayrollVault",
    "PayoutMode",
    "PayoutRecord",
    "PayoutResult",
    "TransferStatus",
    "DepositResult",
    "WithdrawalResult",
    "VaultAssignResult",
    "VaultBalances",
    "ProofVerifier",
    "ProofRegistration",
    "ConsumedProofRecord",
    "SettlementOrchestrator",
    "SettlementResult",
    "SettlementStatus",
    "ClaimService",
    "ClaimStatus",
    "ClaimOutcome",
    "PaymentRequired",
    "describe_error",
    "ReconciliationService",
    "ReconciliationResult",
    "DriftItem",
    "DriftKind",
]
