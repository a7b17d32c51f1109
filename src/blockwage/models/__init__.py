"""SQLAlchemy models for the settlement core."""

from blockwage.models.base import Base, TimestampMixin, Uint256
from blockwage.models.events import SettlementEventRecord
from blockwage.models.proof import ConsumedProof, VerifiedPayment
from blockwage.models.schedule import EmployeeSchedule, ProcessedPeriod
from blockwage.models.vault import (
    VaultDeposit,
    VaultEmployee,
    VaultPayout,
    VaultPeriodBalance,
    VaultTotals,
    VaultWithdrawal,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "Uint256",
    "EmployeeSchedule",
    "ProcessedPeriod",
    "VaultEmployee",
    "VaultPeriodBalance",
    "VaultTotals",
    "VaultPayout",
    "VaultDeposit",
    "VaultWithdrawal",
    "ConsumedProof",
    "VerifiedPayment",
    "SettlementEventRecord",
]
