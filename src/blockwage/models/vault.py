"""Escrow vault models: mirrors, balances, payouts."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from blockwage.models.base import Base, TimestampMixin, Uint256, utcnow


class VaultEmployee(Base, TimestampMixin):
    """Vault-side mirror of an employee's salary and cadence."""

    __tablename__ = "vault_employee"

    employee_id: Mapped[str] = mapped_column(String(42), primary_key=True)
    salary: Mapped[int] = mapped_column(Uint256, nullable=False)
    cadence: Mapped[str] = mapped_column(String(16), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


class VaultPeriodBalance(Base):
    """Funds reserved for one pay period."""

    __tablename__ = "vault_period_balance"

    period_id: Mapped[int] = mapped_column(Uint256, primary_key=True)
    balance: Mapped[int] = mapped_column(Uint256, nullable=False, default=0)


class VaultTotals(Base):
    """Total custody and running sum of all period balances."""

    __tablename__ = "vault_totals"

    vault_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    total_balance: Mapped[int] = mapped_column(Uint256, nullable=False, default=0)
    reserved_total: Mapped[int] = mapped_column(Uint256, nullable=False, default=0)


class VaultPayout(Base):
    """PaidFlag for (employee, period) plus what happened after it was set."""

    __tablename__ = "vault_payout"
    __table_args__ = (
        CheckConstraint("mode IN ('release', 'record')", name="vault_payout_mode_chk"),
        CheckConstraint(
            "transfer_status IN ('pending', 'completed', 'failed', 'not_applicable')",
            name="vault_payout_transfer_status_chk",
        ),
    )

    employee_id: Mapped[str] = mapped_column(String(42), primary_key=True)
    period_id: Mapped[int] = mapped_column(Uint256, primary_key=True)
    amount: Mapped[int] = mapped_column(Uint256, nullable=False)
    mode: Mapped[str] = mapped_column(String(16), nullable=False)
    transfer_status: Mapped[str] = mapped_column(String(16), nullable=False)
    transfer_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
    schedule_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    paid_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )


class VaultDeposit(Base, TimestampMixin):
    """Audit row for each employer deposit."""

    __tablename__ = "vault_deposit"

    deposit_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    period_id: Mapped[int] = mapped_column(Uint256, nullable=False)
    amount: Mapped[int] = mapped_column(Uint256, nullable=False)
    depositor: Mapped[str] = mapped_column(String(42), nullable=False)
    transfer_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)


class VaultWithdrawal(Base, TimestampMixin):
    """Audit row for each withdrawal of unallocated funds."""

    __tablename__ = "vault_withdrawal"

    withdrawal_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    recipient: Mapped[str] = mapped_column(String(42), nullable=False)
    amount: Mapped[int] = mapped_column(Uint256, nullable=False)
    transfer_status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    transfer_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
