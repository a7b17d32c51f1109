"""Proof verifier models."""

from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from blockwage.models.base import Base, TimestampMixin, Uint256


class ConsumedProof(Base, TimestampMixin):
    """A proof that has been accepted once and can never be accepted again."""

    __tablename__ = "consumed_proof"

    proof_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    employee_id: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    period_id: Mapped[int] = mapped_column(Uint256, nullable=False)
    amount: Mapped[int] = mapped_column(Uint256, nullable=False)
    submitter: Mapped[str | None] = mapped_column(String(128), nullable=True)


class VerifiedPayment(Base, TimestampMixin):
    """isVerified[employee][period]."""

    __tablename__ = "verified_payment"

    employee_id: Mapped[str] = mapped_column(String(42), primary_key=True)
    period_id: Mapped[int] = mapped_column(Uint256, primary_key=True)
    proof_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[int] = mapped_column(Uint256, nullable=False)
