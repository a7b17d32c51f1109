"""Schedule store models: employee records and processed periods."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from blockwage.models.base import Base, TimestampMixin, Uint256, utcnow


class EmployeeSchedule(Base, TimestampMixin):
    """Salary, cadence and last confirmed payment for one employee."""

    __tablename__ = "employee_schedule"
    __table_args__ = (
        CheckConstraint(
            "cadence IN ('minute', 'hourly', 'biweekly', 'monthly')",
            name="employee_schedule_cadence_chk",
        ),
    )

    employee_id: Mapped[str] = mapped_column(String(42), primary_key=True)
    salary: Mapped[int] = mapped_column(Uint256, nullable=False)
    cadence: Mapped[str] = mapped_column(String(16), nullable=False)
    last_paid_timestamp: Mapped[int] = mapped_column(Uint256, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


class ProcessedPeriod(Base, TimestampMixin):
    """A due signal was emitted for (employee, period).

    The composite primary key is the check-and-set for trigger_due.
    """

    __tablename__ = "schedule_processed_period"

    employee_id: Mapped[str] = mapped_column(String(42), primary_key=True)
    period_id: Mapped[int] = mapped_column(Uint256, primary_key=True)
