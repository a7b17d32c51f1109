"""Base model class for SQLAlchemy ORM."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

UINT256_MAX = 2**256 - 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Uint256(TypeDecorator):
    """Unsigned 256-bit integer stored as decimal text.

    Salaries, period ids and timestamps are uint256 quantities. Native
    integer columns overflow at 64 bits on most backends, so values are
    persisted as canonical decimal strings and converted back on load.
    """

    impl = String(78)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> str | None:
        if value is None:
            return None
        number = int(value)
        if number < 0 or number > UINT256_MAX:
            raise ValueError(f"Value out of uint256 range: {number}")
        return str(number)

    def process_result_value(self, value: Any, dialect: Any) -> int | None:
        if value is None:
            return None
        return int(value)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }

    def to_dict(self) -> dict[str, Any]:
        """Convert model to dictionary."""
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}


class TimestampMixin:
    """Mixin for models with created_at timestamp."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
