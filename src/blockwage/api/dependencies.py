"""FastAPI dependencies for dependency injection."""

from collections.abc import Iterator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from blockwage.settlement.payroll import PayrollSystem


def get_db_session(request: Request) -> Iterator[Session]:
    """Get database session dependency."""
    session = request.app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


DbSession = Annotated[Session, Depends(get_db_session)]


def get_payroll_system(request: Request, db: DbSession) -> PayrollSystem:
    """Settlement components bound to the request's session."""
    state = request.app.state
    return PayrollSystem.build(
        db,
        config=state.settlement_config,
        provider=state.provider,
        persist_events=True,
        currency=state.settings.currency,
    )


Payroll = Annotated[PayrollSystem, Depends(get_payroll_system)]
