"""Integration test fixtures: the FastAPI app over an in-memory database."""

import time
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from blockwage.api.app import create_app
from blockwage.settlement.cadence import Cadence, next_aligned_period
from blockwage.settlement.config import SettlementConfig
from blockwage.settlement.locks import KeyedLock
from blockwage.settlement.payroll import PayrollSystem
from blockwage.settlement.providers.custody_stub import CustodyStubProvider
from tests.conftest import make_settings

EMPLOYER = "0x" + "e1" * 20
EMPLOYEE = "0x" + "a1" * 20
SALARY = 1_000_000


@pytest.fixture
def current_period() -> int:
    """Monthly boundary the API will project for a never-paid employee."""
    return next_aligned_period(Cadence.MONTHLY, 0, int(time.time()))


@pytest.fixture
def custody() -> CustodyStubProvider:
    provider = CustodyStubProvider()
    provider.mint(EMPLOYER, 10**12)
    provider.approve(EMPLOYER, 10**12)
    return provider


@pytest.fixture
def settings():
    return make_settings(enable_facilitator_simulator=True)


@pytest.fixture
def app(engine: Engine, custody: CustodyStubProvider, settings) -> FastAPI:
    return create_app(settings=settings, engine=engine, provider=custody, create_tables=False)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app without a network hop."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def seeded(db: Session, custody: CustodyStubProvider, settings) -> PayrollSystem:
    """Employee assigned, current period funded."""
    system = PayrollSystem.build(
        db,
        config=SettlementConfig.from_settings(settings),
        provider=custody,
        locks=KeyedLock(),
    )
    system.vault.assign_employee(EMPLOYEE, SALARY, Cadence.MONTHLY)
    period = next_aligned_period(Cadence.MONTHLY, 0, int(time.time()))
    system.vault.deposit(period, 3 * SALARY, depositor=EMPLOYER)
    return system
