"""Settlement test fixtures."""

from dataclasses import dataclass

import pytest
from sqlalchemy.orm import Session

from blockwage.settlement.cadence import Cadence
from blockwage.settlement.config import SettlementMode, create_sandbox_config
from blockwage.settlement.events import EventEmitter
from blockwage.settlement.locks import KeyedLock
from blockwage.settlement.payroll import PayrollSystem
from blockwage.settlement.proofs import encode_proof
from blockwage.settlement.providers.custody_stub import CustodyStubProvider

MONTH = 30 * 24 * 60 * 60


class FakeClock:
    """Controllable unix-seconds clock."""

    def __init__(self, now: int) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@dataclass(frozen=True)
class SettlementTestData:
    """Addresses, amounts and periods shared by settlement tests."""

    employer: str = "0x" + "e1" * 20
    employee: str = "0x" + "a1" * 20
    other_employee: str = "0x" + "a2" * 20
    outsider: str = "0x" + "0b" * 20
    salary: int = 1_000_000
    period: int = MONTH * 700
    cadence: Cadence = Cadence.MONTHLY

    @property
    def next_period(self) -> int:
        return self.period + MONTH

    def proof(
        self,
        employee: str | None = None,
        period: int | None = None,
        amount: int | None = None,
        trailer: bytes = b"",
    ) -> bytes:
        return encode_proof(
            employee or self.employee,
            self.period if period is None else period,
            self.salary if amount is None else amount,
            trailer,
        )

    def onboard(self, system: PayrollSystem, *, fund: int | None = None) -> None:
        """Assign the employee and fund the default period."""
        system.vault.assign_employee(self.employee, self.salary, self.cadence)
        if fund is None:
            fund = self.salary * 3
        if fund:
            system.vault.deposit(self.period, fund, depositor=self.employer)


@pytest.fixture
def test_data() -> SettlementTestData:
    return SettlementTestData()


@pytest.fixture
def clock(test_data: SettlementTestData) -> FakeClock:
    return FakeClock(test_data.period + 3600)


@pytest.fixture
def custody(test_data: SettlementTestData) -> CustodyStubProvider:
    provider = CustodyStubProvider()
    provider.mint(test_data.employer, 10**12)
    provider.approve(test_data.employer, 10**12)
    return provider


@pytest.fixture
def settlement_mode() -> SettlementMode:
    return SettlementMode.RELEASE


@pytest.fixture
def system(
    db: Session,
    test_data: SettlementTestData,
    custody: CustodyStubProvider,
    emitter: EventEmitter,
    clock: FakeClock,
    settlement_mode: SettlementMode,
) -> PayrollSystem:
    return PayrollSystem.build(
        db,
        config=create_sandbox_config(test_data.employer, mode=settlement_mode),
        provider=custody,
        emitter=emitter,
        clock=clock,
        locks=KeyedLock(),
    )
