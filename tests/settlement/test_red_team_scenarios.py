"""Red Team Settlement Scenarios - Adversarial Testing.

These tests verify the settlement core behaves correctly under attack patterns:

1. Double-payout attempts
2. Proof replay
3. Races between check and write
4. Balance manipulation
5. Unauthorized funding and withdrawal

The tests ensure invariants hold under adversarial conditions.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy.orm import Session

from blockwage.settlement.errors import (
    AlreadyPaidError,
    InsufficientPeriodFundsError,
    InsufficientUnallocatedError,
    PaymentNotVerifiedError,
    ProofAlreadyConsumedError,
    ProofMismatchError,
    UnauthorizedDepositorError,
)
from blockwage.settlement.locks import KeyedLock
from blockwage.settlement.payroll import PayrollSystem
from blockwage.settlement.providers.custody_stub import CustodyStubProvider
from tests.settlement.conftest import SettlementTestData


class TestDoublePayoutPrevention:
    """Verify an (employee, period) is paid at most once."""

    def test_repeated_settle_moves_funds_once(
        self, system: PayrollSystem, test_data: SettlementTestData, custody: CustodyStubProvider
    ):
        """Ten identical settle requests pay one salary."""
        test_data.onboard(system, fund=test_data.salary * 10)

        results = [
            system.orchestrator.settle(test_data.employee, test_data.period, test_data.proof())
            for _ in range(10)
        ]

        assert sum(not r.was_duplicate for r in results) == 1
        assert custody.balances[test_data.employee] == test_data.salary
        assert system.vault.period_balance(test_data.period) == test_data.salary * 9

    def test_fresh_proofs_cannot_buy_second_payout(
        self, system: PayrollSystem, test_data: SettlementTestData, custody: CustodyStubProvider
    ):
        """New proofs for a paid period return the cached result."""
        test_data.onboard(system)
        for n in range(3):
            system.orchestrator.settle(
                test_data.employee, test_data.period, test_data.proof(trailer=bytes([n]))
            )

        assert custody.balances[test_data.employee] == test_data.salary

    def test_paid_flag_written_after_check_blocks_payout(
        self,
        system: PayrollSystem,
        test_data: SettlementTestData,
        custody: CustodyStubProvider,
        db: Session,
        monkeypatch,
    ):
        """The paid-flag key rejects a payout whose checks raced another writer."""
        test_data.onboard(system)
        system.verifier.register_proof(test_data.proof())
        system.vault.release(test_data.employee, test_data.period)
        balance_after_first = system.vault.period_balance(test_data.period)

        db.expunge_all()
        monkeypatch.setattr(system.vault, "_validate_payout", lambda e, p: test_data.salary)

        with pytest.raises(AlreadyPaidError):
            system.vault.release(test_data.employee, test_data.period)

        assert system.vault.period_balance(test_data.period) == balance_after_first
        assert custody.balances[test_data.employee] == test_data.salary


class TestProofReplay:
    """Verify proofs are single-use and bound to their key."""

    def test_replayed_proof_rejected_by_verifier(
        self, system: PayrollSystem, test_data: SettlementTestData
    ):
        """A proof accepted once is refused forever after."""
        system.verifier.register_proof(test_data.proof())

        with pytest.raises(ProofAlreadyConsumedError):
            system.verifier.register_proof(test_data.proof())

    def test_proof_cannot_pay_another_employee(
        self, system: PayrollSystem, test_data: SettlementTestData, custody: CustodyStubProvider
    ):
        """Presenting my proof under a colleague's id moves nothing."""
        test_data.onboard(system)
        system.vault.assign_employee(test_data.other_employee, test_data.salary, "monthly")

        with pytest.raises(ProofMismatchError):
            system.orchestrator.settle(
                test_data.other_employee, test_data.period, test_data.proof()
            )

        assert custody.balances[test_data.other_employee] == 0

    def test_verification_is_per_period(
        self, system: PayrollSystem, test_data: SettlementTestData
    ):
        """A proof for one period does not unlock the next."""
        test_data.onboard(system)
        system.vault.deposit(test_data.next_period, test_data.salary, depositor=test_data.employer)
        system.orchestrator.settle(test_data.employee, test_data.period, test_data.proof())

        with pytest.raises(PaymentNotVerifiedError):
            system.vault.release(test_data.employee, test_data.next_period)


class TestBalanceManipulation:
    """Verify funds cannot leave through side doors."""

    def test_outsider_cannot_deposit(
        self, system: PayrollSystem, test_data: SettlementTestData, custody: CustodyStubProvider
    ):
        """Deposits from unauthorized accounts are refused before collection."""
        custody.mint(test_data.outsider, 100)
        custody.approve(test_data.outsider, 100)

        with pytest.raises(UnauthorizedDepositorError):
            system.vault.deposit(test_data.period, 100, depositor=test_data.outsider)

        assert custody.allowances[test_data.outsider] == 100

    def test_reserved_funds_cannot_be_withdrawn(
        self, system: PayrollSystem, test_data: SettlementTestData, custody: CustodyStubProvider
    ):
        """Withdrawals never dip into period reservations."""
        test_data.onboard(system)
        vault_before = custody.balances[custody.vault_account]

        with pytest.raises(InsufficientUnallocatedError):
            system.vault.withdraw_unallocated(test_data.outsider, test_data.salary)

        assert custody.balances[custody.vault_account] == vault_before
        assert system.vault.reserved_total() == 3 * test_data.salary

    def test_one_period_cannot_drain_another(
        self, system: PayrollSystem, test_data: SettlementTestData
    ):
        """Period balances are isolated."""
        test_data.onboard(system, fund=0)
        system.vault.deposit(
            test_data.next_period, 10 * test_data.salary, depositor=test_data.employer
        )

        with pytest.raises(InsufficientPeriodFundsError):
            system.orchestrator.settle(test_data.employee, test_data.period, test_data.proof())

        assert system.vault.period_balance(test_data.next_period) == 10 * test_data.salary


class TestKeyedLock:
    """Verify in-process serialization per key."""

    def test_same_key_is_serialized(self):
        """Work under one key never overlaps."""
        locks = KeyedLock()
        active = 0
        peak = 0
        guard = threading.Lock()

        def work():
            nonlocal active, peak
            with locks.hold("payout", "0xabc", 1):
                with guard:
                    active += 1
                    peak = max(peak, active)
                time.sleep(0.005)
                with guard:
                    active -= 1

        with ThreadPoolExecutor(max_workers=8) as pool:
            for future in [pool.submit(work) for _ in range(16)]:
                future.result()

        assert peak == 1
        assert len(locks) == 0

    def test_different_keys_run_concurrently(self):
        """Distinct keys do not block each other."""
        locks = KeyedLock()
        barrier = threading.Barrier(2, timeout=2)

        def work(period):
            with locks.hold("payout", "0xabc", period):
                barrier.wait()

        with ThreadPoolExecutor(max_workers=2) as pool:
            for future in [pool.submit(work, p) for p in (1, 2)]:
                future.result()

        assert len(locks) == 0

    def test_reentrant(self):
        """The same thread may re-acquire a held key."""
        locks = KeyedLock()

        with locks.hold("vault"):
            with locks.hold("vault"):
                assert len(locks) == 1

        assert len(locks) == 0
