"""Tests for the schedule store: assignment, due-ness and confirmation."""

import pytest

from blockwage.settlement.cadence import Cadence
from blockwage.settlement.errors import (
    AlreadyProcessedError,
    DueNotificationError,
    DueReason,
    InvalidAmountError,
    InvalidEmployeeIdError,
    NotAssignedError,
    PeriodMisalignedError,
    PeriodNotLaterThanLastPaidError,
    PeriodNotProcessedError,
    TimestampNotLaterError,
)
from blockwage.settlement.payroll import PayrollSystem
from blockwage.settlement.services import ScheduleStore
from tests.conftest import EventRecorder
from tests.settlement.conftest import MONTH, SettlementTestData


@pytest.fixture
def store(system: PayrollSystem) -> ScheduleStore:
    return system.schedule


@pytest.fixture
def assigned(store: ScheduleStore, test_data: SettlementTestData) -> ScheduleStore:
    store.assign(test_data.employee, test_data.salary, test_data.cadence)
    return store


class FailingVault:
    """Due-signal receiver that always raises."""

    def __init__(self) -> None:
        self.calls = 0

    def on_salary_due(self, employee_id, period_id, amount):
        self.calls += 1
        raise RuntimeError("vault offline")


class TestAssign:
    """Tests for creating and updating schedules."""

    def test_assign_new_employee(
        self, store: ScheduleStore, test_data: SettlementTestData, recorder: EventRecorder
    ):
        """A new schedule starts never-paid and publishes EmployeeAssigned."""
        record = store.assign(test_data.employee, test_data.salary, "monthly")

        assert record.employee_id == test_data.employee
        assert record.salary == test_data.salary
        assert record.cadence is Cadence.MONTHLY
        assert record.never_paid
        assert recorder.types == ["EmployeeAssigned"]

    def test_update_keeps_last_paid(
        self, store: ScheduleStore, test_data: SettlementTestData, recorder: EventRecorder
    ):
        """Updating salary and cadence never rewrites payment history."""
        store.assign(
            test_data.employee,
            test_data.salary,
            Cadence.MONTHLY,
            initial_last_paid=test_data.period,
        )
        record = store.assign(test_data.employee, 2 * test_data.salary, Cadence.HOURLY)

        assert record.salary == 2 * test_data.salary
        assert record.cadence is Cadence.HOURLY
        assert record.last_paid_timestamp == test_data.period

        updated = recorder.of_type("EmployeeUpdated")[0]
        assert updated.previous_salary == test_data.salary
        assert updated.previous_cadence == "monthly"

    def test_mixed_case_address_is_one_employee(
        self, store: ScheduleStore, test_data: SettlementTestData
    ):
        """Addresses are normalized before storage."""
        store.assign(test_data.employee.upper().replace("0X", "0x"), test_data.salary, "monthly")

        assert store.get_employee(test_data.employee) is not None
        assert len(store.list_employees()) == 1

    def test_zero_salary_rejected(self, store: ScheduleStore, test_data: SettlementTestData):
        """Salary must be positive."""
        with pytest.raises(InvalidAmountError):
            store.assign(test_data.employee, 0, "monthly")

    def test_bad_address_rejected(self, store: ScheduleStore, test_data: SettlementTestData):
        """Malformed employee ids are rejected."""
        with pytest.raises(InvalidEmployeeIdError):
            store.assign("0x1234", test_data.salary, "monthly")

    def test_unknown_cadence_rejected(self, store: ScheduleStore, test_data: SettlementTestData):
        """Cadence must be one of the known values."""
        with pytest.raises(ValueError):
            store.assign(test_data.employee, test_data.salary, "weekly")


class TestRemove:
    """Tests for removing schedules."""

    def test_remove_unknown_employee(self, store: ScheduleStore, test_data: SettlementTestData):
        """Removing an unassigned employee fails."""
        with pytest.raises(NotAssignedError):
            store.remove(test_data.employee)

    def test_remove_deletes_schedule(
        self, assigned: ScheduleStore, test_data: SettlementTestData, recorder: EventRecorder
    ):
        """Removal deletes the record and publishes EmployeeRemoved."""
        assigned.remove(test_data.employee)

        assert assigned.get_employee(test_data.employee) is None
        assert "EmployeeRemoved" in recorder.types

    def test_processed_flags_survive_removal(
        self, assigned: ScheduleStore, test_data: SettlementTestData
    ):
        """Re-assigning a removed employee still sees earlier periods as processed."""
        assigned.trigger_due(test_data.employee, test_data.period)
        assigned.remove(test_data.employee)
        assigned.assign(test_data.employee, test_data.salary, test_data.cadence)

        assert assigned.is_due(test_data.employee, test_data.period) == (
            False,
            DueReason.ALREADY_PROCESSED,
        )


class TestIsDue:
    """Tests for due-ness evaluation order."""

    def test_due(self, assigned: ScheduleStore, test_data: SettlementTestData):
        """An aligned, unprocessed, later period is due."""
        assert assigned.is_due(test_data.employee, test_data.period) == (True, None)

    def test_not_assigned(self, store: ScheduleStore, test_data: SettlementTestData):
        """Unknown employees report NOT_ASSIGNED."""
        due, reason = store.is_due(test_data.employee, test_data.period)

        assert not due
        assert reason is DueReason.NOT_ASSIGNED

    def test_misaligned(self, assigned: ScheduleStore, test_data: SettlementTestData):
        """Off-boundary periods report PERIOD_MISALIGNED."""
        assert assigned.is_due(test_data.employee, test_data.period + 1).reason is (
            DueReason.PERIOD_MISALIGNED
        )

    def test_period_zero_is_misaligned(self, assigned: ScheduleStore, test_data: SettlementTestData):
        """Period 0 is never due."""
        assert assigned.is_due(test_data.employee, 0).reason is DueReason.PERIOD_MISALIGNED

    def test_not_later_than_last_paid(self, store: ScheduleStore, test_data: SettlementTestData):
        """Periods at or before last paid report PERIOD_NOT_LATER_THAN_LAST_PAID."""
        store.assign(
            test_data.employee,
            test_data.salary,
            test_data.cadence,
            initial_last_paid=test_data.period,
        )

        assert store.is_due(test_data.employee, test_data.period).reason is (
            DueReason.PERIOD_NOT_LATER_THAN_LAST_PAID
        )
        assert store.is_due(test_data.employee, test_data.next_period).due

    def test_misalignment_reported_before_last_paid(
        self, store: ScheduleStore, test_data: SettlementTestData
    ):
        """When several checks fail, alignment is reported first."""
        store.assign(
            test_data.employee,
            test_data.salary,
            test_data.cadence,
            initial_last_paid=test_data.next_period,
        )

        assert store.is_due(test_data.employee, test_data.period + 1).reason is (
            DueReason.PERIOD_MISALIGNED
        )

    def test_processed_reported_before_last_paid(
        self, assigned: ScheduleStore, test_data: SettlementTestData
    ):
        """A processed and confirmed period reports ALREADY_PROCESSED."""
        assigned.trigger_due(test_data.employee, test_data.period)
        assigned.confirm_paid(test_data.employee, test_data.period, test_data.period)

        assert assigned.is_due(test_data.employee, test_data.period).reason is (
            DueReason.ALREADY_PROCESSED
        )

    def test_settleable_ignores_processed_flag(
        self, assigned: ScheduleStore, test_data: SettlementTestData
    ):
        """A signalled period stays payable."""
        assigned.trigger_due(test_data.employee, test_data.period)

        assert not assigned.is_due(test_data.employee, test_data.period).due
        assert assigned.is_settleable(test_data.employee, test_data.period).due

    def test_cadence_change_changes_alignment(
        self, assigned: ScheduleStore, test_data: SettlementTestData
    ):
        """Alignment follows the current cadence."""
        hourly_period = test_data.period + 3600
        assert not assigned.is_due(test_data.employee, hourly_period).due

        assigned.assign(test_data.employee, test_data.salary, Cadence.HOURLY)

        assert assigned.is_due(test_data.employee, hourly_period).due


class TestTriggerDue:
    """Tests for due signal emission."""

    def test_trigger_sets_flag_and_emits(
        self, assigned: ScheduleStore, test_data: SettlementTestData, recorder: EventRecorder
    ):
        """Triggering marks the period processed and publishes SalaryDue."""
        recorder.clear()
        signal = assigned.trigger_due(test_data.employee, test_data.period)

        assert signal.amount == test_data.salary
        assert signal.asset == "USDC"
        assert assigned.is_processed(test_data.employee, test_data.period)

        due = recorder.of_type("SalaryDue")
        assert len(due) == 1
        assert due[0].employee_id == test_data.employee
        assert due[0].period_id == test_data.period
        assert due[0].amount == test_data.salary
        assert not due[0].admin_emitted

    def test_second_trigger_rejected(
        self, assigned: ScheduleStore, test_data: SettlementTestData, recorder: EventRecorder
    ):
        """A period is signalled at most once."""
        assigned.trigger_due(test_data.employee, test_data.period)

        with pytest.raises(AlreadyProcessedError):
            assigned.trigger_due(test_data.employee, test_data.period)

        assert len(recorder.of_type("SalaryDue")) == 1

    def test_misaligned_trigger_sets_nothing(
        self, assigned: ScheduleStore, test_data: SettlementTestData
    ):
        """A failing check leaves no flag behind."""
        with pytest.raises(PeriodMisalignedError):
            assigned.trigger_due(test_data.employee, test_data.period + 60)

        assert not assigned.is_processed(test_data.employee, test_data.period + 60)

    def test_unassigned_trigger(self, store: ScheduleStore, test_data: SettlementTestData):
        """Unassigned employees cannot be triggered."""
        with pytest.raises(NotAssignedError):
            store.trigger_due(test_data.employee, test_data.period)

    def test_vault_notified_after_flag_committed(
        self, assigned: ScheduleStore, test_data: SettlementTestData
    ):
        """The callback already sees the period as processed."""
        seen = []

        class Probe:
            def on_salary_due(self, employee_id, period_id, amount):
                seen.append((amount, assigned.is_processed(employee_id, period_id)))

        assigned.set_payroll_vault(Probe())
        assigned.trigger_due(test_data.employee, test_data.period)

        assert seen == [(test_data.salary, True)]

    def test_callback_failure_keeps_flag(
        self, assigned: ScheduleStore, test_data: SettlementTestData, recorder: EventRecorder
    ):
        """A failing vault callback surfaces but the flag stays set."""
        vault = FailingVault()
        assigned.set_payroll_vault(vault)

        with pytest.raises(DueNotificationError):
            assigned.trigger_due(test_data.employee, test_data.period)

        assert vault.calls == 1
        assert assigned.is_processed(test_data.employee, test_data.period)
        assert recorder.types[-2:] == ["SalaryDue", "DueNotificationFailed"]

    def test_underfunded_period_is_flagged(
        self, assigned: ScheduleStore, test_data: SettlementTestData, recorder: EventRecorder
    ):
        """The vault publishes PeriodUnderfunded when a due period lacks funds."""
        assigned.trigger_due(test_data.employee, test_data.period)

        underfunded = recorder.of_type("PeriodUnderfunded")
        assert len(underfunded) == 1
        assert underfunded[0].required == test_data.salary
        assert underfunded[0].available == 0


class TestConfirmPaid:
    """Tests for advancing last paid."""

    def test_confirm_advances_last_paid(
        self, assigned: ScheduleStore, test_data: SettlementTestData, recorder: EventRecorder
    ):
        """Confirmation records the paid timestamp."""
        assigned.trigger_due(test_data.employee, test_data.period)
        assigned.confirm_paid(test_data.employee, test_data.period, test_data.period)

        assert assigned.get_employee(test_data.employee).last_paid_timestamp == test_data.period
        confirmed = recorder.of_type("PaymentConfirmed")[0]
        assert confirmed.previous_last_paid == 0

    def test_confirm_requires_processed_period(
        self, assigned: ScheduleStore, test_data: SettlementTestData
    ):
        """A period never signalled due cannot be confirmed."""
        with pytest.raises(PeriodNotProcessedError):
            assigned.confirm_paid(test_data.employee, test_data.period, test_data.period)

    def test_confirm_unknown_employee(self, store: ScheduleStore, test_data: SettlementTestData):
        """Unknown employees cannot be confirmed."""
        with pytest.raises(NotAssignedError):
            store.confirm_paid(test_data.employee, test_data.period, test_data.period)

    @pytest.mark.parametrize("offset", [0, -1])
    def test_last_paid_is_monotonic(
        self, assigned: ScheduleStore, test_data: SettlementTestData, offset
    ):
        """Paid timestamps must strictly increase."""
        assigned.trigger_due(test_data.employee, test_data.period)
        assigned.confirm_paid(test_data.employee, test_data.period, test_data.period)

        with pytest.raises(TimestampNotLaterError):
            assigned.confirm_paid(
                test_data.employee, test_data.period, test_data.period + offset
            )


class TestNextExpectedPeriod:
    """Tests for next period projection."""

    def test_never_paid_uses_current_period(
        self, assigned: ScheduleStore, test_data: SettlementTestData
    ):
        """With no history the current boundary is expected."""
        assert assigned.next_expected_period(test_data.employee) == test_data.period

    def test_after_payment_moves_forward(
        self, assigned: ScheduleStore, test_data: SettlementTestData
    ):
        """After confirming a period the next one is expected."""
        assigned.trigger_due(test_data.employee, test_data.period)
        assigned.confirm_paid(test_data.employee, test_data.period, test_data.period)

        assert assigned.next_expected_period(test_data.employee) == test_data.period + MONTH

    def test_follows_clock(self, assigned: ScheduleStore, test_data: SettlementTestData, clock):
        """Never-paid employees track the current time."""
        clock.advance(MONTH)

        assert assigned.next_expected_period(test_data.employee) == test_data.next_period

    def test_unknown_employee(self, store: ScheduleStore, test_data: SettlementTestData):
        """Unassigned employees have no next period."""
        with pytest.raises(NotAssignedError):
            store.next_expected_period(test_data.employee)


class TestAdminOperations:
    """Tests for operator escape hatches."""

    def test_clear_processed_allows_retrigger(
        self, assigned: ScheduleStore, test_data: SettlementTestData, recorder: EventRecorder
    ):
        """Clearing the flag lets the period be signalled again."""
        assigned.trigger_due(test_data.employee, test_data.period)

        assert assigned.admin_clear_processed(test_data.employee, test_data.period)
        assert "ProcessedFlagCleared" in recorder.types

        assigned.trigger_due(test_data.employee, test_data.period)
        assert len(recorder.of_type("SalaryDue")) == 2

    def test_clear_processed_without_flag(
        self, assigned: ScheduleStore, test_data: SettlementTestData
    ):
        """Clearing a missing flag reports False."""
        assert not assigned.admin_clear_processed(test_data.employee, test_data.period)

    def test_admin_due_signal_touches_nothing(
        self, assigned: ScheduleStore, test_data: SettlementTestData, recorder: EventRecorder
    ):
        """Admin signals skip checks, flags and the vault callback."""
        vault = FailingVault()
        assigned.set_payroll_vault(vault)

        signal = assigned.admin_emit_due_signal(test_data.employee, test_data.period + 1)

        assert signal.amount == test_data.salary
        assert recorder.of_type("SalaryDue")[-1].admin_emitted
        assert vault.calls == 0
        assert not assigned.is_processed(test_data.employee, test_data.period + 1)

    def test_admin_due_signal_needs_employee(
        self, store: ScheduleStore, test_data: SettlementTestData
    ):
        """Admin signals still require a schedule."""
        with pytest.raises(NotAssignedError):
            store.admin_emit_due_signal(test_data.employee, test_data.period)

    def test_set_last_paid_bypasses_monotonic_check(
        self, assigned: ScheduleStore, test_data: SettlementTestData, recorder: EventRecorder
    ):
        """Operators may move last paid backwards."""
        assigned.admin_set_last_paid(test_data.employee, test_data.next_period)
        assigned.admin_set_last_paid(test_data.employee, test_data.period)

        assert assigned.get_employee(test_data.employee).last_paid_timestamp == test_data.period
        assert len(recorder.of_type("LastPaidAdjusted")) == 2

    def test_set_last_paid_rejects_negative(
        self, assigned: ScheduleStore, test_data: SettlementTestData
    ):
        """Negative timestamps are invalid."""
        with pytest.raises(ValueError):
            assigned.admin_set_last_paid(test_data.employee, -1)

    def test_backfill_processed_is_silent_and_idempotent(
        self, assigned: ScheduleStore, test_data: SettlementTestData, recorder: EventRecorder
    ):
        """Backfilled flags allow confirmation without a due signal."""
        vault = FailingVault()
        assigned.set_payroll_vault(vault)

        assert assigned.backfill_processed(test_data.employee, test_data.period)
        assert not assigned.backfill_processed(test_data.employee, test_data.period)

        assert assigned.is_processed(test_data.employee, test_data.period)
        assert len(recorder.of_type("ProcessedFlagBackfilled")) == 1
        assert recorder.of_type("SalaryDue") == []
        assert vault.calls == 0
        assigned.confirm_paid(test_data.employee, test_data.period, test_data.period)
        assert assigned.get_employee(test_data.employee).last_paid_timestamp == test_data.period

    def test_backfill_rejects_misaligned_period(
        self, assigned: ScheduleStore, test_data: SettlementTestData
    ):
        """Only cadence boundaries can be backfilled."""
        with pytest.raises(PeriodMisalignedError):
            assigned.backfill_processed(test_data.employee, test_data.period + 1)
        assert not assigned.is_processed(test_data.employee, test_data.period + 1)


class TestRaceOnProcessedFlag:
    """The database key on processed flags is the final arbiter."""

    def test_insert_conflict_reports_already_processed(
        self, assigned: ScheduleStore, test_data: SettlementTestData, db, monkeypatch
    ):
        """A flag written after our check still blocks a second signal."""
        from blockwage.settlement.services.schedule_store import DueCheck

        assigned.trigger_due(test_data.employee, test_data.period)
        db.expunge_all()
        monkeypatch.setattr(assigned, "_evaluate", lambda *a, **kw: DueCheck(True))

        with pytest.raises(AlreadyProcessedError):
            assigned.trigger_due(test_data.employee, test_data.period)


def test_period_not_later_error_carries_reason(test_data: SettlementTestData):
    """Errors expose their DueReason."""
    error = PeriodNotLaterThanLastPaidError(test_data.employee, test_data.period)

    assert error.reason is DueReason.PERIOD_NOT_LATER_THAN_LAST_PAID
    assert error.code == "PERIOD_NOT_LATER_THAN_LAST_PAID"
