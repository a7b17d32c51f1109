"""Tests for settlement metrics."""

import json

from blockwage.settlement.metrics import DriftAlertRecorder, MetricsCollector
from blockwage.settlement.payroll import PayrollSystem
from blockwage.settlement.providers.custody_stub import CustodyStubProvider
from tests.settlement.conftest import SettlementTestData


class TestMetricsCollector:
    """Tests for database-backed metrics."""

    def test_empty_database(self, db):
        """All metrics are zero on a fresh database."""
        metrics = MetricsCollector(db).collect_all()

        assert metrics.employees_total.value == 0
        assert metrics.payouts_total.value == 0
        assert metrics.payouts_by_mode == []
        assert metrics.vault_unallocated.value == 0

    def test_after_settlement(
        self, db, system: PayrollSystem, test_data: SettlementTestData
    ):
        """Counts and balances follow settlement activity."""
        test_data.onboard(system)
        system.orchestrator.settle(test_data.employee, test_data.period, test_data.proof())

        metrics = MetricsCollector(db).collect_all()

        assert metrics.employees_total.value == 1
        assert metrics.payouts_total.value == 1
        assert metrics.proofs_consumed_total.value == 1
        assert metrics.schedule_unconfirmed.value == 1
        assert metrics.transfers_failed.value == 0
        assert metrics.vault_total_balance.value == 2 * test_data.salary
        assert metrics.vault_reserved_total.value == 2 * test_data.salary
        assert [(m.labels["mode"], m.value) for m in metrics.payouts_by_mode] == [("release", 1)]

    def test_prometheus_format(self, db, system: PayrollSystem, test_data: SettlementTestData):
        """Prometheus output carries type lines and labels."""
        test_data.onboard(system)
        system.orchestrator.settle(test_data.employee, test_data.period, test_data.proof())

        text = MetricsCollector(db).collect_all().to_prometheus()

        assert "# TYPE blockwage_payouts_total counter" in text
        assert "# TYPE blockwage_vault_total_balance gauge" in text
        assert 'blockwage_payouts_by_mode{mode="release"} 1' in text

    def test_json_format(self, db):
        """JSON output parses and includes the collection time."""
        data = json.loads(MetricsCollector(db).collect_all().to_json())

        assert "collected_at" in data
        assert data["payouts_total"]["value"] == 0


class TestDriftAlertRecorder:
    """Tests for in-process drift alerts."""

    def test_counts_drift_events_only(
        self,
        system: PayrollSystem,
        test_data: SettlementTestData,
        custody: CustodyStubProvider,
    ):
        """Best-effort failures are tallied; normal events are ignored."""
        alerts = []
        recorder = DriftAlertRecorder(on_alert=alerts.append)
        system.emitter.on_all(recorder)
        test_data.onboard(system)

        system.orchestrator.settle(test_data.employee, test_data.period, test_data.proof())

        assert recorder.counts == {"ScheduleConfirmationFailed": 1}
        assert recorder.total == 1
        assert [a.event_type for a in alerts] == ["ScheduleConfirmationFailed"]
        counter = recorder.as_counters()[0]
        assert counter.labels == {"event_type": "ScheduleConfirmationFailed"}
