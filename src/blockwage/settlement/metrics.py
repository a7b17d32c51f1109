"""Settlement observability metrics.

Metric Categories:
- Schedule metrics: employees, processed periods
- Vault metrics: balances, payouts by mode, transfer failures
- Proof metrics: consumed proofs
- Drift metrics: payouts whose schedule confirmation never landed

Usage:
    collector = MetricsCollector(session)
    metrics = collector.collect_all()

    print(metrics.to_prometheus())
    print(metrics.to_json())

Drift alerts in-process:
    alerts = DriftAlertRecorder(on_alert=page_oncall)
    emitter.on_all(alerts)
"""

from __future__ import annotations

import json
import logging
from collections import Counter as _Tally
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from blockwage.models import (
    ConsumedProof,
    EmployeeSchedule,
    ProcessedPeriod,
    SettlementEventRecord,
    VaultPayout,
    VaultTotals,
)
from blockwage.settlement.events import DomainEvent

logger = logging.getLogger(__name__)


@dataclass
class Counter:
    """A counter metric (monotonically increasing)."""

    name: str
    value: int
    labels: dict[str, str] = field(default_factory=dict)
    help_text: str = ""


@dataclass
class Gauge:
    """A gauge metric (can go up or down)."""

    name: str
    value: float | int
    labels: dict[str, str] = field(default_factory=dict)
    help_text: str = ""


@dataclass
class SettlementMetrics:
    """Collection of all settlement metrics."""

    employees_total: Gauge
    processed_periods_total: Counter
    payouts_total: Counter
    payouts_by_mode: list[Counter]
    transfers_failed: Gauge
    transfers_pending: Gauge
    schedule_unconfirmed: Gauge
    proofs_consumed_total: Counter
    vault_total_balance: Gauge
    vault_reserved_total: Gauge
    vault_unallocated: Gauge
    domain_events_total: Counter

    collected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def metrics(self) -> list[Counter | Gauge]:
        result: list[Counter | Gauge] = []
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, list):
                result.extend(value)
            elif isinstance(value, (Counter, Gauge)):
                result.append(value)
        return result

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result: dict[str, Any] = {"collected_at": self.collected_at.isoformat()}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, list):
                result[f.name] = [_metric_to_dict(m) for m in value]
            elif isinstance(value, (Counter, Gauge)):
                result[f.name] = _metric_to_dict(value)
        return result

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=2)

    def to_prometheus(self) -> str:
        """Convert to Prometheus text format."""
        lines: list[str] = []
        described: set[str] = set()

        for metric in self.metrics():
            labels = ""
            if metric.labels:
                labels = "{" + ",".join(f'{k}="{v}"' for k, v in metric.labels.items()) + "}"

            if metric.name not in described:
                if metric.help_text:
                    lines.append(f"# HELP {metric.name} {metric.help_text}")
                metric_type = "counter" if isinstance(metric, Counter) else "gauge"
                lines.append(f"# TYPE {metric.name} {metric_type}")
                described.add(metric.name)
            lines.append(f"{metric.name}{labels} {metric.value}")

        return "\n".join(lines)


def _metric_to_dict(metric: Counter | Gauge) -> dict[str, Any]:
    return {
        "name": metric.name,
        "value": metric.value,
        "labels": metric.labels,
        "help": metric.help_text,
    }


class MetricsCollector:
    """Collects metrics from database."""

    def __init__(self, session: Session, vault_key: str = "default") -> None:
        self.session = session
        self.vault_key = vault_key

    def collect_all(self) -> SettlementMetrics:
        totals = self.session.get(VaultTotals, self.vault_key)
        total_balance = totals.total_balance if totals else 0
        reserved = totals.reserved_total if totals else 0

        return SettlementMetrics(
            employees_total=Gauge(
                "blockwage_employees_total",
                self._count(EmployeeSchedule),
                help_text="Employees with an active schedule",
            ),
            processed_periods_total=Counter(
                "blockwage_processed_periods_total",
                self._count(ProcessedPeriod),
                help_text="Due signals emitted",
            ),
            payouts_total=Counter(
                "blockwage_payouts_total",
                self._count(VaultPayout),
                help_text="Paid flags set",
            ),
            payouts_by_mode=self._payouts_by_mode(),
            transfers_failed=Gauge(
                "blockwage_transfers_failed",
                self._count(VaultPayout, VaultPayout.transfer_status == "failed"),
                help_text="Payouts whose outbound transfer failed",
            ),
            transfers_pending=Gauge(
                "blockwage_transfers_pending",
                self._count(VaultPayout, VaultPayout.transfer_status == "pending"),
                help_text="Payouts committed but not yet transferred",
            ),
            schedule_unconfirmed=Gauge(
                "blockwage_schedule_unconfirmed",
                self._count(VaultPayout, VaultPayout.schedule_confirmed.is_(False)),
                help_text="Payouts not confirmed on the schedule store (drift)",
            ),
            proofs_consumed_total=Counter(
                "blockwage_proofs_consumed_total",
                self._count(ConsumedProof),
                help_text="Proofs accepted",
            ),
            vault_total_balance=Gauge("blockwage_vault_total_balance", total_balance),
            vault_reserved_total=Gauge("blockwage_vault_reserved_total", reserved),
            vault_unallocated=Gauge("blockwage_vault_unallocated", total_balance - reserved),
            domain_events_total=Counter(
                "blockwage_domain_events_total",
                self._count(SettlementEventRecord),
                help_text="Persisted domain events",
            ),
        )

    def _count(self, model: type, *criteria: Any) -> int:
        stmt = select(func.count()).select_from(model)
        if criteria:
            stmt = stmt.where(*criteria)
        return int(self.session.execute(stmt).scalar() or 0)

    def _payouts_by_mode(self) -> list[Counter]:
        rows = self.session.execute(
            select(VaultPayout.mode, func.count()).group_by(VaultPayout.mode)
        ).all()
        return [
            Counter("blockwage_payouts_by_mode", int(count), labels={"mode": mode})
            for mode, count in sorted(rows)
        ]


DRIFT_EVENT_TYPES = frozenset(
    {
        "ScheduleConfirmationFailed",
        "ScheduleSyncFailed",
        "FundTransferFailed",
        "DueNotificationFailed",
    }
)


class DriftAlertRecorder:
    """Emitter handler counting best-effort failures.

    Register with ``emitter.on_all``. Every drift event increments a
    per-type tally and invokes ``on_alert`` if given.
    """

    def __init__(self, on_alert: Callable[[DomainEvent], None] | None = None) -> None:
        self.on_alert = on_alert
        self.counts: _Tally[str] = _Tally()

    def __call__(self, event: DomainEvent) -> None:
        if event.event_type not in DRIFT_EVENT_TYPES:
            return
        self.counts[event.event_type] += 1
        logger.warning("Drift alert: %s %s", event.event_type, event.to_json())
        if self.on_alert is not None:
            self.on_alert(event)

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def as_counters(self) -> list[Counter]:
        return [
            Counter("blockwage_drift_alerts_total", count, labels={"event_type": name})
            for name, count in sorted(self.counts.items())
        ]
