"""Settlement operator CLI.

Provides operational tools for:
- Schema creation
- Schedule inspection and due triggering
- Claim projection
- Reconciliation and drift repair
- Metrics emission
- Event inspection
- Proof building (facilitator simulation)
- Production config checks

Usage:
    blockwage-admin init-db
    blockwage-admin assign --employee 0x.. --salary 1000000 --cadence monthly
    blockwage-admin trigger-due --employee 0x.. --period 1728000000
    blockwage-admin claim --employee 0x..
    blockwage-admin reconcile --repair
    blockwage-admin set-last-paid --employee 0x.. --timestamp 1728000000
    blockwage-admin metrics --format prometheus
    blockwage-admin events --type SalaryDue --limit 20
    blockwage-admin build-proof --employee 0x.. --period 1728000000 --amount 1000000
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from sqlalchemy.orm import Session

from blockwage.config import Settings, get_settings
from blockwage.settlement.config import SettlementConfig, validate_production_config
from blockwage.settlement.errors import SettlementError
from blockwage.settlement.metrics import MetricsCollector
from blockwage.settlement.payroll import PayrollSystem
from blockwage.settlement.proofs import HmacProofAttestor, encode_proof
from blockwage.settlement.providers.base import FundTransferProvider
from blockwage.settlement.providers.custody_stub import CustodyStubProvider


class SettlementCli:
    """Settlement Command Line Interface."""

    def __init__(
        self,
        *,
        session_factory: Callable[[], Session] | None = None,
        settings: Settings | None = None,
        provider: FundTransferProvider | None = None,
        out: Any = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings
        self._provider = provider
        self.out = out or sys.stdout
        self.parser = self._build_parser()

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    def _build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="blockwage-admin",
            description="Payroll settlement operational tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser("init-db", help="Create settlement tables")

        assign = subparsers.add_parser("assign", help="Assign or update an employee")
        assign.add_argument("--employee", required=True)
        assign.add_argument("--salary", required=True, type=int)
        assign.add_argument("--cadence", required=True)
        assign.add_argument("--last-paid", type=int, default=0)

        trigger = subparsers.add_parser("trigger-due", help="Emit a due signal for a period")
        trigger.add_argument("--employee", required=True)
        trigger.add_argument("--period", required=True, type=int)

        claim = subparsers.add_parser("claim", help="Show what an employee is owed")
        claim.add_argument("--employee", required=True)

        next_period = subparsers.add_parser("next-period", help="Next expected period")
        next_period.add_argument("--employee", required=True)

        reconcile = subparsers.add_parser("reconcile", help="Detect vault/schedule drift")
        reconcile.add_argument(
            "--repair",
            action="store_true",
            help="Retry missing schedule confirmations",
        )

        metrics = subparsers.add_parser("metrics", help="Emit metrics")
        metrics.add_argument(
            "--format",
            choices=["json", "prometheus"],
            default="json",
        )

        events = subparsers.add_parser("events", help="List persisted events")
        events.add_argument("--type", dest="event_type")
        events.add_argument("--limit", type=int, default=50)

        build = subparsers.add_parser("build-proof", help="Build a (test) payment proof")
        build.add_argument("--employee", required=True)
        build.add_argument("--period", required=True, type=int)
        build.add_argument("--amount", required=True, type=int)
        build.add_argument("--secret", help="HMAC secret; defaults to PROOF_HMAC_SECRET")

        clear_processed = subparsers.add_parser(
            "clear-processed", help="Clear a schedule processed flag"
        )
        clear_processed.add_argument("--employee", required=True)
        clear_processed.add_argument("--period", required=True, type=int)

        set_last_paid = subparsers.add_parser(
            "set-last-paid", help="Overwrite a schedule last paid timestamp"
        )
        set_last_paid.add_argument("--employee", required=True)
        set_last_paid.add_argument("--timestamp", required=True, type=int)

        clear_paid = subparsers.add_parser("clear-paid", help="Clear a vault paid flag")
        clear_paid.add_argument("--employee", required=True)
        clear_paid.add_argument("--period", required=True, type=int)

        subparsers.add_parser("config-check", help="Check production safety of settings")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help(self.out)
            return 1

        handlers: dict[str, Callable[[argparse.Namespace], int]] = {
            "init-db": self._cmd_init_db,
            "assign": self._cmd_assign,
            "trigger-due": self._cmd_trigger_due,
            "claim": self._cmd_claim,
            "next-period": self._cmd_next_period,
            "reconcile": self._cmd_reconcile,
            "metrics": self._cmd_metrics,
            "events": self._cmd_events,
            "build-proof": self._cmd_build_proof,
            "clear-processed": self._cmd_clear_processed,
            "clear-paid": self._cmd_clear_paid,
            "set-last-paid": self._cmd_set_last_paid,
            "config-check": self._cmd_config_check,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return handler(parsed)
        except SettlementError as e:
            print(f"ERROR [{e.code}]: {e}", file=sys.stderr)
            return 2

    # ------------------------------------------------------------------

    @contextmanager
    def _session(self) -> Iterator[Session]:
        if self._session_factory is not None:
            session = self._session_factory()
        else:
            from blockwage.database import init_db

            session = init_db()[1]()
        try:
            yield session
        finally:
            session.close()

    def _system(self, session: Session) -> PayrollSystem:
        return PayrollSystem.build(
            session,
            config=SettlementConfig.from_settings(self.settings),
            provider=self._provider or CustodyStubProvider(),
            persist_events=True,
            currency=self.settings.currency,
        )

    def _print_json(self, data: Any) -> None:
        print(json.dumps(data, indent=2, default=str), file=self.out)

    # ------------------------------------------------------------------

    def _cmd_init_db(self, args: argparse.Namespace) -> int:
        from blockwage.database import create_schema

        with self._session() as session:
            create_schema(session.get_bind())
        print("Schema created.", file=self.out)
        return 0

    def _cmd_assign(self, args: argparse.Namespace) -> int:
        with self._session() as session:
            result = self._system(session).vault.assign_employee(
                args.employee, args.salary, args.cadence, initial_last_paid=args.last_paid
            )
        self._print_json(
            {
                "employee": result.employee_id,
                "salary": str(result.salary),
                "cadence": result.cadence.value,
                "schedule_synced": result.schedule_synced,
            }
        )
        return 0 if result.schedule_synced else 1

    def _cmd_trigger_due(self, args: argparse.Namespace) -> int:
        with self._session() as session:
            signal = self._system(session).schedule.trigger_due(args.employee, args.period)
        self._print_json(
            {
                "employee": signal.employee_id,
                "period_id": str(signal.period_id),
                "amount": str(signal.amount),
                "asset": signal.asset,
            }
        )
        return 0

    def _cmd_claim(self, args: argparse.Namespace) -> int:
        with self._session() as session:
            status = self._system(session).claims.claim(args.employee)
        body: dict[str, Any] = {
            "outcome": status.outcome.value,
            "employee": status.employee_id,
            "period_id": str(status.period_id) if status.period_id is not None else None,
            "message": status.message,
        }
        if status.payment_required is not None:
            body["payment_required"] = status.payment_required.to_x402()
        self._print_json(body)
        return 0

    def _cmd_next_period(self, args: argparse.Namespace) -> int:
        with self._session() as session:
            period_id = self._system(session).schedule.next_expected_period(args.employee)
        print(period_id, file=self.out)
        return 0

    def _cmd_reconcile(self, args: argparse.Namespace) -> int:
        with self._session() as session:
            result = self._system(session).reconciliation.run_reconciliation(repair=args.repair)
        self._print_json(
            {
                "payouts_checked": result.payouts_checked,
                "drift": [
                    {
                        "employee": item.employee_id,
                        "period_id": str(item.period_id),
                        "kind": item.kind.value,
                        "detail": item.detail,
                    }
                    for item in result.drift
                ],
                "repaired": len(result.repaired),
            }
        )
        return 0 if result.success else 1

    def _cmd_metrics(self, args: argparse.Namespace) -> int:
        with self._session() as session:
            metrics = MetricsCollector(session).collect_all()
        if args.format == "prometheus":
            print(metrics.to_prometheus(), file=self.out)
        else:
            print(metrics.to_json(), file=self.out)
        return 0

    def _cmd_events(self, args: argparse.Namespace) -> int:
        with self._session() as session:
            store = self._system(session).event_store
            events = [
                {
                    "event_id": e.event_id,
                    "event_type": e.event_type,
                    "timestamp": e.timestamp,
                    "payload": e.payload,
                }
                for e in store.replay(event_type=args.event_type, limit=args.limit)
            ]
        self._print_json(events)
        return 0

    def _cmd_build_proof(self, args: argparse.Namespace) -> int:
        payload = encode_proof(args.employee, args.period, args.amount)
        secret = args.secret or self.settings.proof_hmac_secret
        proof = HmacProofAttestor(secret).attach(payload) if secret else payload
        print("0x" + proof.hex(), file=self.out)
        return 0

    def _cmd_clear_processed(self, args: argparse.Namespace) -> int:
        with self._session() as session:
            cleared = self._system(session).schedule.admin_clear_processed(
                args.employee, args.period
            )
        print("cleared" if cleared else "no processed flag", file=self.out)
        return 0 if cleared else 1

    def _cmd_clear_paid(self, args: argparse.Namespace) -> int:
        with self._session() as session:
            cleared = self._system(session).vault.admin_clear_paid(args.employee, args.period)
        print("cleared" if cleared else "no paid flag", file=self.out)
        return 0 if cleared else 1

    def _cmd_set_last_paid(self, args: argparse.Namespace) -> int:
        with self._session() as session:
            schedule = self._system(session).schedule
            schedule.admin_set_last_paid(args.employee, args.timestamp)
            period_id = schedule.next_expected_period(args.employee)
        print(f"next expected period: {period_id}", file=self.out)
        return 0

    def _cmd_config_check(self, args: argparse.Namespace) -> int:
        issues = validate_production_config(SettlementConfig.from_settings(self.settings))
        if not issues:
            print("Configuration is production safe.", file=self.out)
            return 0
        for issue in issues:
            print(issue, file=self.out)
        return 1


def main() -> int:
    """CLI entry point."""
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return SettlementCli().run()


if __name__ == "__main__":
    sys.exit(main())
