"""Payroll settlement facade.

Wires the schedule store, proof verifier, vault, orchestrator and the
read-side services around one session so callers never assemble them by
hand (and never forget to register the vault for due notifications).

Usage:
    system = PayrollSystem.build(
        session,
        config=create_sandbox_config(employer),
        provider=CustodyStubProvider(),
    )
    system.vault.deposit(period_id, amount, depositor=employer)
    system.orchestrator.settle(employee, period_id, proof)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from sqlalchemy.orm import Session

from blockwage.settlement.config import SettlementConfig
from blockwage.settlement.events import EventEmitter, EventStore
from blockwage.settlement.locks import KeyedLock
from blockwage.settlement.proofs import HmacProofAttestor
from blockwage.settlement.providers.base import FundTransferProvider
from blockwage.settlement.services.claims import ClaimService
from blockwage.settlement.services.escrow_ledger import PayrollVault
from blockwage.settlement.services.orchestrator import SettlementOrchestrator
from blockwage.settlement.services.proof_verifier import ProofVerifier
from blockwage.settlement.services.reconciliation import ReconciliationService
from blockwage.settlement.services.schedule_store import ScheduleStore

# Shared by every PayrollSystem in this process so concurrent requests on
# separate sessions still serialize per key
PROCESS_LOCKS = KeyedLock()


@dataclass
class PayrollSystem:
    """All settlement components bound to one session."""

    config: SettlementConfig
    emitter: EventEmitter
    schedule: ScheduleStore
    verifier: ProofVerifier
    vault: PayrollVault
    orchestrator: SettlementOrchestrator
    claims: ClaimService
    reconciliation: ReconciliationService
    event_store: EventStore | None = None

    @classmethod
    def build(
        cls,
        session: Session,
        *,
        config: SettlementConfig,
        provider: FundTransferProvider,
        emitter: EventEmitter | None = None,
        clock: Callable[[], int] | None = None,
        locks: KeyedLock | None = None,
        persist_events: bool = False,
        currency: str | None = None,
    ) -> PayrollSystem:
        emitter = emitter or EventEmitter()
        locks = locks or PROCESS_LOCKS

        event_store = None
        if persist_events:
            event_store = EventStore(session)
            emitter.on_all(event_store.handler)

        attestor = None
        if config.proofs.attestation_enabled:
            attestor = HmacProofAttestor(config.proofs.hmac_secret)

        schedule = ScheduleStore(
            session, asset=config.asset, emitter=emitter, locks=locks, clock=clock
        )
        verifier = ProofVerifier(session, emitter=emitter, attestor=attestor)
        vault = PayrollVault(
            session,
            schedule=schedule,
            verifier=verifier,
            provider=provider,
            config=config.vault,
            emitter=emitter,
            locks=locks,
        )
        schedule.set_payroll_vault(vault)

        return cls(
            config=config,
            emitter=emitter,
            schedule=schedule,
            verifier=verifier,
            vault=vault,
            orchestrator=SettlementOrchestrator(
                vault=vault,
                verifier=verifier,
                mode=config.mode,
                emitter=emitter,
                locks=locks,
            ),
            claims=ClaimService(
                schedule=schedule, vault=vault, asset=config.asset, currency=currency
            ),
            reconciliation=ReconciliationService(
                vault=vault, schedule=schedule, emitter=emitter
            ),
            event_store=event_store,
        )
