"""Shared test fixtures: in-memory database and event capture."""

from collections.abc import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from blockwage.models import Base
from blockwage.settlement.events import DomainEvent, EventEmitter


class EventRecorder:
    """Collects every emitted event for assertions."""

    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    def __call__(self, event: DomainEvent) -> None:
        self.events.append(event)

    @property
    def types(self) -> list[str]:
        return [e.event_type for e in self.events]

    def of_type(self, event_type: str) -> list[DomainEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Fresh in-memory SQLite database per test."""
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine: Engine) -> Generator[Session, None, None]:
    """Database session for tests."""
    with Session(engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def emitter() -> EventEmitter:
    return EventEmitter()


@pytest.fixture
def recorder(emitter: EventEmitter) -> EventRecorder:
    recorder = EventRecorder()
    emitter.on_all(recorder)
    return recorder


def make_settings(**overrides):
    """Explicit Settings for tests; never reads the environment."""
    from dataclasses import replace

    from blockwage.config import Settings

    base = Settings(
        database_url="sqlite+pysqlite://",
        asset="USDC",
        currency="USDC",
        settlement_mode="release",
        authorized_depositors=("0x" + "e1" * 20,),
        proof_hmac_secret=None,
        enable_facilitator_simulator=False,
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="INFO",
    )
    return replace(base, **overrides)
