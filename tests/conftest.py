"""
Pytest fixtures for the payment ledger test suite.

Provides:
- A file-backed SQLite database per test (BEGIN IMMEDIATE serialization)
- Receivables and payables engines wired to a DeterministicClock
- A ChangeChannel that records every published event
- Parties and document factories
- Captured structured logs

Environment Variables:
- None.  Each test gets its own database under pytest's tmp_path, so tests
  never share state and can run in any order.
"""

import json
import logging
from datetime import UTC, date, datetime, timedelta
from io import StringIO
from itertools import count

import pytest
from sqlalchemy.orm import sessionmaker

from ledger_config import LedgerSettings
from ledger_kernel.db.engine import build_engine, create_tables, drop_tables, session_scope
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.domain.values import Money
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.models.party import PartyType
from ledger_kernel.services.notification import ChangeChannel
from ledger_kernel.services.party_service import PartyService
from ledger_modules.payables.service import PayablesService
from ledger_modules.receivables.service import ReceivablesService

TODAY = date(2024, 1, 15)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, receivables):
            receivables.create_payment(...)
            logs = captured_logs()
            assert any(r["message"] == "payment_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'ledger.db'}"


@pytest.fixture
def engine(database_url):
    engine = build_engine(database_url, lock_timeout_seconds=5.0)
    create_tables(engine)
    yield engine
    drop_tables(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def settings(database_url) -> LedgerSettings:
    return LedgerSettings(database_url=database_url, max_conflict_retries=3)


# =============================================================================
# Engine fixtures
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(datetime(2024, 1, 15, 12, 0, 0, tzinfo=UTC))


@pytest.fixture
def channel():
    channel = ChangeChannel()
    yield channel
    channel.close()


@pytest.fixture
def events(channel) -> list:
    """Every event published on ``channel`` during the test, in order."""
    received: list = []
    channel.subscribe(received.append)
    return received


@pytest.fixture
def receivables(session_factory, channel, clock, settings) -> ReceivablesService:
    return ReceivablesService(session_factory, channel=channel, clock=clock, settings=settings)


@pytest.fixture
def payables(session_factory, channel, clock, settings) -> PayablesService:
    return PayablesService(session_factory, channel=channel, clock=clock, settings=settings)


# =============================================================================
# Data fixtures
# =============================================================================


@pytest.fixture
def make_party(session_factory):
    """Factory registering a party and returning its id."""

    def _make(party_type: PartyType = PartyType.CLIENT, name: str = "Société Test", company=None):
        with session_scope(session_factory, "register_party") as session:
            return PartyService(session).register_party(party_type, name, company=company)

    return _make


@pytest.fixture
def client_id(make_party):
    return make_party(PartyType.CLIENT, "Amira Ben Salah", company="Atlas SARL")


@pytest.fixture
def supplier_id(make_party):
    return make_party(PartyType.SUPPLIER, "Carthage Supplies", company="Carthage SA")


@pytest.fixture
def make_invoice(receivables, client_id):
    """
    Factory registering a client invoice.

    ``due_in_days`` is relative to the test clock's today (2024-01-15);
    ``None`` means no due date.
    """
    numbers = count(1)

    def _make(total: str = "1000.000", due_in_days: int | None = 30, engine=None, party_id=None):
        engine = engine or receivables
        due_date = TODAY + timedelta(days=due_in_days) if due_in_days is not None else None
        return engine.register_document(
            party_id=party_id or client_id,
            number=f"INV-2024-{next(numbers):04d}",
            total=Money.of(total, "TND"),
            issue_date=TODAY,
            due_date=due_date,
        )

    return _make
