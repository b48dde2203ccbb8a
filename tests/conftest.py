"""
Pytest fixtures for the dunning test suite.

Provides:
- Structured logging for the session and a ``captured_logs`` reader
- A deterministic clock pinned to 2024-02-20 09:00 UTC
- In-memory and SQLite-backed record stores
- Recording and failing mailers
- Invoice and client seeding helpers

Reference dates:
- 2024-03-01 (a Friday) is the default invoice due date.
- With the default schedule the reminders fall on 03-04 (x2), 03-08,
  03-15, 03-22, 04-01, 04-15 and 04-30.
"""

import json
import logging
from datetime import datetime, timezone
from io import StringIO
from typing import Any, Mapping

import pytest

from dunning_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from dunning_kernel.domain.clock import DeterministicClock
from dunning_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from dunning_kernel.store.memory import InMemoryRecordStore
from dunning_kernel.store.sql import SqlRecordStore
from dunning_modules.reminders.config import ReminderConfig
from dunning_modules.reminders.mailer import MailReceipt
from dunning_modules.reminders.repository import CLIENTS, INVOICES

USER_ID = "user-1"
OTHER_USER_ID = "user-2"
CLIENT_ID = "client-1"
DUE_DATE = "2024-03-01"

SCHEDULING_TIME = datetime(2024, 2, 20, 9, 0, tzinfo=timezone.utc)


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
    Capture dunning logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, scheduler):
            scheduler.schedule_reminders("inv-1")
            logs = captured_logs()
            assert any(r["message"] == "reminders_scheduled" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("dunning")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Time and stores
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(SCHEDULING_TIME)


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def sql_store():
    """SqlRecordStore over a fresh in-memory SQLite database."""
    init_engine_from_url("sqlite://")
    create_tables()
    yield SqlRecordStore(get_session_factory())
    drop_tables()
    reset_engine()


@pytest.fixture
def config() -> ReminderConfig:
    return ReminderConfig()


# =============================================================================
# Mailers
# =============================================================================


class RecordingMailer:
    """Mailer that remembers every message and acknowledges it."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, dict[str, Any]]] = []

    def send(
        self, template_type: str, recipient: str, variables: Mapping[str, Any],
    ) -> MailReceipt:
        self.sent.append((template_type, recipient, dict(variables)))
        return MailReceipt(message_id=f"msg-{len(self.sent)}")


class FailingMailer:
    """Mailer that raises for the first ``failures`` calls, then succeeds."""

    def __init__(self, failures: int = 10**6, error: Exception | None = None) -> None:
        self.failures = failures
        self.error = error or RuntimeError("smtp unavailable")
        self.calls = 0
        self.sent: list[tuple[str, str, dict[str, Any]]] = []

    def send(
        self, template_type: str, recipient: str, variables: Mapping[str, Any],
    ) -> MailReceipt:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        self.sent.append((template_type, recipient, dict(variables)))
        return MailReceipt(message_id=f"msg-{self.calls}")


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def failing_mailer() -> FailingMailer:
    return FailingMailer()


# =============================================================================
# Seeding helpers
# =============================================================================


@pytest.fixture
def seed_client(store):
    """Write a client document and return its id."""

    def _seed(client_id: str = CLIENT_ID, **overrides: Any) -> str:
        doc = {
            "user_id": USER_ID,
            "name": "Ana Cruz",
            "email": "ana@example.com",
            "cc_emails": ["billing@example.com"],
            "company": "Cruz Studio",
        }
        doc.update(overrides)
        store.put(CLIENTS, client_id, doc)
        return client_id

    return _seed


@pytest.fixture
def seed_invoice(store):
    """Write an invoice document and return its id."""

    def _seed(invoice_id: str = "inv-1", **overrides: Any) -> str:
        doc = {
            "user_id": USER_ID,
            "client_id": CLIENT_ID,
            "invoice_number": "INV-001",
            "currency": "PHP",
            "total": "10000.00",
            "due_date": DUE_DATE,
            "status": "sent",
            "total_paid": "0",
            "client_email": "ana@example.com",
            "client_name": "Ana Cruz",
        }
        doc.update(overrides)
        store.put(INVOICES, invoice_id, doc)
        return invoice_id

    return _seed
