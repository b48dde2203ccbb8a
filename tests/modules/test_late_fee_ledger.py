"""Tests for LateFeeLedger (single active late fee per invoice)."""

from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from dunning_engines.late_fee import LateFeePolicy, calculate_late_fee
from dunning_modules.reminders.config import ReminderConfig
from dunning_modules.reminders.late_fees import LateFeeLedger
from dunning_modules.reminders.models import Invoice, InvoiceStatus, LateFee
from dunning_modules.reminders.repository import LATE_FEES, ReminderRecords
from tests.conftest import USER_ID

CALCULATED_AT = datetime(2024, 3, 11, 9, 0, tzinfo=timezone.utc)

INVOICE = Invoice(
    id="inv-1",
    user_id=USER_ID,
    client_id="client-1",
    invoice_number="INV-001",
    currency="PHP",
    total=Decimal("10000.00"),
    due_date=date(2024, 3, 1),
    status=InvoiceStatus.SENT,
)


@pytest.fixture
def ledger(store):
    return LateFeeLedger(ReminderRecords(store, USER_ID))


def _quote(days: int, **policy):
    return calculate_late_fee(INVOICE.total, "PHP", days, LateFeePolicy(**policy))


class TestRecord:

    def test_first_fee_inserts_row(self, ledger, store, config):
        fee = ledger.record(INVOICE, _quote(10), config, CALCULATED_AT)

        assert fee.id
        stored = LateFee.from_document(store.get(LATE_FEES, fee.id))
        assert stored.calculated_amount == Decimal("1400.00")
        assert stored.start_date == date(2024, 3, 1)
        assert stored.calculation_date == CALCULATED_AT
        assert stored.is_active and not stored.is_waived and not stored.is_paid
        assert stored.breakdown == "2% daily for 7 days"
        assert stored.grace_period_used is False

    def test_recalculation_updates_in_place(self, ledger, store, config):
        first = ledger.record(INVOICE, _quote(10), config, CALCULATED_AT)
        later = datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc)

        second = ledger.record(INVOICE, _quote(14), config, later)

        assert second.id == first.id
        assert len(store.query(LATE_FEES)) == 1
        assert second.calculated_amount == Decimal("2200.00")
        assert second.calculation_date == later
        assert second.days_past_due == 14
        # Creation fields are kept
        assert second.created_at == CALCULATED_AT

    def test_flat_fee_rate_is_the_flat_amount(self, ledger):
        config = ReminderConfig(late_fee_type="flat", flat_fee_amount=Decimal("75"))
        quote = _quote(10, fee_type="flat", flat_amount=Decimal("75"))

        fee = ledger.record(INVOICE, quote, config, CALCULATED_AT)

        assert fee.fee_type == "flat"
        assert fee.rate == Decimal("75")
        assert fee.calculated_amount == Decimal("75.00")

    def test_fees_per_invoice_are_independent(self, ledger, store, config):
        other = replace(INVOICE, id="inv-2")

        ledger.record(INVOICE, _quote(10), config, CALCULATED_AT)
        ledger.record(other, _quote(10), config, CALCULATED_AT)

        assert len(store.query(LATE_FEES)) == 2


class TestActiveFee:

    def test_none_when_absent(self, ledger):
        assert ledger.active_fee("inv-1") is None

    def test_inactive_rows_ignored(self, ledger, store, config):
        fee = ledger.record(INVOICE, _quote(10), config, CALCULATED_AT)
        store.update(LATE_FEES, fee.id, {"is_active": False})

        assert ledger.active_fee("inv-1") is None
        new_fee = ledger.record(INVOICE, _quote(12), config, CALCULATED_AT)
        assert new_fee.id != fee.id

    def test_warns_on_multiple_active_rows(self, ledger, store, config, captured_logs):
        first = ledger.record(INVOICE, _quote(10), config, CALCULATED_AT)
        store.put(LATE_FEES, "dup", {**store.get(LATE_FEES, first.id), "created_at": "2024-03-12T00:00:00+00:00"})

        active = ledger.active_fee("inv-1")

        assert active.id == first.id
        assert any(r["message"] == "multiple_active_late_fees" for r in captured_logs())
