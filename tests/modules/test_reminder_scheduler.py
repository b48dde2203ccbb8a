"""Tests for ReminderScheduler.schedule_reminders."""

from collections import Counter
from datetime import date
from decimal import Decimal

import pytest

from dunning_engines.reminder_schedule import ReminderLevel
from dunning_kernel.exceptions import InvoiceNotFoundError, RemindersAlreadyScheduledError
from dunning_modules.reminders.config import ReminderConfig
from dunning_modules.reminders.models import PaymentReminder, ReminderStatus
from dunning_modules.reminders.repository import PAYMENT_REMINDERS
from dunning_modules.reminders.scheduler import ReminderScheduler
from tests.conftest import CLIENT_ID, OTHER_USER_ID, USER_ID


@pytest.fixture
def scheduler(store, config, clock):
    return ReminderScheduler(store, config, USER_ID, clock=clock)


def _stored(store) -> list[PaymentReminder]:
    return [PaymentReminder.from_document(d) for d in store.query(PAYMENT_REMINDERS)]


class TestScheduleReminders:

    def test_creates_one_reminder_per_level_and_offset(self, scheduler, store, seed_invoice, seed_client):
        seed_client()
        seed_invoice("inv-1")

        created = scheduler.schedule_reminders("inv-1")

        assert len(created) == 8
        assert Counter(r.level for r in created) == {
            ReminderLevel.GENTLE: 3,
            ReminderLevel.FIRM: 2,
            ReminderLevel.FINAL: 2,
            ReminderLevel.LEGAL: 1,
        }
        assert all(r.status is ReminderStatus.SCHEDULED for r in created)
        assert {(r.level, r.offset_days) for r in created} == {
            (r.level, r.offset_days) for r in _stored(store)
        }
        assert all(r.id for r in created)

    def test_dates_skip_weekends(self, scheduler, seed_invoice):
        seed_invoice("inv-1")

        created = scheduler.schedule_reminders("inv-1")

        assert [r.scheduled_date for r in created] == [
            date(2024, 3, 4), date(2024, 3, 4), date(2024, 3, 8),
            date(2024, 3, 15), date(2024, 3, 22),
            date(2024, 4, 1), date(2024, 4, 15),
            date(2024, 4, 30),
        ]
        assert all(r.scheduled_date.weekday() < 5 for r in created)

    def test_reminder_content(self, scheduler, seed_invoice, seed_client):
        seed_client()
        seed_invoice("inv-1")

        firm = scheduler.schedule_reminders("inv-1")[3]

        assert firm.level is ReminderLevel.FIRM
        assert firm.subject == "Payment Reminder: Invoice INV-001 - Payment Past Due (14 days)"
        assert firm.template_type == "PAYMENT_REMINDER_FIRM"
        assert firm.recipient_email == "ana@example.com"
        assert firm.cc_emails == ("billing@example.com",)
        assert firm.days_past_due == 14
        assert firm.user_id == USER_ID
        assert firm.client_id == CLIENT_ID

    def test_fee_preview_uses_offset(self, scheduler, seed_invoice):
        seed_invoice("inv-1")

        created = {r.offset_days: r for r in scheduler.schedule_reminders("inv-1")}

        assert created[1].late_fee_amount == Decimal("0.00")  # within grace
        assert created[7].late_fee_amount == Decimal("800.00")  # 4 days * 200
        assert created[7].late_fee_percentage == Decimal("8.00")
        assert created[60].late_fee_amount == Decimal("2500.00")  # capped

    def test_recipient_falls_back_to_client_email(self, scheduler, seed_invoice, seed_client):
        seed_client(email="accounts@cruz.example")
        seed_invoice("inv-1", client_email=None)

        created = scheduler.schedule_reminders("inv-1")

        assert created[0].recipient_email == "accounts@cruz.example"

    def test_max_reminders_caps_rows(self, store, clock, seed_invoice):
        seed_invoice("inv-1")
        scheduler = ReminderScheduler(store, ReminderConfig(max_reminders=3), USER_ID, clock=clock)

        created = scheduler.schedule_reminders("inv-1")

        assert [r.level for r in created] == [ReminderLevel.GENTLE] * 3

    def test_client_override_schedule(self, store, clock, seed_invoice):
        seed_invoice("inv-1")
        config = ReminderConfig(
            client_overrides={CLIENT_ID: {"schedule": {"final": [5]}, "skip_weekends": False}},
        )
        scheduler = ReminderScheduler(store, config, USER_ID, clock=clock)

        created = scheduler.schedule_reminders("inv-1")

        assert [(r.level, r.scheduled_date) for r in created] == [
            (ReminderLevel.FINAL, date(2024, 3, 6)),
        ]

    def test_logs_scheduling(self, scheduler, seed_invoice, captured_logs):
        seed_invoice("inv-1")
        scheduler.schedule_reminders("inv-1")

        records = [r for r in captured_logs() if r["message"] == "reminders_scheduled"]
        assert len(records) == 1
        assert records[0]["count"] == 8
        assert records[0]["invoice_id"] == "inv-1"
        assert records[0]["user_id"] == USER_ID


class TestEligibility:

    @pytest.mark.parametrize("status", ["draft", "paid"])
    def test_draft_and_paid_invoices_get_nothing(self, scheduler, store, seed_invoice, status):
        seed_invoice("inv-1", status=status)

        assert scheduler.schedule_reminders("inv-1") == []
        assert store.query(PAYMENT_REMINDERS) == []

    @pytest.mark.parametrize("status", ["sent", "viewed", "overdue"])
    def test_open_invoices_are_scheduled(self, scheduler, seed_invoice, status):
        seed_invoice("inv-1", status=status)
        assert scheduler.schedule_reminders("inv-1")

    def test_missing_invoice_raises(self, scheduler):
        with pytest.raises(InvoiceNotFoundError) as exc_info:
            scheduler.schedule_reminders("inv-404")
        assert exc_info.value.invoice_id == "inv-404"

    def test_other_users_invoice_is_missing(self, scheduler, seed_invoice):
        seed_invoice("inv-1", user_id=OTHER_USER_ID)
        with pytest.raises(InvoiceNotFoundError):
            scheduler.schedule_reminders("inv-1")


class TestIdempotence:

    def test_second_call_rejected_without_duplicates(self, scheduler, store, seed_invoice):
        seed_invoice("inv-1")
        scheduler.schedule_reminders("inv-1")

        with pytest.raises(RemindersAlreadyScheduledError) as exc_info:
            scheduler.schedule_reminders("inv-1")

        assert exc_info.value.existing_count == 8
        assert exc_info.value.code == "REMINDERS_ALREADY_SCHEDULED"
        pairs = [(r.level, r.offset_days) for r in _stored(store)]
        assert len(pairs) == len(set(pairs)) == 8

    def test_other_invoices_unaffected(self, scheduler, store, seed_invoice):
        seed_invoice("inv-1")
        seed_invoice("inv-2", invoice_number="INV-002")
        scheduler.schedule_reminders("inv-1")

        assert len(scheduler.schedule_reminders("inv-2")) == 8
        assert len(store.query(PAYMENT_REMINDERS)) == 16
