"""
Tests for ScheduledEmailService.

Clock starts at 2024-02-20 09:00 UTC.  Retry backoff after failures 1 and
2 is 5 and 15 minutes; the third failure is final.
"""

from datetime import datetime, timedelta, timezone

import pytest

from dunning_batch.domain.types import (
    PROCESSING_TIMEOUT,
    EmailPriority,
    EmailType,
    ScheduledEmailStatus,
)
from dunning_batch.services.email_scheduler import SCHEDULED_EMAILS, ScheduledEmailService
from dunning_kernel.exceptions import ScheduledEmailNotFoundError
from tests.conftest import OTHER_USER_ID, USER_ID, FailingMailer

DUE_NOW = datetime(2024, 2, 20, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def service(store, mailer, clock):
    return ScheduledEmailService(store, USER_ID, mailer, clock=clock)


def _schedule(service, when=DUE_NOW, **kwargs):
    defaults = {
        "email_type": EmailType.REMINDER,
        "recipient_email": "ana@example.com",
        "scheduled_for": when,
        "template_id": "PAYMENT_REMINDER_GENTLE",
        "invoice_id": "inv-1",
    }
    defaults.update(kwargs)
    return service.schedule_email(**defaults)


class TestScheduling:

    def test_schedule_stores_pending_email(self, service):
        email_id = _schedule(service, subject="Hello", variables={"amount": "PHP 1.00"})

        email = service.get_scheduled_email(email_id)
        assert email.status is ScheduledEmailStatus.PENDING
        assert email.priority is EmailPriority.NORMAL
        assert email.retry_count == 0
        assert email.max_retries == 3
        assert email.subject == "Hello"
        assert email.variables == {"amount": "PHP 1.00"}

    def test_naive_time_treated_as_utc(self, service):
        email_id = _schedule(service, when=datetime(2024, 2, 21, 10, 0))
        email = service.get_scheduled_email(email_id)
        assert email.scheduled_for == datetime(2024, 2, 21, 10, 0, tzinfo=timezone.utc)

    def test_offset_time_normalized_to_utc(self, service, store):
        manila = timezone(timedelta(hours=8))
        email_id = _schedule(service, when=datetime(2024, 2, 21, 18, 0, tzinfo=manila))
        assert store.get(SCHEDULED_EMAILS, email_id)["scheduled_for"] == "2024-02-21T10:00:00+00:00"

    @pytest.mark.parametrize("email_type", ["invoice", "reminder", "payment_confirmation"])
    def test_invoice_bound_types_require_invoice(self, service, email_type):
        with pytest.raises(ValueError, match="Invoice ID required"):
            _schedule(service, email_type=email_type, invoice_id=None)

    def test_recipient_required(self, service):
        with pytest.raises(ValueError, match="recipient_email"):
            _schedule(service, recipient_email="")

    def test_unknown_priority_rejected(self, service):
        with pytest.raises(ValueError):
            _schedule(service, priority="urgent")

    def test_other_users_email_not_found(self, store, mailer, clock, service):
        email_id = _schedule(service)
        other = ScheduledEmailService(store, OTHER_USER_ID, mailer, clock=clock)

        with pytest.raises(ScheduledEmailNotFoundError) as exc_info:
            other.get_scheduled_email(email_id)
        assert exc_info.value.code == "SCHEDULED_EMAIL_NOT_FOUND"

    def test_max_per_run_must_be_positive(self, store, mailer):
        with pytest.raises(ValueError):
            ScheduledEmailService(store, USER_ID, mailer, max_per_run=0)


class TestListingAndEditing:

    def test_filters_and_order(self, service):
        early = _schedule(service, when=DUE_NOW)
        late = _schedule(service, when=DUE_NOW + timedelta(days=2))
        invoice_email = _schedule(service, email_type="invoice", when=DUE_NOW + timedelta(days=1))
        service.cancel_scheduled_email(early)

        assert [e.id for e in service.get_scheduled_emails()] == [late, invoice_email, early]
        assert [e.id for e in service.get_scheduled_emails(status="pending")] == [late, invoice_email]
        assert [e.id for e in service.get_scheduled_emails(email_type=EmailType.INVOICE)] == [invoice_email]
        assert len(service.get_scheduled_emails(limit=1)) == 1

    def test_cancel_pending(self, service):
        email_id = _schedule(service)

        assert service.cancel_scheduled_email(email_id) is True
        assert service.get_scheduled_email(email_id).status is ScheduledEmailStatus.CANCELLED
        assert service.process_queue().processed == 0

    def test_cancel_sent_is_refused(self, service):
        email_id = _schedule(service)
        service.process_queue()

        assert service.cancel_scheduled_email(email_id) is False
        assert service.get_scheduled_email(email_id).status is ScheduledEmailStatus.SENT

    def test_update_pending(self, service):
        email_id = _schedule(service)
        new_time = datetime(2024, 3, 1, 9, 0)

        updated = service.update_scheduled_email(
            email_id, subject="Updated", priority="high", scheduled_for=new_time,
        )

        assert updated.subject == "Updated"
        assert updated.priority is EmailPriority.HIGH
        stored = service.get_scheduled_email(email_id)
        assert stored.scheduled_for == new_time.replace(tzinfo=timezone.utc)
        assert stored.priority is EmailPriority.HIGH

    def test_update_rejects_unknown_fields(self, service):
        email_id = _schedule(service)
        with pytest.raises(ValueError, match="Cannot update fields"):
            service.update_scheduled_email(email_id, status="sent")

    def test_update_rejects_finished_email(self, service):
        email_id = _schedule(service)
        service.cancel_scheduled_email(email_id)
        with pytest.raises(ValueError, match="not pending"):
            service.update_scheduled_email(email_id, subject="Too late")


class TestProcessQueue:

    def test_sends_ready_emails(self, service, mailer):
        email_id = _schedule(service, subject="Hi")
        _schedule(service, when=DUE_NOW + timedelta(days=1))  # not yet

        result = service.process_queue()

        assert (result.processed, result.failed) == (1, 0)
        email = service.get_scheduled_email(email_id)
        assert email.status is ScheduledEmailStatus.SENT
        assert email.processed_at is not None
        template, recipient, variables = mailer.sent[0]
        assert template == "PAYMENT_REMINDER_GENTLE"
        assert recipient == "ana@example.com"
        assert variables["subject"] == "Hi"
        assert variables["invoice_id"] == "inv-1"

    def test_priority_then_time_order(self, service, mailer):
        _schedule(service, when=DUE_NOW - timedelta(hours=2), priority="low", template_id="low")
        _schedule(service, when=DUE_NOW, priority="high", template_id="high-late")
        _schedule(service, when=DUE_NOW - timedelta(hours=1), priority="high", template_id="high-early")
        _schedule(service, when=DUE_NOW - timedelta(hours=3), template_id="normal")

        service.process_queue()

        assert [t for t, _, _ in mailer.sent] == ["high-early", "high-late", "normal", "low"]

    def test_at_most_ten_per_run(self, service, mailer):
        for i in range(12):
            _schedule(service, when=DUE_NOW - timedelta(minutes=i))

        first = service.process_queue()
        second = service.process_queue()

        assert first.processed == 10
        assert second.processed == 2

    def test_retry_with_backoff_then_fail(self, store, clock):
        mailer = FailingMailer()
        service = ScheduledEmailService(store, USER_ID, mailer, clock=clock)
        email_id = _schedule(service)

        first = service.process_queue()
        email = service.get_scheduled_email(email_id)
        assert (first.failed, first.retried) == (1, 1)
        assert email.status is ScheduledEmailStatus.PENDING
        assert email.retry_count == 1
        assert email.next_attempt == clock.now() + timedelta(minutes=5)
        assert email.error_details[-1].code == "RETRY_SCHEDULED"

        # Not ready until the backoff has passed
        assert service.process_queue().failed == 0
        clock.advance(seconds=5 * 60)
        service.process_queue()
        email = service.get_scheduled_email(email_id)
        assert email.retry_count == 2
        assert email.next_attempt == clock.now() + timedelta(minutes=15)

        clock.advance(seconds=15 * 60)
        third = service.process_queue()
        email = service.get_scheduled_email(email_id)
        assert (third.failed, third.retried) == (1, 0)
        assert email.status is ScheduledEmailStatus.FAILED
        assert email.retry_count == 3
        assert [d.code for d in email.error_details] == [
            "RETRY_SCHEDULED", "RETRY_SCHEDULED", "MAX_RETRIES_EXCEEDED",
        ]
        assert "smtp unavailable" in email.error_message

        clock.advance(days=1)
        assert service.process_queue().failed == 0
        assert mailer.calls == 3

    def test_one_failure_does_not_stop_the_run(self, store, clock):
        mailer = FailingMailer(failures=1)
        service = ScheduledEmailService(store, USER_ID, mailer, clock=clock)
        _schedule(service, when=DUE_NOW - timedelta(hours=1))
        _schedule(service, when=DUE_NOW)

        result = service.process_queue()

        assert (result.processed, result.failed) == (1, 1)
        assert len(result.errors) == 1


class TestStaleProcessing:
    """An email left in ``processing`` by a worker that died mid-send."""

    def _strand(self, service, store, clock):
        email_id = _schedule(service)
        store.update(SCHEDULED_EMAILS, email_id, {
            "status": ScheduledEmailStatus.PROCESSING.value,
            "last_attempt": clock.now().isoformat(),
        })
        return email_id

    def test_in_flight_email_left_alone(self, service, store, clock, mailer):
        email_id = self._strand(service, store, clock)
        clock.advance(seconds=30 * 60)

        assert service.get_emails_ready_for_processing() == []
        assert service.process_queue().processed == 0
        assert service.cancel_scheduled_email(email_id) is False
        assert mailer.sent == []

    def test_stale_email_is_sent_again(self, service, store, clock, mailer, captured_logs):
        email_id = self._strand(service, store, clock)
        clock.advance(seconds=PROCESSING_TIMEOUT.seconds)

        assert [e.id for e in service.get_emails_ready_for_processing()] == [email_id]
        assert service.process_queue().processed == 1
        assert service.get_scheduled_email(email_id).status is ScheduledEmailStatus.SENT
        assert len(mailer.sent) == 1
        assert any(r["message"] == "stale_email_recovered" for r in captured_logs())

    def test_stale_email_can_be_cancelled(self, service, store, clock):
        email_id = self._strand(service, store, clock)
        clock.advance(seconds=PROCESSING_TIMEOUT.seconds + 1)

        assert service.cancel_scheduled_email(email_id) is True
        assert service.get_scheduled_email(email_id).status is ScheduledEmailStatus.CANCELLED


class TestQueueStats:

    def test_counts_by_status_and_priority(self, store, clock):
        mailer = FailingMailer(failures=1)
        service = ScheduledEmailService(store, USER_ID, mailer, clock=clock)
        failing = _schedule(service, when=DUE_NOW - timedelta(hours=1))
        _schedule(service, when=DUE_NOW)
        cancelled = _schedule(service, when=DUE_NOW + timedelta(days=1), priority="low")
        _schedule(service, when=DUE_NOW + timedelta(days=1), priority="high")
        service.cancel_scheduled_email(cancelled)
        service.process_queue()

        stats = service.get_queue_stats()

        assert service.get_scheduled_email(failing).status is ScheduledEmailStatus.PENDING
        assert (stats.pending, stats.sent, stats.cancelled, stats.failed) == (2, 1, 1, 0)
        assert stats.by_priority == {"high": 1, "normal": 1, "low": 0}
