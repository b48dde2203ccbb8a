"""
Reminder Scheduler (``dunning_modules.reminders.scheduler``).

Responsibility
--------------
Turns an eligible invoice into its full set of ``scheduled`` payment
reminders: one per (level, day offset) in the client's effective schedule,
dated from the invoice due date and shifted off weekends when configured.
Each reminder carries the subject line, template, recipients and a preview
of the late fee expected at its offset.  The authoritative fee is
recomputed when the reminder is sent.

Invariants enforced
-------------------
* Exactly one reminder per (invoice, level, offset) -- a second call for an
  invoice that already has reminders raises
  ``RemindersAlreadyScheduledError``; nothing is deleted or rewritten.
* Draft and paid invoices produce no reminders (not an error).

Failure modes
-------------
* Missing invoice (or another user's)  -> ``InvoiceNotFoundError``.
* Existing reminders  -> ``RemindersAlreadyScheduledError``.
* Store failure mid-way  -> ``RecordStoreError`` propagates; reminders
  already written stay written.
"""

from __future__ import annotations

from dataclasses import replace

from dunning_engines.reminder_schedule import build_schedule, reminder_subject
from dunning_kernel.domain.clock import Clock, SystemClock
from dunning_kernel.domain.currency import RateProvider
from dunning_kernel.exceptions import InvoiceNotFoundError, RemindersAlreadyScheduledError
from dunning_kernel.logging_config import LogContext, get_logger
from dunning_kernel.store.base import RecordStore
from dunning_modules.reminders.config import ReminderConfig
from dunning_modules.reminders.fees import LateFeeCalculator
from dunning_modules.reminders.models import InvoiceStatus, PaymentReminder, ReminderStatus
from dunning_modules.reminders.repository import ReminderRecords

logger = get_logger("modules.reminders.scheduler")

_NOT_REMINDABLE = frozenset({InvoiceStatus.DRAFT, InvoiceStatus.PAID})


class ReminderScheduler:
    """Creates the reminder rows for one user's invoices."""

    def __init__(
        self,
        store: RecordStore,
        config: ReminderConfig,
        user_id: str,
        clock: Clock | None = None,
        rate_provider: RateProvider | None = None,
    ):
        self._records = ReminderRecords(store, user_id)
        self._config = config
        self._user_id = user_id
        self._clock = clock or SystemClock()
        self._calculator = LateFeeCalculator(config, rate_provider)

    def schedule_reminders(self, invoice_id: str) -> list[PaymentReminder]:
        """
        Create the scheduled reminders for an invoice.

        Returns:
            The created reminders in escalation order; empty for draft and
            paid invoices.
        """
        with LogContext.bind(user_id=self._user_id, invoice_id=invoice_id):
            invoice = self._records.get_invoice(invoice_id)
            if invoice is None:
                raise InvoiceNotFoundError(invoice_id)

            if invoice.status in _NOT_REMINDABLE:
                logger.info(
                    "reminder_scheduling_skipped",
                    extra={"invoice_status": invoice.status.value},
                )
                return []

            existing = self._records.reminders_for_invoice(invoice_id)
            if existing:
                raise RemindersAlreadyScheduledError(invoice_id, len(existing))

            config = self._config.for_client(invoice.client_id)
            client = self._records.get_client(invoice.client_id)
            recipient = invoice.client_email or (client.email if client else None) or ""
            cc_emails = client.cc_emails if client else ()

            steps = build_schedule(
                invoice.due_date,
                config.schedule,
                skip_weekends=config.skip_weekends,
                max_reminders=config.max_reminders,
            )

            now = self._clock.now()
            created: list[PaymentReminder] = []
            for step in steps:
                quote = self._calculator.calculate_late_fee(invoice, step.offset_days)
                reminder = PaymentReminder(
                    id="",
                    user_id=self._user_id,
                    invoice_id=invoice.id,
                    client_id=invoice.client_id,
                    level=step.level,
                    offset_days=step.offset_days,
                    scheduled_date=step.scheduled_date,
                    status=ReminderStatus.SCHEDULED,
                    subject=reminder_subject(step.level, invoice.invoice_number, step.offset_days),
                    template_type=config.email_templates[step.level],
                    recipient_email=recipient,
                    days_past_due=step.offset_days,
                    cc_emails=cc_emails,
                    late_fee_amount=quote.amount,
                    late_fee_percentage=quote.percentage,
                    created_at=now,
                    updated_at=now,
                )
                reminder_id = self._records.add_reminder(reminder)
                created.append(replace(reminder, id=reminder_id))

            logger.info(
                "reminders_scheduled",
                extra={
                    "count": len(created),
                    "levels": sorted({r.level.value for r in created}),
                    "first_date": created[0].scheduled_date.isoformat() if created else None,
                },
            )
            return created

