"""
Reminder Processor (``dunning_modules.reminders.processor``).

Responsibility
--------------
Sends the reminders that have come due.  For each scheduled reminder dated
on or before the processing instant, re-validates the invoice, recomputes
the late fee for the days actually elapsed, sends through the ``Mailer``
and records the outcome on the reminder and in the late fee ledger.

Per-reminder state machine
--------------------------
* Invoice missing, paid or cancelled  -> ``cancelled`` ("Invoice status
  changed"), counted as skipped.
* Partial payment and the policy pauses on it  -> ``cancelled`` ("Paused:
  Partial payment received"), counted as skipped; the mailer is not called.
* Auto-send disabled for the client  -> left ``scheduled``, counted as
  deferred.
* Mailer accepted  -> ``sent`` with send date, message id and fee; the
  active late fee is inserted or refreshed when the fee is non-zero.
* Any exception  -> ``failed`` with the error message, counted as failed.
  Failed reminders are not retried; later levels are the retry.

Failure modes
-------------
* Only a failure fetching the scheduled reminders aborts the call, raised
  as ``ReminderBatchFetchError``.  The fetch happens once, on the first
  call; afterwards the ``ReminderQueue`` is kept current through a record
  store subscription.  Everything after that is per reminder and never
  stops the rest of the batch.

Concurrency
-----------
One processor per user at a time.  Nothing here locks across documents.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from dunning_engines.reminder_schedule import days_past_due, utc_date
from dunning_kernel.domain.clock import Clock, SystemClock
from dunning_kernel.domain.currency import RateProvider, format_money
from dunning_kernel.exceptions import (
    MailTransportError,
    ReminderBatchFetchError,
)
from dunning_kernel.logging_config import LogContext, get_logger
from dunning_kernel.store.base import RecordStore, Unsubscribe
from dunning_modules.reminders.config import ReminderConfig
from dunning_modules.reminders.fees import LateFeeCalculator
from dunning_modules.reminders.late_fees import LateFeeLedger
from dunning_modules.reminders.mailer import MailReceipt, Mailer
from dunning_modules.reminders.models import (
    Invoice,
    InvoiceStatus,
    PaymentReminder,
    ProcessingResult,
    ReminderStatus,
)
from dunning_modules.reminders.queue import ReminderQueue
from dunning_modules.reminders.repository import ReminderRecords
from dunning_modules.reminders.workflows import check_transition

logger = get_logger("modules.reminders.processor")

CANCEL_REASON_INVOICE_CHANGED = "Invoice status changed"
CANCEL_REASON_PARTIAL_PAYMENT = "Paused: Partial payment received"

_SETTLED = frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED})

# Per-reminder outcomes
_SENT = "sent"
_SKIPPED = "skipped"
_DEFERRED = "deferred"


class ReminderProcessor:
    """
    Processes one user's due reminders.

    Contract
    --------
    ``process_due_reminders(now)`` returns a ``ProcessingResult`` with
    ``sent``, ``failed``, ``skipped`` and ``deferred`` counters.

    Guarantees
    ----------
    * A reminder's status only moves ``scheduled -> sent|failed|cancelled``.
    * One reminder's failure never prevents processing of the others.
    * At most ``config.max_sends_per_run`` reminders are sent, skipped or
      failed per call when set; the rest stay scheduled for the next call.
      Deferred reminders do not count against the limit.
    """

    def __init__(
        self,
        store: RecordStore,
        config: ReminderConfig,
        user_id: str,
        mailer: Mailer,
        clock: Clock | None = None,
        rate_provider: RateProvider | None = None,
        queue: ReminderQueue | None = None,
    ):
        self._records = ReminderRecords(store, user_id)
        self._config = config
        self._user_id = user_id
        self._mailer = mailer
        self._clock = clock or SystemClock()
        self._calculator = LateFeeCalculator(config, rate_provider)
        self._ledger = LateFeeLedger(self._records)
        self._queue = queue or ReminderQueue()
        self._unsubscribe: Unsubscribe | None = None

    @property
    def queue(self) -> ReminderQueue:
        return self._queue

    def process_due_reminders(self, now: datetime | None = None) -> ProcessingResult:
        """
        Process every scheduled reminder due at ``now``.

        The first call loads the queue from the record store and subscribes
        it to reminder changes; later calls pop due reminders from the
        queue without querying the store again.

        Raises:
            ReminderBatchFetchError: The scheduled reminders could not be
                fetched on the first call.
        """
        now = now or self._clock.now()
        today = utc_date(now)
        limit = self._config.max_sends_per_run
        result = ProcessingResult()

        with LogContext.bind(user_id=self._user_id, run_id=uuid4().hex):
            if self._unsubscribe is None:
                self._load_queue()

            logger.info(
                "reminder_batch_started",
                extra={"queued": len(self._queue), "max_sends_per_run": limit},
            )

            deferred: list[PaymentReminder] = []
            handled = 0
            while limit is None or handled < limit:
                reminder = self._queue.pop(as_of=today)
                if reminder is None:
                    break
                with LogContext.bind(reminder_id=reminder.id, invoice_id=reminder.invoice_id):
                    try:
                        outcome = self._process_one(reminder, now)
                    except Exception as exc:
                        logger.warning(
                            "reminder_failed",
                            extra={
                                "reminder_level": reminder.level.value,
                                "error": str(exc),
                                "error_type": type(exc).__name__,
                            },
                        )
                        self._mark_failed(reminder, str(exc), now)
                        result.failed += 1
                        result.failures.append((reminder.id, str(exc)))
                        handled += 1
                        continue

                if outcome == _DEFERRED:
                    # Deferred reminders do not use a send slot
                    deferred.append(reminder)
                    result.deferred += 1
                    continue

                handled += 1
                if outcome == _SENT:
                    result.sent += 1
                else:
                    result.skipped += 1

            for reminder in deferred:
                self._queue.push(reminder)

            logger.info("reminder_batch_processed", extra=result.as_dict())

        return result

    def close(self) -> None:
        """Stop mirroring reminder changes into the queue."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _load_queue(self) -> None:
        try:
            unsubscribe = self._records.subscribe_reminders(self._queue.on_change)
        except Exception as exc:
            logger.error("reminder_batch_fetch_failed", extra={"error": str(exc)})
            raise ReminderBatchFetchError(self._user_id, str(exc)) from exc
        try:
            scheduled = self._records.scheduled_reminders()
        except Exception as exc:
            unsubscribe()
            logger.error("reminder_batch_fetch_failed", extra={"error": str(exc)})
            raise ReminderBatchFetchError(self._user_id, str(exc)) from exc
        self._queue.sync(scheduled)
        self._unsubscribe = unsubscribe
        logger.info("reminder_queue_loaded", extra={"queued": len(self._queue)})

    # =========================================================================
    # Per-reminder processing
    # =========================================================================

    def _process_one(self, reminder: PaymentReminder, now: datetime) -> str:
        invoice = self._records.get_invoice(reminder.invoice_id)
        if invoice is None or invoice.status in _SETTLED:
            self._transition(
                reminder, ReminderStatus.CANCELLED, now,
                cancellation_reason=CANCEL_REASON_INVOICE_CHANGED,
            )
            logger.info(
                "reminder_cancelled",
                extra={
                    "reason": CANCEL_REASON_INVOICE_CHANGED,
                    "invoice_status": invoice.status.value if invoice else None,
                },
            )
            return _SKIPPED

        config = self._config.for_client(invoice.client_id)

        if config.pause_on_partial_payment and invoice.has_partial_payment:
            self._transition(
                reminder, ReminderStatus.CANCELLED, now,
                cancellation_reason=CANCEL_REASON_PARTIAL_PAYMENT,
            )
            logger.info(
                "reminder_paused",
                extra={"total_paid": str(invoice.total_paid)},
            )
            return _SKIPPED

        if not config.auto_send_enabled:
            logger.info("reminder_deferred", extra={"reminder_level": reminder.level.value})
            return _DEFERRED

        elapsed = days_past_due(invoice.due_date, now)
        quote = self._calculator.calculate_late_fee(invoice, elapsed)
        receipt = self._send(reminder, invoice, quote.amount, quote.breakdown, elapsed)

        self._transition(
            reminder, ReminderStatus.SENT, now,
            sent_date=now.isoformat(),
            email_id=receipt.message_id,
            late_fee_amount=str(quote.amount),
            late_fee_percentage=str(quote.percentage),
            days_past_due=elapsed,
        )

        if quote.amount > 0:
            try:
                self._ledger.record(invoice, quote, config, now)
            except Exception:
                # The email is out; a ledger miss is repaired by the next send
                logger.exception("late_fee_upsert_failed", extra={"amount": str(quote.amount)})

        logger.info(
            "reminder_sent",
            extra={
                "reminder_level": reminder.level.value,
                "message_id": receipt.message_id,
                "days_past_due": elapsed,
                "late_fee": str(quote.amount),
            },
        )
        return _SENT

    def _send(
        self,
        reminder: PaymentReminder,
        invoice: Invoice,
        late_fee: Decimal,
        breakdown: str,
        elapsed: int,
    ) -> MailReceipt:
        variables = {
            "subject": reminder.subject,
            "level": reminder.level.value,
            "invoice_number": invoice.invoice_number,
            "client_name": invoice.client_name or "",
            "amount_due": format_money(invoice.total - invoice.total_paid, invoice.currency),
            "due_date": invoice.due_date.isoformat(),
            "days_past_due": elapsed,
            "late_fee": format_money(late_fee, invoice.currency),
            "late_fee_breakdown": breakdown,
            "cc_emails": list(reminder.cc_emails),
        }
        try:
            return self._mailer.send(reminder.template_type, reminder.recipient_email, variables)
        except MailTransportError:
            raise
        except Exception as exc:
            raise MailTransportError(
                reminder.template_type, reminder.recipient_email, str(exc),
            ) from exc

    # =========================================================================
    # Status changes
    # =========================================================================

    def _transition(
        self,
        reminder: PaymentReminder,
        to_status: ReminderStatus,
        now: datetime,
        **changes,
    ) -> PaymentReminder:
        check_transition(reminder.id, reminder.status, to_status)
        return self._records.update_reminder(reminder.id, {
            **changes,
            "status": to_status.value,
            "updated_at": now.isoformat(),
        })

    def _mark_failed(self, reminder: PaymentReminder, message: str, now: datetime) -> None:
        try:
            current = self._records.get_reminder(reminder.id)
            if current is None or current.status is not ReminderStatus.SCHEDULED:
                logger.warning(
                    "reminder_failure_not_recorded",
                    extra={"current_status": current.status.value if current else None},
                )
                return
            self._transition(current, ReminderStatus.FAILED, now, error_message=message)
        except Exception:
            logger.exception("reminder_mark_failed_error")
