"""
ScheduledEmailService -- deferred email delivery with retry.

Contract:
    Stores one document per scheduled email in ``scheduledEmails``.
    ``process_queue()`` sends up to ``max_per_run`` ready emails, highest
    priority first, and applies the retry rules from
    ``dunning_batch.domain.types`` to each failure.

Invariants enforced:
    - All timestamps from the injected Clock.
    - One email's failure never stops the rest of the run.
    - Terminal emails (sent, failed, cancelled) are never sent again.

Non-goals:
    - Template rendering; the Mailer receives the template id and variables.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any, Mapping

from dunning_batch.domain.types import (
    MAX_EMAILS_PER_RUN,
    MAX_RETRIES,
    EmailPriority,
    EmailQueueResult,
    EmailType,
    ErrorDetail,
    QueueStats,
    ScheduledEmail,
    ScheduledEmailStatus,
    error_detail_document,
    is_ready,
    is_stale,
    queue_order,
    retry_delay,
    to_utc,
)
from dunning_kernel.domain.clock import Clock, SystemClock
from dunning_kernel.exceptions import ScheduledEmailNotFoundError
from dunning_kernel.logging_config import LogContext, get_logger
from dunning_kernel.store.base import RecordStore, Where
from dunning_modules.reminders.mailer import Mailer

logger = get_logger("batch.email_scheduler")

SCHEDULED_EMAILS = "scheduledEmails"

_EDITABLE_FIELDS = frozenset({
    "subject",
    "scheduled_for",
    "priority",
    "recipient_email",
    "template_id",
    "variables",
})


class ScheduledEmailService:
    """Schedules, edits and delivers one user's deferred emails."""

    def __init__(
        self,
        store: RecordStore,
        user_id: str,
        mailer: Mailer,
        clock: Clock | None = None,
        max_per_run: int = MAX_EMAILS_PER_RUN,
    ):
        if max_per_run < 1:
            raise ValueError("max_per_run must be at least 1")
        self._store = store
        self._user_id = user_id
        self._mailer = mailer
        self._clock = clock or SystemClock()
        self._max_per_run = max_per_run

    # -------------------------------------------------------------------------
    # Scheduling and editing
    # -------------------------------------------------------------------------

    def schedule_email(
        self,
        email_type: EmailType | str,
        recipient_email: str,
        scheduled_for: datetime,
        template_id: str,
        *,
        subject: str = "",
        variables: Mapping[str, Any] | None = None,
        priority: EmailPriority | str = EmailPriority.NORMAL,
        invoice_id: str | None = None,
        client_id: str | None = None,
    ) -> str:
        """Store a pending email and return its id.

        Raises:
            ValueError: Unknown type or priority, missing recipient, or an
                invoice-bound type without ``invoice_id``.
        """
        email_type = EmailType(email_type)
        priority = EmailPriority(priority)
        if not recipient_email:
            raise ValueError("recipient_email is required")
        if not template_id:
            raise ValueError("template_id is required")
        _check_invoice_binding(email_type, invoice_id)

        email = ScheduledEmail(
            id="",
            user_id=self._user_id,
            email_type=email_type,
            template_id=template_id,
            recipient_email=recipient_email,
            scheduled_for=to_utc(scheduled_for),
            priority=priority,
            subject=subject,
            variables=dict(variables or {}),
            max_retries=MAX_RETRIES,
            invoice_id=invoice_id,
            client_id=client_id,
        )
        now = self._clock.now().isoformat()
        email_id = self._store.add(
            SCHEDULED_EMAILS,
            {**email.to_document(), "created_at": now, "updated_at": now},
        )
        logger.info(
            "email_scheduled",
            extra={
                "scheduled_email_id": email_id,
                "email_type": email_type.value,
                "priority": priority.value,
                "scheduled_for": email.scheduled_for.isoformat(),
            },
        )
        return email_id

    def get_scheduled_email(self, scheduled_email_id: str) -> ScheduledEmail:
        doc = self._store.get(SCHEDULED_EMAILS, scheduled_email_id)
        if doc is None or doc.get("user_id") != self._user_id:
            raise ScheduledEmailNotFoundError(scheduled_email_id)
        return ScheduledEmail.from_document(doc)

    def get_scheduled_emails(
        self,
        status: ScheduledEmailStatus | str | None = None,
        email_type: EmailType | str | None = None,
        limit: int | None = None,
    ) -> list[ScheduledEmail]:
        """The user's scheduled emails, latest ``scheduled_for`` first."""
        predicates = [Where("user_id", "==", self._user_id)]
        if status is not None:
            predicates.append(Where("status", "==", ScheduledEmailStatus(status).value))
        if email_type is not None:
            predicates.append(Where("email_type", "==", EmailType(email_type).value))
        docs = self._store.query(
            SCHEDULED_EMAILS, *predicates, order_by="-scheduled_for", limit=limit,
        )
        return [ScheduledEmail.from_document(d) for d in docs]

    def cancel_scheduled_email(self, scheduled_email_id: str) -> bool:
        """Cancel a pending email.  Returns False if it already finished."""
        email = self.get_scheduled_email(scheduled_email_id)
        in_flight = (
            email.status is ScheduledEmailStatus.PROCESSING
            and not is_stale(email, self._clock.now())
        )
        if email.status.is_terminal or in_flight:
            logger.warning(
                "email_cancel_ignored",
                extra={"scheduled_email_id": scheduled_email_id, "status": email.status.value},
            )
            return False
        self._write(scheduled_email_id, {"status": ScheduledEmailStatus.CANCELLED.value})
        logger.info("email_cancelled", extra={"scheduled_email_id": scheduled_email_id})
        return True

    def update_scheduled_email(self, scheduled_email_id: str, **changes: Any) -> ScheduledEmail:
        """Edit a pending email's content or timing.

        Raises:
            ValueError: Unknown field, or the email is no longer pending.
        """
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")
        email = self.get_scheduled_email(scheduled_email_id)
        if email.status is not ScheduledEmailStatus.PENDING:
            raise ValueError(
                f"Scheduled email {scheduled_email_id} is {email.status.value}, not pending"
            )

        if "scheduled_for" in changes:
            changes["scheduled_for"] = to_utc(changes["scheduled_for"])
        if "priority" in changes:
            changes["priority"] = EmailPriority(changes["priority"])
        updated = replace(email, **changes)
        document = updated.to_document()
        self._write(scheduled_email_id, {key: document[key] for key in changes})
        return updated

    # -------------------------------------------------------------------------
    # Queue
    # -------------------------------------------------------------------------

    def get_emails_ready_for_processing(self) -> list[ScheduledEmail]:
        """
        Pending emails whose time (and retry time) has come, plus stale
        ``processing`` emails, in queue order.
        """
        now = self._clock.now()
        docs = self._store.query(
            SCHEDULED_EMAILS,
            Where("user_id", "==", self._user_id),
            Where(
                "status",
                "in",
                (ScheduledEmailStatus.PENDING.value, ScheduledEmailStatus.PROCESSING.value),
            ),
        )
        ready = [e for e in map(ScheduledEmail.from_document, docs) if is_ready(e, now)]
        return sorted(ready, key=queue_order)

    def process_queue(self) -> EmailQueueResult:
        """Send up to ``max_per_run`` ready emails."""
        result = EmailQueueResult()
        with LogContext.bind(user_id=self._user_id):
            batch = self.get_emails_ready_for_processing()[: self._max_per_run]
            for email in batch:
                with LogContext.bind(correlation_id=email.id):
                    try:
                        self._deliver(email)
                        result.processed += 1
                    except Exception as exc:
                        result.failed += 1
                        result.errors.append(str(exc))
                        if self._handle_failure(email, exc):
                            result.retried += 1

            logger.info(
                "email_queue_processed",
                extra={
                    "processed": result.processed,
                    "failed": result.failed,
                    "retried": result.retried,
                },
            )
        return result

    def get_queue_stats(self) -> QueueStats:
        docs = self._store.query(SCHEDULED_EMAILS, Where("user_id", "==", self._user_id))
        counts = {status: 0 for status in ScheduledEmailStatus}
        by_priority = {priority.value: 0 for priority in EmailPriority}
        for email in map(ScheduledEmail.from_document, docs):
            counts[email.status] += 1
            if email.status is ScheduledEmailStatus.PENDING:
                by_priority[email.priority.value] += 1
        return QueueStats(
            pending=counts[ScheduledEmailStatus.PENDING],
            processing=counts[ScheduledEmailStatus.PROCESSING],
            sent=counts[ScheduledEmailStatus.SENT],
            failed=counts[ScheduledEmailStatus.FAILED],
            cancelled=counts[ScheduledEmailStatus.CANCELLED],
            by_priority=by_priority,
        )

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _deliver(self, email: ScheduledEmail) -> None:
        _check_invoice_binding(email.email_type, email.invoice_id)
        if email.status is ScheduledEmailStatus.PROCESSING:
            logger.warning(
                "stale_email_recovered",
                extra={
                    "scheduled_email_id": email.id,
                    "last_attempt": email.last_attempt.isoformat() if email.last_attempt else None,
                },
            )
        self._write(email.id, {
            "status": ScheduledEmailStatus.PROCESSING.value,
            "last_attempt": self._clock.now().isoformat(),
        })
        receipt = self._mailer.send(
            email.template_id,
            email.recipient_email,
            {
                **email.variables,
                "subject": email.subject,
                "email_type": email.email_type.value,
                "invoice_id": email.invoice_id,
            },
        )
        self._write(email.id, {
            "status": ScheduledEmailStatus.SENT.value,
            "processed_at": self._clock.now().isoformat(),
            "message_id": receipt.message_id,
        })
        logger.info(
            "scheduled_email_sent",
            extra={"scheduled_email_id": email.id, "message_id": receipt.message_id},
        )

    def _handle_failure(self, email: ScheduledEmail, error: Exception) -> bool:
        """Record a failed attempt.  Returns True when a retry was scheduled."""
        now = self._clock.now()
        failures = email.retry_count + 1
        retrying = failures < email.max_retries
        detail = ErrorDetail(
            code="RETRY_SCHEDULED" if retrying else "MAX_RETRIES_EXCEEDED",
            message=str(error),
            timestamp=now,
        )
        changes: dict[str, Any] = {
            "retry_count": failures,
            "error_message": str(error),
            "error_details": [
                *(error_detail_document(d) for d in email.error_details),
                error_detail_document(detail),
            ],
        }
        if retrying:
            changes["status"] = ScheduledEmailStatus.PENDING.value
            changes["next_attempt"] = to_utc(now + retry_delay(failures)).isoformat()
        else:
            changes["status"] = ScheduledEmailStatus.FAILED.value
            changes["processed_at"] = now.isoformat()

        try:
            self._write(email.id, changes)
        except Exception:
            logger.exception("email_failure_not_recorded", extra={"scheduled_email_id": email.id})
            return False

        logger.warning(
            "scheduled_email_failed",
            extra={
                "scheduled_email_id": email.id,
                "attempt": failures,
                "retrying": retrying,
                "next_attempt": changes.get("next_attempt"),
                "error": str(error),
            },
        )
        return retrying

    def _write(self, scheduled_email_id: str, changes: dict[str, Any]) -> None:
        self._store.update(
            SCHEDULED_EMAILS,
            scheduled_email_id,
            {**changes, "updated_at": self._clock.now().isoformat()},
        )


def _check_invoice_binding(email_type: EmailType, invoice_id: str | None) -> None:
    if email_type.requires_invoice and not invoice_id:
        raise ValueError(f"Invoice ID required for {email_type.value} emails")
