"""
dunning_batch.domain.types -- Pure types for scheduled email.  ZERO I/O.

Frozen dataclasses with enum status fields, and the pure retry/readiness
rules the scheduled-email service applies.

Rules:
    - A pending email is ready once ``scheduled_for`` has passed and, after a
      failed attempt, once ``next_attempt`` has passed.
    - Failure N (1-based) below ``max_retries`` schedules a retry after
      ``RETRY_DELAYS_MINUTES[N-1]`` minutes (60 beyond the table); failure
      number ``max_retries`` marks the email failed.
    - An email left in ``processing`` for longer than ``PROCESSING_TIMEOUT``
      (the longest retry delay) is stale: its worker died mid-send.  A stale
      email is ready again and may be cancelled.  Recovery can send an email
      twice if the worker died after the mailer accepted it.
    - Queue order is priority (high, normal, low), then ``scheduled_for``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from dunning_kernel.store.base import Document

MAX_RETRIES = 3
RETRY_DELAYS_MINUTES: tuple[int, ...] = (5, 15, 60)
DEFAULT_RETRY_DELAY_MINUTES = 60
MAX_EMAILS_PER_RUN = 10
PROCESSING_TIMEOUT = timedelta(
    minutes=max(*RETRY_DELAYS_MINUTES, DEFAULT_RETRY_DELAY_MINUTES),
)


# =============================================================================
# Enums
# =============================================================================


class EmailType(str, Enum):
    """Kinds of scheduled email."""

    INVOICE = "invoice"
    REMINDER = "reminder"
    PAYMENT_CONFIRMATION = "payment_confirmation"

    @property
    def requires_invoice(self) -> bool:
        return self in _INVOICE_BOUND


_INVOICE_BOUND = frozenset({
    EmailType.INVOICE,
    EmailType.REMINDER,
    EmailType.PAYMENT_CONFIRMATION,
})


class EmailPriority(str, Enum):
    """Queue priority."""

    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    EmailPriority.HIGH: 1,
    EmailPriority.NORMAL: 2,
    EmailPriority.LOW: 3,
}


class ScheduledEmailStatus(str, Enum):
    """Scheduled email lifecycle."""

    PENDING = "pending"  # Waiting for its time or a retry
    PROCESSING = "processing"  # Send in progress
    SENT = "sent"
    FAILED = "failed"  # Retries exhausted
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ScheduledEmailStatus.SENT,
            ScheduledEmailStatus.FAILED,
            ScheduledEmailStatus.CANCELLED,
        )


# =============================================================================
# DTOs
# =============================================================================


def to_utc(moment: datetime) -> datetime:
    """Aware UTC datetime; naive input is taken to be UTC already."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _parse(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    return to_utc(datetime.fromisoformat(str(value)))


@dataclass(frozen=True)
class ErrorDetail:
    """One failed delivery attempt."""

    code: str  # RETRY_SCHEDULED or MAX_RETRIES_EXCEEDED
    message: str
    timestamp: datetime


@dataclass(frozen=True)
class ScheduledEmail:
    """Immutable snapshot of a scheduled email document."""

    id: str
    user_id: str
    email_type: EmailType
    template_id: str
    recipient_email: str
    scheduled_for: datetime
    priority: EmailPriority = EmailPriority.NORMAL
    status: ScheduledEmailStatus = ScheduledEmailStatus.PENDING
    subject: str = ""
    variables: dict[str, Any] = field(default_factory=dict)
    retry_count: int = 0
    max_retries: int = MAX_RETRIES
    invoice_id: str | None = None
    client_id: str | None = None
    next_attempt: datetime | None = None
    last_attempt: datetime | None = None
    processed_at: datetime | None = None
    error_message: str | None = None
    error_details: tuple[ErrorDetail, ...] = ()

    @classmethod
    def from_document(cls, doc: Document) -> ScheduledEmail:
        return cls(
            id=doc["id"],
            user_id=doc["user_id"],
            email_type=EmailType(doc["email_type"]),
            template_id=doc["template_id"],
            recipient_email=doc["recipient_email"],
            scheduled_for=_parse(doc["scheduled_for"]),
            priority=EmailPriority(doc.get("priority", EmailPriority.NORMAL.value)),
            status=ScheduledEmailStatus(doc.get("status", ScheduledEmailStatus.PENDING.value)),
            subject=doc.get("subject", ""),
            variables=dict(doc.get("variables") or {}),
            retry_count=int(doc.get("retry_count", 0)),
            max_retries=int(doc.get("max_retries", MAX_RETRIES)),
            invoice_id=doc.get("invoice_id"),
            client_id=doc.get("client_id"),
            next_attempt=_parse(doc.get("next_attempt")),
            last_attempt=_parse(doc.get("last_attempt")),
            processed_at=_parse(doc.get("processed_at")),
            error_message=doc.get("error_message"),
            error_details=tuple(
                ErrorDetail(d["code"], d["message"], _parse(d["timestamp"]))
                for d in doc.get("error_details") or ()
            ),
        )

    def to_document(self) -> Document:
        return {
            "user_id": self.user_id,
            "email_type": self.email_type.value,
            "template_id": self.template_id,
            "recipient_email": self.recipient_email,
            "scheduled_for": to_utc(self.scheduled_for).isoformat(),
            "priority": self.priority.value,
            "status": self.status.value,
            "subject": self.subject,
            "variables": dict(self.variables),
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "invoice_id": self.invoice_id,
            "client_id": self.client_id,
            "next_attempt": _iso(self.next_attempt),
            "last_attempt": _iso(self.last_attempt),
            "processed_at": _iso(self.processed_at),
            "error_message": self.error_message,
            "error_details": [error_detail_document(d) for d in self.error_details],
        }


def _iso(value: datetime | None) -> str | None:
    return to_utc(value).isoformat() if value is not None else None


def error_detail_document(detail: ErrorDetail) -> Document:
    return {
        "code": detail.code,
        "message": detail.message,
        "timestamp": to_utc(detail.timestamp).isoformat(),
    }


@dataclass(frozen=True)
class QueueStats:
    """Counts of scheduled emails by status, and pending ones by priority."""

    pending: int = 0
    processing: int = 0
    sent: int = 0
    failed: int = 0
    cancelled: int = 0
    by_priority: dict[str, int] = field(default_factory=dict)


@dataclass
class EmailQueueResult:
    """Outcome of one ``process_queue`` call."""

    processed: int = 0
    failed: int = 0
    retried: int = 0
    errors: list[str] = field(default_factory=list)


# =============================================================================
# Pure rules
# =============================================================================


def retry_delay(failure_number: int) -> timedelta:
    """Backoff after the given (1-based) failed attempt."""
    if 1 <= failure_number <= len(RETRY_DELAYS_MINUTES):
        return timedelta(minutes=RETRY_DELAYS_MINUTES[failure_number - 1])
    return timedelta(minutes=DEFAULT_RETRY_DELAY_MINUTES)


def is_stale(email: ScheduledEmail, now: datetime) -> bool:
    """True for an email stuck in ``processing`` past ``PROCESSING_TIMEOUT``."""
    if email.status is not ScheduledEmailStatus.PROCESSING:
        return False
    if email.last_attempt is None:
        return True
    return email.last_attempt <= to_utc(now) - PROCESSING_TIMEOUT


def is_ready(email: ScheduledEmail, now: datetime) -> bool:
    """True when a pending or stale email may be attempted at ``now``."""
    if is_stale(email, now):
        return True
    if email.status is not ScheduledEmailStatus.PENDING:
        return False
    now = to_utc(now)
    if email.scheduled_for > now:
        return False
    return email.next_attempt is None or email.next_attempt <= now


def queue_order(email: ScheduledEmail) -> tuple[int, datetime]:
    return (email.priority.rank, email.scheduled_for)
