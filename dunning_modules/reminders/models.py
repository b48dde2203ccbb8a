"""
Payment Reminder Domain Models (``dunning_modules.reminders.models``).

Responsibility
--------------
Frozen dataclass value objects for the nouns of the reminder subsystem:
invoices and clients (read-only views of documents owned elsewhere),
payment reminders, late fee records, and the per-run processing tally.

Architecture position
---------------------
**Modules layer** -- data definitions plus document conversion.  No I/O;
services read and write the documents through a ``RecordStore``.

Document format
---------------
* Keys are the snake_case field names.
* ``Decimal`` values are stored as strings.
* Dates and datetimes are ISO 8601 strings, so ``scheduled_date`` compares
  correctly as text inside store predicates.

Invariants enforced
-------------------
* All entity models are ``frozen=True``.
* All monetary fields use ``Decimal`` -- NEVER ``float``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from dunning_engines.reminder_schedule import ReminderLevel
from dunning_kernel.store.base import Document

_ZERO = Decimal("0")


# =============================================================================
# Status enums
# =============================================================================


class InvoiceStatus(str, Enum):
    """Invoice lifecycle states, as maintained by the invoicing side."""

    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class ReminderStatus(str, Enum):
    """Reminder lifecycle states."""

    SCHEDULED = "scheduled"  # Waiting for its date
    SENT = "sent"  # Delivered to the mailer
    FAILED = "failed"  # Mailer or processing error
    CANCELLED = "cancelled"  # Invoice settled, cancelled or paused

    @property
    def is_terminal(self) -> bool:
        return self is not ReminderStatus.SCHEDULED


# =============================================================================
# Document helpers
# =============================================================================


def to_decimal(value: Any, default: Decimal = _ZERO) -> Decimal:
    if value is None or value == "":
        return default
    return Decimal(str(value))


def parse_date(value: Any) -> date:
    """Accept a date, a datetime, or an ISO string of either."""
    if isinstance(value, datetime):
        return _utc(value).date()
    if isinstance(value, date):
        return value
    text = str(value)
    if len(text) == 10:
        return date.fromisoformat(text)
    return _utc(datetime.fromisoformat(text)).date()


def parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _utc(value: datetime) -> datetime:
    return value.astimezone(timezone.utc) if value.tzinfo is not None else value


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _money(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


# =============================================================================
# Invoices and clients (read-only views)
# =============================================================================


@dataclass(frozen=True)
class Invoice:
    """The slice of an invoice document the reminder subsystem reads."""

    id: str
    user_id: str
    client_id: str
    invoice_number: str
    currency: str
    total: Decimal
    due_date: date
    status: InvoiceStatus
    total_paid: Decimal = _ZERO
    client_email: str | None = None
    client_name: str | None = None

    @property
    def has_partial_payment(self) -> bool:
        return self.total_paid > _ZERO

    @classmethod
    def from_document(cls, doc: Document) -> Invoice:
        return cls(
            id=doc["id"],
            user_id=doc["user_id"],
            client_id=doc["client_id"],
            invoice_number=doc.get("invoice_number") or doc["id"],
            currency=doc.get("currency", "PHP"),
            total=to_decimal(doc.get("total")),
            due_date=parse_date(doc["due_date"]),
            status=InvoiceStatus(doc["status"]),
            total_paid=to_decimal(doc.get("total_paid")),
            client_email=doc.get("client_email"),
            client_name=doc.get("client_name"),
        )

    def to_document(self) -> Document:
        return {
            "user_id": self.user_id,
            "client_id": self.client_id,
            "invoice_number": self.invoice_number,
            "currency": self.currency,
            "total": str(self.total),
            "due_date": self.due_date.isoformat(),
            "status": self.status.value,
            "total_paid": str(self.total_paid),
            "client_email": self.client_email,
            "client_name": self.client_name,
        }


@dataclass(frozen=True)
class Client:
    """A client who receives reminders."""

    id: str
    user_id: str
    name: str
    email: str | None = None
    cc_emails: tuple[str, ...] = ()
    company: str | None = None

    @classmethod
    def from_document(cls, doc: Document) -> Client:
        return cls(
            id=doc["id"],
            user_id=doc["user_id"],
            name=doc.get("name", ""),
            email=doc.get("email"),
            cc_emails=tuple(doc.get("cc_emails") or ()),
            company=doc.get("company"),
        )

    def to_document(self) -> Document:
        return {
            "user_id": self.user_id,
            "name": self.name,
            "email": self.email,
            "cc_emails": list(self.cc_emails),
            "company": self.company,
        }


# =============================================================================
# Reminders and late fees
# =============================================================================


@dataclass(frozen=True)
class PaymentReminder:
    """One scheduled or completed reminder attempt for an invoice."""

    id: str
    user_id: str
    invoice_id: str
    client_id: str
    level: ReminderLevel
    offset_days: int
    scheduled_date: date
    status: ReminderStatus
    subject: str
    template_type: str
    recipient_email: str
    days_past_due: int
    cc_emails: tuple[str, ...] = ()
    late_fee_amount: Decimal = _ZERO
    late_fee_percentage: Decimal = _ZERO
    sent_date: datetime | None = None
    email_id: str | None = None
    cancellation_reason: str | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_document(cls, doc: Document) -> PaymentReminder:
        return cls(
            id=doc["id"],
            user_id=doc["user_id"],
            invoice_id=doc["invoice_id"],
            client_id=doc["client_id"],
            level=ReminderLevel(doc["level"]),
            offset_days=int(doc.get("offset_days", doc.get("days_past_due", 0))),
            scheduled_date=parse_date(doc["scheduled_date"]),
            status=ReminderStatus(doc["status"]),
            subject=doc.get("subject", ""),
            template_type=doc.get("template_type", ""),
            recipient_email=doc.get("recipient_email") or "",
            days_past_due=int(doc.get("days_past_due", 0)),
            cc_emails=tuple(doc.get("cc_emails") or ()),
            late_fee_amount=to_decimal(doc.get("late_fee_amount")),
            late_fee_percentage=to_decimal(doc.get("late_fee_percentage")),
            sent_date=parse_datetime(doc.get("sent_date")),
            email_id=doc.get("email_id"),
            cancellation_reason=doc.get("cancellation_reason"),
            error_message=doc.get("error_message"),
            created_at=parse_datetime(doc.get("created_at")),
            updated_at=parse_datetime(doc.get("updated_at")),
        )

    def to_document(self) -> Document:
        return {
            "user_id": self.user_id,
            "invoice_id": self.invoice_id,
            "client_id": self.client_id,
            "level": self.level.value,
            "offset_days": self.offset_days,
            "scheduled_date": self.scheduled_date.isoformat(),
            "status": self.status.value,
            "subject": self.subject,
            "template_type": self.template_type,
            "recipient_email": self.recipient_email,
            "days_past_due": self.days_past_due,
            "cc_emails": list(self.cc_emails),
            "late_fee_amount": str(self.late_fee_amount),
            "late_fee_percentage": str(self.late_fee_percentage),
            "sent_date": _iso(self.sent_date),
            "email_id": self.email_id,
            "cancellation_reason": self.cancellation_reason,
            "error_message": self.error_message,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass(frozen=True)
class LateFee:
    """
    The computed late fee for an invoice.

    At most one row per invoice has ``is_active`` set; recalculation
    updates that row in place.
    """

    id: str
    user_id: str
    invoice_id: str
    fee_type: str
    rate: Decimal
    base_amount: Decimal
    calculated_amount: Decimal
    currency: str
    start_date: date
    calculation_date: datetime
    days_past_due: int
    max_amount: Decimal | None = None
    grace_period_used: bool = False
    is_active: bool = True
    is_waived: bool = False
    is_paid: bool = False
    breakdown: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_document(cls, doc: Document) -> LateFee:
        max_amount = doc.get("max_amount")
        return cls(
            id=doc["id"],
            user_id=doc["user_id"],
            invoice_id=doc["invoice_id"],
            fee_type=doc.get("fee_type", ""),
            rate=to_decimal(doc.get("rate")),
            base_amount=to_decimal(doc.get("base_amount")),
            calculated_amount=to_decimal(doc.get("calculated_amount")),
            currency=doc.get("currency", "PHP"),
            start_date=parse_date(doc["start_date"]),
            calculation_date=parse_datetime(doc["calculation_date"]),
            days_past_due=int(doc.get("days_past_due", 0)),
            max_amount=to_decimal(max_amount) if max_amount is not None else None,
            grace_period_used=bool(doc.get("grace_period_used", False)),
            is_active=bool(doc.get("is_active", True)),
            is_waived=bool(doc.get("is_waived", False)),
            is_paid=bool(doc.get("is_paid", False)),
            breakdown=doc.get("breakdown", ""),
            created_at=parse_datetime(doc.get("created_at")),
            updated_at=parse_datetime(doc.get("updated_at")),
        )

    def to_document(self) -> Document:
        return {
            "user_id": self.user_id,
            "invoice_id": self.invoice_id,
            "fee_type": self.fee_type,
            "rate": str(self.rate),
            "base_amount": str(self.base_amount),
            "calculated_amount": str(self.calculated_amount),
            "currency": self.currency,
            "start_date": self.start_date.isoformat(),
            "calculation_date": self.calculation_date.isoformat(),
            "days_past_due": self.days_past_due,
            "max_amount": _money(self.max_amount),
            "grace_period_used": self.grace_period_used,
            "is_active": self.is_active,
            "is_waived": self.is_waived,
            "is_paid": self.is_paid,
            "breakdown": self.breakdown,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


# =============================================================================
# Run results
# =============================================================================


@dataclass
class ProcessingResult:
    """Counters for one ``process_due_reminders`` call."""

    sent: int = 0
    failed: int = 0
    skipped: int = 0
    deferred: int = 0
    failures: list[tuple[str, str]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.sent + self.failed + self.skipped + self.deferred

    def as_dict(self) -> dict[str, int]:
        return {
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "deferred": self.deferred,
        }
