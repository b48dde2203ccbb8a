"""
Reminder record access, scoped to one user.

Reads and writes the ``invoices``, ``clients``, ``paymentReminders`` and
``lateFees`` collections.  Documents owned by another user read as missing.
"""

from __future__ import annotations

from typing import Any

from dunning_kernel.store.base import (
    ChangeCallback,
    Document,
    RecordStore,
    Unsubscribe,
    Where,
)
from dunning_modules.reminders.models import (
    Client,
    Invoice,
    LateFee,
    PaymentReminder,
    ReminderStatus,
)

INVOICES = "invoices"
CLIENTS = "clients"
PAYMENT_REMINDERS = "paymentReminders"
LATE_FEES = "lateFees"


class ReminderRecords:
    """Typed, user-scoped view over the record store."""

    def __init__(self, store: RecordStore, user_id: str):
        self._store = store
        self.user_id = user_id

    @property
    def store(self) -> RecordStore:
        return self._store

    # Invoices and clients

    def get_invoice(self, invoice_id: str) -> Invoice | None:
        doc = self._owned(self._store.get(INVOICES, invoice_id))
        return Invoice.from_document(doc) if doc is not None else None

    def get_client(self, client_id: str | None) -> Client | None:
        if not client_id:
            return None
        doc = self._owned(self._store.get(CLIENTS, client_id))
        return Client.from_document(doc) if doc is not None else None

    # Reminders

    def get_reminder(self, reminder_id: str) -> PaymentReminder | None:
        doc = self._owned(self._store.get(PAYMENT_REMINDERS, reminder_id))
        return PaymentReminder.from_document(doc) if doc is not None else None

    def reminders_for_invoice(self, invoice_id: str) -> list[PaymentReminder]:
        docs = self._store.query(
            PAYMENT_REMINDERS,
            Where("user_id", "==", self.user_id),
            Where("invoice_id", "==", invoice_id),
            order_by=["scheduled_date", "offset_days"],
        )
        return [PaymentReminder.from_document(d) for d in docs]

    def scheduled_reminders(self) -> list[PaymentReminder]:
        """Every reminder still waiting to be sent, whatever its date."""
        docs = self._store.query(
            PAYMENT_REMINDERS,
            Where("user_id", "==", self.user_id),
            Where("status", "==", ReminderStatus.SCHEDULED.value),
        )
        return [PaymentReminder.from_document(d) for d in docs]

    def subscribe_reminders(self, callback: ChangeCallback) -> Unsubscribe:
        return self._store.subscribe(
            PAYMENT_REMINDERS, [Where("user_id", "==", self.user_id)], callback,
        )

    def all_reminders(self) -> list[PaymentReminder]:
        docs = self._store.query(PAYMENT_REMINDERS, Where("user_id", "==", self.user_id))
        return [PaymentReminder.from_document(d) for d in docs]

    def add_reminder(self, reminder: PaymentReminder) -> str:
        return self._store.add(PAYMENT_REMINDERS, reminder.to_document())

    def update_reminder(self, reminder_id: str, changes: dict[str, Any]) -> PaymentReminder:
        return PaymentReminder.from_document(
            self._store.update(PAYMENT_REMINDERS, reminder_id, changes)
        )

    # Late fees

    def active_late_fees(self, invoice_id: str | None = None) -> list[LateFee]:
        predicates = [
            Where("user_id", "==", self.user_id),
            Where("is_active", "==", True),
        ]
        if invoice_id is not None:
            predicates.append(Where("invoice_id", "==", invoice_id))
        docs = self._store.query(LATE_FEES, *predicates, order_by="created_at")
        return [LateFee.from_document(d) for d in docs]

    def all_late_fees(self) -> list[LateFee]:
        docs = self._store.query(LATE_FEES, Where("user_id", "==", self.user_id))
        return [LateFee.from_document(d) for d in docs]

    def add_late_fee(self, fee: LateFee) -> str:
        return self._store.add(LATE_FEES, fee.to_document())

    def update_late_fee(self, fee_id: str, changes: dict[str, Any]) -> LateFee:
        return LateFee.from_document(self._store.update(LATE_FEES, fee_id, changes))

    def _owned(self, doc: Document | None) -> Document | None:
        if doc is None or doc.get("user_id") != self.user_id:
            return None
        return doc
