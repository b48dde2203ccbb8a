"""
Reminder analytics.

Read-only aggregates over one user's reminders and late fees: volume by
level and status, late fee totals, how many reminded invoices ended up
paid, and which clients need the most chasing.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass
from decimal import Decimal

from dunning_engines.reminder_schedule import ReminderLevel
from dunning_kernel.domain.currency import round_money
from dunning_kernel.logging_config import get_logger
from dunning_kernel.store.base import RecordStore
from dunning_modules.reminders.models import InvoiceStatus, ReminderStatus
from dunning_modules.reminders.repository import ReminderRecords

logger = get_logger("modules.reminders.analytics")


@dataclass(frozen=True)
class ClientRanking:
    """A client's position in a ranking."""

    client_id: str
    client_name: str
    value: Decimal


@dataclass(frozen=True)
class ReminderAnalytics:
    """Aggregate reminder and late fee figures for one user."""

    total_reminders: int
    reminders_by_level: dict[str, int]
    reminders_by_status: dict[str, int]
    payment_rate: Decimal
    total_late_fees: Decimal
    average_late_fee: Decimal
    late_fees_by_type: dict[str, Decimal]
    clients_with_most_reminders: tuple[ClientRanking, ...]
    clients_with_highest_late_fees: tuple[ClientRanking, ...]


def compute_reminder_analytics(
    store: RecordStore,
    user_id: str,
    top_n: int = 5,
) -> ReminderAnalytics:
    """
    Build analytics for ``user_id``.

    ``payment_rate`` is the percentage of invoices with at least one sent
    reminder that are now paid.  Late fee figures cover fees that are not
    waived; amounts are summed as stored, without currency conversion.
    """
    records = ReminderRecords(store, user_id)
    reminders = records.all_reminders()
    fees = [fee for fee in records.all_late_fees() if not fee.is_waived]

    by_level = {level.value: 0 for level in ReminderLevel}
    by_status = {status.value: 0 for status in ReminderStatus}
    per_client: Counter[str] = Counter()
    reminded_invoices: set[str] = set()
    for reminder in reminders:
        by_level[reminder.level.value] += 1
        by_status[reminder.status.value] += 1
        per_client[reminder.client_id] += 1
        if reminder.status is ReminderStatus.SENT:
            reminded_invoices.add(reminder.invoice_id)

    paid = 0
    invoice_clients: dict[str, str] = {}
    for invoice_id in reminded_invoices:
        invoice = records.get_invoice(invoice_id)
        if invoice is None:
            continue
        invoice_clients[invoice_id] = invoice.client_id
        if invoice.status is InvoiceStatus.PAID:
            paid += 1
    payment_rate = (
        round_money(Decimal(paid) / Decimal(len(reminded_invoices)) * 100)
        if reminded_invoices else Decimal("0.00")
    )

    total_fees = sum((fee.calculated_amount for fee in fees), Decimal("0"))
    by_type: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    fees_per_client: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    for fee in fees:
        by_type[fee.fee_type] += fee.calculated_amount
        client_id = invoice_clients.get(fee.invoice_id)
        if client_id is None:
            invoice = records.get_invoice(fee.invoice_id)
            client_id = invoice.client_id if invoice else None
        if client_id is not None:
            fees_per_client[client_id] += fee.calculated_amount

    names: dict[str, str] = {}

    def client_name(client_id: str) -> str:
        if client_id not in names:
            client = records.get_client(client_id)
            names[client_id] = client.name if client else client_id
        return names[client_id]

    most_reminded = tuple(
        ClientRanking(cid, client_name(cid), Decimal(count))
        for cid, count in per_client.most_common(top_n)
    )
    highest_fees = tuple(
        ClientRanking(cid, client_name(cid), round_money(amount))
        for cid, amount in sorted(
            fees_per_client.items(), key=lambda item: item[1], reverse=True,
        )[:top_n]
    )

    analytics = ReminderAnalytics(
        total_reminders=len(reminders),
        reminders_by_level=by_level,
        reminders_by_status=by_status,
        payment_rate=payment_rate,
        total_late_fees=round_money(total_fees),
        average_late_fee=round_money(total_fees / len(fees)) if fees else Decimal("0.00"),
        late_fees_by_type={k: round_money(v) for k, v in sorted(by_type.items())},
        clients_with_most_reminders=most_reminded,
        clients_with_highest_late_fees=highest_fees,
    )

    logger.info(
        "reminder_analytics_computed",
        extra={
            "total_reminders": analytics.total_reminders,
            "payment_rate": str(analytics.payment_rate),
            "total_late_fees": str(analytics.total_late_fees),
        },
    )
    return analytics
