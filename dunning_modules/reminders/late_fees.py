"""
Late fee ledger.

Keeps the single active ``LateFee`` row per invoice current: the first
non-zero fee inserts the row, later recalculations update it in place.

Concurrency:
    Read-then-insert-or-update is safe only while a single processor runs
    for a given user at a time.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from dunning_engines.late_fee import LateFeeQuote, LateFeeType
from dunning_kernel.logging_config import get_logger
from dunning_modules.reminders.config import ReminderConfig
from dunning_modules.reminders.models import Invoice, LateFee
from dunning_modules.reminders.repository import ReminderRecords

logger = get_logger("modules.reminders.late_fees")


class LateFeeLedger:
    """Upserts the active late fee for an invoice."""

    def __init__(self, records: ReminderRecords):
        self._records = records

    def active_fee(self, invoice_id: str) -> LateFee | None:
        fees = self._records.active_late_fees(invoice_id)
        if len(fees) > 1:
            logger.warning(
                "multiple_active_late_fees",
                extra={"invoice_id": invoice_id, "count": len(fees)},
            )
        return fees[0] if fees else None

    def record(
        self,
        invoice: Invoice,
        quote: LateFeeQuote,
        config: ReminderConfig,
        calculated_at: datetime,
    ) -> LateFee:
        """Insert or refresh the invoice's active late fee from ``quote``."""
        existing = self.active_fee(invoice.id)
        timestamp = calculated_at.isoformat()

        if existing is not None:
            updated = self._records.update_late_fee(existing.id, {
                "calculated_amount": str(quote.amount),
                "calculation_date": timestamp,
                "days_past_due": quote.days_past_due,
                "breakdown": quote.breakdown,
                "updated_at": timestamp,
            })
            logger.info(
                "late_fee_updated",
                extra={
                    "late_fee_id": existing.id,
                    "previous_amount": str(existing.calculated_amount),
                    "amount": str(quote.amount),
                },
            )
            return updated

        fee = LateFee(
            id="",
            user_id=self._records.user_id,
            invoice_id=invoice.id,
            fee_type=quote.fee_type.value if quote.fee_type else str(config.late_fee_type),
            rate=(
                config.flat_fee_amount if quote.fee_type is LateFeeType.FLAT
                else config.late_fee_rate
            ),
            base_amount=invoice.total,
            calculated_amount=quote.amount,
            currency=quote.currency,
            start_date=invoice.due_date,
            calculation_date=calculated_at,
            days_past_due=quote.days_past_due,
            max_amount=quote.cap_amount,
            grace_period_used=quote.days_past_due <= config.grace_period_days,
            breakdown=quote.breakdown,
            created_at=calculated_at,
            updated_at=calculated_at,
        )
        fee_id = self._records.add_late_fee(fee)
        logger.info(
            "late_fee_created",
            extra={"late_fee_id": fee_id, "amount": str(quote.amount), "currency": quote.currency},
        )
        return replace(fee, id=fee_id)
