"""
Late Fee Engine.

Pure functions with deterministic behavior. No I/O.

Calculates the late fee owed on an overdue invoice from the number of days
past due and a fee policy:

- flat:       fixed configured amount
- percentage: base * rate/100
- daily:      base * rate/100 * (days - grace)          (simple accrual)
- compound:   base * ((1 + rate/100)^(days - grace) - 1)

The result is clamped to ``base * max_fee_fraction``, converted from the
platform base currency into the invoice currency through a ``RateProvider``
and rounded half-up to two places.

An unrecognised fee type yields a zero fee with a descriptive breakdown
instead of raising, so one bad client policy never blocks a batch.

Usage:
    from dunning_engines.late_fee import LateFeePolicy, calculate_late_fee

    policy = LateFeePolicy(fee_type="daily", rate=Decimal("2"), grace_period_days=3)
    quote = calculate_late_fee(Decimal("10000"), "PHP", 10, policy)
    quote.amount      # Decimal("1400.00")
    quote.percentage  # Decimal("14.00")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from dunning_kernel.domain.currency import (
    BASE_CURRENCY,
    RateProvider,
    StaticRateProvider,
    format_money,
    round_money,
)
from dunning_kernel.logging_config import get_logger

logger = get_logger("engines.late_fee")

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


class LateFeeType(str, Enum):
    """How a late fee accrues."""

    FLAT = "flat"
    PERCENTAGE = "percentage"
    DAILY = "daily"
    COMPOUND = "compound"

    @classmethod
    def parse(cls, value: LateFeeType | str | None) -> LateFeeType | None:
        """Return the matching member, or None for anything unrecognised."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class LateFeePolicy:
    """
    Fee parameters after client overrides have been resolved.

    ``rate`` is in percent units (2 means 2%); ``max_fee_fraction`` is a
    fraction of the base amount (0.25 means 25%).  ``fee_type`` stays a raw
    string when the configured value is not a known type.
    """

    enabled: bool = True
    fee_type: LateFeeType | str = LateFeeType.DAILY
    rate: Decimal = Decimal("2")
    flat_amount: Decimal = Decimal("50")
    grace_period_days: int = 3
    max_fee_fraction: Decimal = Decimal("0.25")
    base_currency: str = BASE_CURRENCY


@dataclass(frozen=True)
class LateFeeQuote:
    """Result of a late fee calculation, in the invoice currency."""

    amount: Decimal
    percentage: Decimal
    fee_type: LateFeeType | None
    breakdown: str
    currency: str
    days_past_due: int
    effective_days: int = 0
    capped: bool = False
    cap_amount: Decimal | None = None

    @property
    def is_zero(self) -> bool:
        return self.amount == _ZERO


def _format_percent(value: Decimal) -> str:
    return format(value.normalize(), "f")


def _zero_quote(
    reason: str,
    currency: str,
    days_past_due: int,
    fee_type: LateFeeType | None,
) -> LateFeeQuote:
    return LateFeeQuote(
        amount=Decimal("0.00"),
        percentage=Decimal("0.00"),
        fee_type=fee_type,
        breakdown=reason,
        currency=currency,
        days_past_due=days_past_due,
    )


def calculate_late_fee(
    base_amount: Decimal,
    currency: str,
    days_past_due: int,
    policy: LateFeePolicy,
    rate_provider: RateProvider | None = None,
) -> LateFeeQuote:
    """
    Calculate the late fee for an invoice amount.

    Pure function.

    Args:
        base_amount: Invoice total the fee is computed on.
        currency: Invoice currency (the fee is returned in this currency).
        days_past_due: Whole days since the due date.
        policy: Effective fee policy.
        rate_provider: Conversion source; defaults to the static rate table.

    Returns:
        LateFeeQuote with amount and percentage rounded half-up to 2 places.
    """
    fee_type = LateFeeType.parse(policy.fee_type)

    if not policy.enabled:
        return _zero_quote("Late fees disabled", currency, days_past_due, fee_type)

    if days_past_due <= policy.grace_period_days:
        return _zero_quote("Within grace period", currency, days_past_due, fee_type)

    if base_amount <= _ZERO:
        return _zero_quote("No outstanding amount", currency, days_past_due, fee_type)

    if fee_type is None:
        logger.warning("late_fee_type_unrecognized", extra={
            "fee_type": str(policy.fee_type),
        })
        return _zero_quote(
            f"No late fee configured (unrecognized type '{policy.fee_type}')",
            currency,
            days_past_due,
            None,
        )

    effective_days = days_past_due - policy.grace_period_days
    rate_fraction = policy.rate / _HUNDRED
    rate_label = _format_percent(policy.rate)

    if fee_type is LateFeeType.FLAT:
        raw_fee = policy.flat_amount
        breakdown = f"Flat fee: {format_money(raw_fee, policy.base_currency)}"
    elif fee_type is LateFeeType.PERCENTAGE:
        raw_fee = base_amount * rate_fraction
        breakdown = f"{rate_label}% of invoice amount"
    elif fee_type is LateFeeType.DAILY:
        raw_fee = base_amount * rate_fraction * effective_days
        breakdown = f"{rate_label}% daily for {effective_days} days"
    else:
        raw_fee = base_amount * ((1 + rate_fraction) ** effective_days - 1)
        breakdown = f"{rate_label}% compound daily for {effective_days} days"

    cap_amount = base_amount * policy.max_fee_fraction
    capped = raw_fee > cap_amount
    if capped:
        logger.info("late_fee_cap_applied", extra={
            "raw_fee": str(raw_fee),
            "cap_amount": str(cap_amount),
            "fee_type": fee_type.value,
        })
        raw_fee = cap_amount
        breakdown += f" (capped at {_format_percent(policy.max_fee_fraction * _HUNDRED)}%)"

    if currency != policy.base_currency:
        provider = rate_provider or StaticRateProvider(base_currency=policy.base_currency)
        raw_fee = raw_fee * provider.rate(policy.base_currency, currency)

    percentage = raw_fee / base_amount * _HUNDRED

    quote = LateFeeQuote(
        amount=round_money(raw_fee),
        percentage=round_money(percentage),
        fee_type=fee_type,
        breakdown=breakdown,
        currency=currency,
        days_past_due=days_past_due,
        effective_days=effective_days,
        capped=capped,
        cap_amount=round_money(cap_amount),
    )

    logger.debug("late_fee_calculated", extra={
        "fee_type": fee_type.value,
        "days_past_due": days_past_due,
        "amount": str(quote.amount),
        "currency": currency,
    })

    return quote
