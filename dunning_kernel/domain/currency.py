"""
Currency -- supported currencies and the exchange-rate seam.

Responsibility:
    Holds the small registry of currencies invoices may be issued in and the
    ``RateProvider`` protocol the fee calculator converts through.  The
    production provider is a static table quoted against the platform base
    currency (PHP); a live feed can replace it without touching callers.

Failure modes:
    - InvalidCurrencyError for codes outside the registry.
    - ExchangeRateNotFoundError when the static table has no quote.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import ClassVar, Mapping, Protocol, runtime_checkable

from dunning_kernel.exceptions import ExchangeRateNotFoundError, InvalidCurrencyError

BASE_CURRENCY = "PHP"

_TWO_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class CurrencyInfo:
    """Information about a single supported currency."""

    code: str
    decimal_places: int
    name: str
    locale: str

    @property
    def quantum(self) -> Decimal:
        """Smallest representable unit, for ``Decimal.quantize``."""
        if self.decimal_places == 0:
            return Decimal("1")
        return Decimal("0." + "0" * (self.decimal_places - 1) + "1")


class CurrencyRegistry:
    """Registry of the currencies the app issues invoices in."""

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        "PHP": CurrencyInfo("PHP", 2, "Philippine Peso", "en-PH"),
        "USD": CurrencyInfo("USD", 2, "US Dollar", "en-US"),
        "EUR": CurrencyInfo("EUR", 2, "Euro", "de-DE"),
        "GBP": CurrencyInfo("GBP", 2, "Pound Sterling", "en-GB"),
        "AUD": CurrencyInfo("AUD", 2, "Australian Dollar", "en-AU"),
        "SGD": CurrencyInfo("SGD", 2, "Singapore Dollar", "en-SG"),
        "JPY": CurrencyInfo("JPY", 0, "Japanese Yen", "ja-JP"),
    }

    @classmethod
    def is_valid(cls, code: str) -> bool:
        return code in cls._CURRENCIES

    @classmethod
    def get(cls, code: str) -> CurrencyInfo:
        normalized = code.upper().strip() if code else ""
        try:
            return cls._CURRENCIES[normalized]
        except KeyError:
            raise InvalidCurrencyError(code) from None

    @classmethod
    def codes(cls) -> tuple[str, ...]:
        return tuple(sorted(cls._CURRENCIES))


def round_money(amount: Decimal, places: Decimal = _TWO_PLACES) -> Decimal:
    """Round half-up to two places (the only rounding used for fees)."""
    return amount.quantize(places, rounding=ROUND_HALF_UP)


def format_money(amount: Decimal, currency: str) -> str:
    """Render an amount for email copy, e.g. ``PHP 1,400.00``."""
    info = CurrencyRegistry.get(currency)
    quantized = amount.quantize(info.quantum, rounding=ROUND_HALF_UP)
    return f"{info.code} {quantized:,}"


@runtime_checkable
class RateProvider(Protocol):
    """Source of conversion factors between currencies."""

    def rate(self, from_currency: str, to_currency: str) -> Decimal:
        """Units of ``to_currency`` per one unit of ``from_currency``."""
        ...


# Fallback rates: units of PHP per one unit of the currency.
FALLBACK_RATES: dict[str, Decimal] = {
    "PHP": Decimal("1.00"),
    "USD": Decimal("58.75"),
    "EUR": Decimal("63.50"),
}


class StaticRateProvider:
    """
    Rate provider backed by a fixed table quoted against a base currency.

    ``rates`` maps currency code -> units of base currency per one unit.
    Cross rates are derived through the base currency.
    """

    def __init__(
        self,
        rates: Mapping[str, Decimal] | None = None,
        base_currency: str = BASE_CURRENCY,
    ):
        self._base = CurrencyRegistry.get(base_currency).code
        table = dict(FALLBACK_RATES if rates is None else rates)
        table.setdefault(self._base, Decimal("1"))
        for code, value in table.items():
            CurrencyRegistry.get(code)
            if Decimal(value) <= 0:
                raise ValueError(f"Exchange rate for {code} must be positive, got {value}")
        self._rates = {code: Decimal(value) for code, value in table.items()}

    @property
    def base_currency(self) -> str:
        return self._base

    def rate(self, from_currency: str, to_currency: str) -> Decimal:
        source = CurrencyRegistry.get(from_currency).code
        target = CurrencyRegistry.get(to_currency).code
        if source == target:
            return Decimal("1")
        try:
            source_in_base = self._rates[source]
            target_in_base = self._rates[target]
        except KeyError:
            raise ExchangeRateNotFoundError(source, target) from None
        return source_in_base / target_in_base

    def convert(self, amount: Decimal, from_currency: str, to_currency: str) -> Decimal:
        return amount * self.rate(from_currency, to_currency)
