"""Late fee calculation for invoices under the effective client policy."""

from __future__ import annotations

from dunning_engines.late_fee import LateFeeQuote, calculate_late_fee
from dunning_kernel.domain.currency import RateProvider, StaticRateProvider
from dunning_modules.reminders.config import ReminderConfig
from dunning_modules.reminders.models import Invoice


class LateFeeCalculator:
    """
    Binds the fee engine to a reminder config and a rate provider.

    Pure with respect to its inputs: the result depends only on the invoice,
    the days past due, the config and the provider's rates.
    """

    def __init__(self, config: ReminderConfig, rate_provider: RateProvider | None = None):
        self._config = config
        self._rates = rate_provider or StaticRateProvider(base_currency=config.base_currency)

    @property
    def rate_provider(self) -> RateProvider:
        return self._rates

    def calculate_late_fee(self, invoice: Invoice, days_past_due: int) -> LateFeeQuote:
        policy = self._config.for_client(invoice.client_id).fee_policy()
        return calculate_late_fee(
            invoice.total,
            invoice.currency,
            days_past_due,
            policy,
            self._rates,
        )
