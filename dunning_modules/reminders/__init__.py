"""
Payment Reminders Module.

Schedules escalating payment reminders for overdue invoices, sends them
when due, and keeps each invoice's late fee current.  Fee arithmetic and
schedule dates come from ``dunning_engines``.
"""

from dunning_modules.reminders.analytics import (
    ClientRanking,
    ReminderAnalytics,
    compute_reminder_analytics,
)
from dunning_modules.reminders.config import (
    ReminderConfig,
    ReminderPolicyOverride,
    resolve_effective_config,
)
from dunning_modules.reminders.fees import LateFeeCalculator
from dunning_modules.reminders.mailer import MailReceipt, Mailer, OutboxMailer
from dunning_modules.reminders.models import (
    Client,
    Invoice,
    InvoiceStatus,
    LateFee,
    PaymentReminder,
    ProcessingResult,
    ReminderStatus,
)
from dunning_modules.reminders.processor import ReminderProcessor
from dunning_modules.reminders.queue import ReminderQueue
from dunning_modules.reminders.scheduler import ReminderScheduler
from dunning_modules.reminders.workflows import REMINDER_WORKFLOW

__all__ = [
    "Client",
    "ClientRanking",
    "Invoice",
    "InvoiceStatus",
    "LateFee",
    "LateFeeCalculator",
    "MailReceipt",
    "Mailer",
    "OutboxMailer",
    "PaymentReminder",
    "ProcessingResult",
    "REMINDER_WORKFLOW",
    "ReminderAnalytics",
    "ReminderConfig",
    "ReminderPolicyOverride",
    "ReminderProcessor",
    "ReminderQueue",
    "ReminderScheduler",
    "ReminderStatus",
    "compute_reminder_analytics",
    "resolve_effective_config",
]
