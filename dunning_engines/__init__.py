"""
Dunning Engines -- pure calculation functions, no I/O.

- ``late_fee``: late fee calculation with grace period, cap and currency
  conversion.
- ``reminder_schedule``: reminder dates from a due date and an escalation
  table, business-day shifting, days past due, subject lines.
"""

from dunning_engines.late_fee import (
    LateFeePolicy,
    LateFeeQuote,
    LateFeeType,
    calculate_late_fee,
)
from dunning_engines.reminder_schedule import (
    ReminderLevel,
    ScheduledStep,
    adjust_for_business_days,
    build_schedule,
    days_past_due,
    reminder_subject,
    utc_date,
)

__all__ = [
    "LateFeePolicy",
    "LateFeeQuote",
    "LateFeeType",
    "ReminderLevel",
    "ScheduledStep",
    "adjust_for_business_days",
    "build_schedule",
    "calculate_late_fee",
    "days_past_due",
    "reminder_subject",
    "utc_date",
]
