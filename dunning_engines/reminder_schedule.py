"""
Pure reminder schedule functions.

Contract:
    Everything here is PURE -- no I/O, no clock reads.  Callers pass the
    due date and the processing instant explicitly.

Rules:
    - A schedule is a table ``level -> day offsets from the due date``.
    - Steps are emitted in escalation order (gentle, firm, final, legal),
      offsets in the order configured, truncated to ``max_reminders``.
    - With business-day shifting, Saturday moves to Monday (+2) and Sunday
      to Monday (+1).  Holidays are not modelled.
    - Days past due is the whole-day difference between the UTC calendar
      date of the processing instant and the due date.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Mapping, Sequence


# =============================================================================
# Escalation levels
# =============================================================================


class ReminderLevel(str, Enum):
    """Reminder tone, in increasing severity."""

    GENTLE = "gentle"
    FIRM = "firm"
    FINAL = "final"
    LEGAL = "legal"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {
    ReminderLevel.GENTLE: 1,
    ReminderLevel.FIRM: 2,
    ReminderLevel.FINAL: 3,
    ReminderLevel.LEGAL: 4,
}

ESCALATION_ORDER: tuple[ReminderLevel, ...] = tuple(
    sorted(ReminderLevel, key=lambda level: level.severity)
)


@dataclass(frozen=True)
class ScheduledStep:
    """One reminder the schedule calls for."""

    level: ReminderLevel
    offset_days: int
    scheduled_date: date


# =============================================================================
# Date arithmetic
# =============================================================================


def adjust_for_business_days(day: date) -> date:
    """Move a weekend date forward to the following Monday."""
    weekday = day.weekday()
    if weekday == 5:
        return day + timedelta(days=2)
    if weekday == 6:
        return day + timedelta(days=1)
    return day


def utc_date(moment: datetime) -> date:
    """Calendar date of ``moment`` in UTC (naive values are taken as UTC)."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.date()


def days_past_due(due_date: date, as_of: datetime | date) -> int:
    """Whole days from ``due_date`` to ``as_of`` (negative before the due date)."""
    if isinstance(as_of, datetime):
        as_of = utc_date(as_of)
    return (as_of - due_date).days


# =============================================================================
# Schedule construction
# =============================================================================


def build_schedule(
    due_date: date,
    schedule: Mapping[ReminderLevel, Sequence[int]],
    *,
    skip_weekends: bool = True,
    max_reminders: int | None = None,
) -> tuple[ScheduledStep, ...]:
    """Expand a schedule table into dated steps.

    Args:
        due_date: Invoice due date.
        schedule: Day offsets per level; missing levels contribute nothing.
        skip_weekends: Shift Saturday/Sunday dates to Monday.
        max_reminders: Upper bound on the number of steps, or None.

    Returns:
        Steps in escalation order.
    """
    steps: list[ScheduledStep] = []
    for level in ESCALATION_ORDER:
        for offset in schedule.get(level, ()):
            scheduled = due_date + timedelta(days=offset)
            if skip_weekends:
                scheduled = adjust_for_business_days(scheduled)
            steps.append(ScheduledStep(level, offset, scheduled))

    if max_reminders is not None:
        steps = steps[:max_reminders]
    return tuple(steps)


# =============================================================================
# Presentation
# =============================================================================


def reminder_subject(level: ReminderLevel, invoice_number: str, days_overdue: int) -> str:
    """Email subject line for a reminder at ``level``."""
    subject = f"Payment Reminder: Invoice {invoice_number}"
    if level is ReminderLevel.GENTLE:
        return f"{subject} - Friendly Reminder"
    if level is ReminderLevel.FIRM:
        return f"{subject} - Payment Past Due ({days_overdue} days)"
    if level is ReminderLevel.FINAL:
        return f"{subject} - FINAL NOTICE ({days_overdue} days overdue)"
    return f"{subject} - LEGAL ACTION PENDING ({days_overdue} days overdue)"
