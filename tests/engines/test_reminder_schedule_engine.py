"""Tests for the pure reminder schedule functions."""

from datetime import date, datetime, timedelta, timezone

import pytest

from dunning_engines.reminder_schedule import (
    ESCALATION_ORDER,
    ReminderLevel,
    adjust_for_business_days,
    build_schedule,
    days_past_due,
    reminder_subject,
    utc_date,
)

DUE = date(2024, 3, 1)  # Friday

DEFAULT_SCHEDULE = {
    ReminderLevel.GENTLE: (1, 3, 7),
    ReminderLevel.FIRM: (14, 21),
    ReminderLevel.FINAL: (30, 45),
    ReminderLevel.LEGAL: (60,),
}


class TestReminderLevel:

    def test_escalation_order(self):
        assert ESCALATION_ORDER == (
            ReminderLevel.GENTLE,
            ReminderLevel.FIRM,
            ReminderLevel.FINAL,
            ReminderLevel.LEGAL,
        )

    def test_severity_increases(self):
        severities = [level.severity for level in ESCALATION_ORDER]
        assert severities == sorted(severities)
        assert len(set(severities)) == 4


class TestBusinessDays:

    @pytest.mark.parametrize(
        "day, expected",
        [
            (date(2024, 3, 2), date(2024, 3, 4)),  # Saturday -> Monday
            (date(2024, 3, 3), date(2024, 3, 4)),  # Sunday -> Monday
            (date(2024, 3, 4), date(2024, 3, 4)),
            (date(2024, 3, 8), date(2024, 3, 8)),
        ],
    )
    def test_weekend_moves_to_monday(self, day, expected):
        assert adjust_for_business_days(day) == expected

    def test_never_returns_weekend(self):
        for offset in range(14):
            assert adjust_for_business_days(DUE + timedelta(days=offset)).weekday() < 5


class TestDaysPastDue:

    def test_uses_utc_calendar_date(self):
        # 2024-03-11 01:00 in Manila is still 2024-03-10 in UTC
        manila = timezone(timedelta(hours=8))
        moment = datetime(2024, 3, 11, 1, 0, tzinfo=manila)
        assert utc_date(moment) == date(2024, 3, 10)
        assert days_past_due(DUE, moment) == 9

    def test_date_input(self):
        assert days_past_due(DUE, date(2024, 3, 11)) == 10

    def test_before_due_is_negative(self):
        assert days_past_due(DUE, date(2024, 2, 28)) == -2

    def test_naive_datetime_taken_as_utc(self):
        assert utc_date(datetime(2024, 3, 5, 23, 59)) == date(2024, 3, 5)


class TestBuildSchedule:

    def test_default_schedule_dates(self):
        steps = build_schedule(DUE, DEFAULT_SCHEDULE)

        assert [(s.level.value, s.offset_days, s.scheduled_date) for s in steps] == [
            ("gentle", 1, date(2024, 3, 4)),
            ("gentle", 3, date(2024, 3, 4)),
            ("gentle", 7, date(2024, 3, 8)),
            ("firm", 14, date(2024, 3, 15)),
            ("firm", 21, date(2024, 3, 22)),
            ("final", 30, date(2024, 4, 1)),
            ("final", 45, date(2024, 4, 15)),
            ("legal", 60, date(2024, 4, 30)),
        ]

    def test_without_weekend_skipping(self):
        steps = build_schedule(DUE, DEFAULT_SCHEDULE, skip_weekends=False)
        assert steps[0].scheduled_date == date(2024, 3, 2)
        assert steps[5].scheduled_date == date(2024, 3, 31)

    def test_max_reminders_truncates_in_escalation_order(self):
        steps = build_schedule(DUE, DEFAULT_SCHEDULE, max_reminders=4)
        assert [s.level for s in steps] == [ReminderLevel.GENTLE] * 3 + [ReminderLevel.FIRM]

    def test_levels_emitted_in_escalation_order_regardless_of_mapping_order(self):
        schedule = {ReminderLevel.LEGAL: (60,), ReminderLevel.GENTLE: (1,)}
        steps = build_schedule(DUE, schedule)
        assert [s.level for s in steps] == [ReminderLevel.GENTLE, ReminderLevel.LEGAL]

    def test_empty_schedule(self):
        assert build_schedule(DUE, {}) == ()


class TestReminderSubject:

    @pytest.mark.parametrize(
        "level, expected",
        [
            (ReminderLevel.GENTLE, "Payment Reminder: Invoice INV-7 - Friendly Reminder"),
            (ReminderLevel.FIRM, "Payment Reminder: Invoice INV-7 - Payment Past Due (14 days)"),
            (ReminderLevel.FINAL, "Payment Reminder: Invoice INV-7 - FINAL NOTICE (14 days overdue)"),
            (
                ReminderLevel.LEGAL,
                "Payment Reminder: Invoice INV-7 - LEGAL ACTION PENDING (14 days overdue)",
            ),
        ],
    )
    def test_subject_per_level(self, level, expected):
        assert reminder_subject(level, "INV-7", 14) == expected
