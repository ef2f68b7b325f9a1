"""
Schedule Generator Tests
"""

import datetime as dt
from decimal import Decimal

from billing_service.app.billing.models import BillingCycle, Course, Enrollment, PaymentType
from billing_service.app.billing.schedule import (
    MAX_CYCLES,
    generate_schedule,
    period_label,
    schedule_for,
)


def _recurring(cycle, start, end=None, **kwargs):
    return generate_schedule(
        payment_type=PaymentType.RECURRING,
        fee=Decimal("100"),
        enrollment_start=start,
        billing_cycle=cycle,
        end_date=end,
        **kwargs,
    )


class TestPeriodLabels:
    def test_labels_per_cycle(self):
        start = dt.date(2025, 8, 1)
        assert period_label(start, BillingCycle.MONTHLY) == "Aug 2025"
        assert period_label(start, BillingCycle.QUARTERLY) == "Q3 2025"
        assert period_label(start, BillingCycle.BI_ANNUALLY) == "H2 2025"
        assert period_label(start, BillingCycle.ANNUALLY) == "2025"

    def test_quarter_edges(self):
        assert period_label(dt.date(2025, 3, 31), BillingCycle.QUARTERLY) == "Q1 2025"
        assert period_label(dt.date(2025, 4, 1), BillingCycle.QUARTERLY) == "Q2 2025"
        assert period_label(dt.date(2025, 6, 30), BillingCycle.BI_ANNUALLY) == "H1 2025"


class TestGenerateSchedule:
    """Tests for cycle generation."""

    def test_one_time_single_cycle(self):
        cycles = generate_schedule(
            payment_type=PaymentType.ONE_TIME,
            fee=Decimal("175"),
            enrollment_start=dt.date(2025, 7, 1),
            payment_deadline_days=14,
        )

        assert len(cycles) == 1
        assert cycles[0].due_date == dt.date(2025, 7, 15)
        assert cycles[0].amount == Decimal("175.00")

    def test_monthly_until_end_date_inclusive(self):
        cycles = _recurring(BillingCycle.MONTHLY, dt.date(2025, 1, 1), dt.date(2025, 6, 1))

        assert [c.label for c in cycles] == [
            "Cycle 1 - Jan 2025",
            "Cycle 2 - Feb 2025",
            "Cycle 3 - Mar 2025",
            "Cycle 4 - Apr 2025",
            "Cycle 5 - May 2025",
            "Cycle 6 - Jun 2025",
        ]

    def test_quarterly_steps_three_months(self):
        cycles = _recurring(BillingCycle.QUARTERLY, dt.date(2024, 6, 1), dt.date(2024, 12, 31))

        assert [c.period_label for c in cycles] == ["Q2 2024", "Q3 2024", "Q4 2024"]
        assert [c.start_date for c in cycles] == [dt.date(2024, 6, 1), dt.date(2024, 9, 1), dt.date(2024, 12, 1)]

    def test_due_date_uses_deadline(self):
        cycles = _recurring(BillingCycle.MONTHLY, dt.date(2025, 1, 1), dt.date(2025, 2, 28), payment_deadline_days=10)
        assert [c.due_date for c in cycles] == [dt.date(2025, 1, 11), dt.date(2025, 2, 11)]

    def test_default_deadline_is_five_days(self):
        cycles = _recurring(BillingCycle.MONTHLY, dt.date(2025, 1, 1), dt.date(2025, 1, 31))
        assert cycles[0].due_date == dt.date(2025, 1, 6)

    def test_month_end_start_does_not_drift(self):
        cycles = _recurring(BillingCycle.MONTHLY, dt.date(2025, 1, 31), dt.date(2025, 4, 30))
        assert [c.start_date for c in cycles] == [
            dt.date(2025, 1, 31), dt.date(2025, 2, 28), dt.date(2025, 3, 31), dt.date(2025, 4, 30),
        ]

    def test_capped_at_max_cycles(self):
        cycles = _recurring(BillingCycle.MONTHLY, dt.date(2020, 1, 1), dt.date(2099, 12, 31))

        assert len(cycles) == MAX_CYCLES == 24
        assert cycles[-1].number == 24

    def test_duration_bounds_open_ended_course(self):
        cycles = _recurring(BillingCycle.QUARTERLY, dt.date(2025, 1, 1), duration_months=12)
        assert len(cycles) == 4

    def test_no_end_and_no_duration_is_one_cycle(self):
        assert len(_recurring(BillingCycle.MONTHLY, dt.date(2025, 1, 1))) == 1

    def test_deterministic(self):
        args = (BillingCycle.BI_ANNUALLY, dt.date(2024, 1, 15), dt.date(2026, 12, 31))
        assert _recurring(*args) == _recurring(*args)

    def test_numbers_relative_to_enrollment(self):
        course = Course(
            id="CRS002", fee=Decimal("200"), payment_type=PaymentType.RECURRING,
            billing_cycle=BillingCycle.QUARTERLY, start_date=dt.date(2024, 1, 1), end_date=dt.date(2024, 12, 31),
        )
        enrollment = Enrollment(id="E1", holder_id="H1", course_id="CRS002", start_date=dt.date(2024, 6, 1))

        cycles = schedule_for(course, enrollment)

        assert cycles[0].label == "Cycle 1 - Q2 2024"
        assert len(cycles) == 3

    def test_course_deadline_overrides_default(self):
        course = Course(id="C", fee=Decimal("10"), payment_deadline_days=0)
        enrollment = Enrollment(id="E", holder_id="H", course_id="C", start_date=dt.date(2025, 3, 3))

        assert schedule_for(course, enrollment, default_deadline_days=9)[0].due_date == dt.date(2025, 3, 3)
