"""
Billing Policy Tests
"""

import datetime as dt
from decimal import Decimal

import pytest
from pydantic import ValidationError as SchemaError

from billing_service.app.billing.errors import BillingCycleTooShort, ValidationError
from billing_service.app.billing.models import BillingCycle, Course, PaymentType
from billing_service.app.billing.policy import (
    check_billing_cycle,
    cycle_options,
    duration_months,
    resolve_billing_cycle,
    total_cycles,
    total_fee,
    validate_course,
)


def _enabled(duration):
    return {o.cycle for o in cycle_options(duration) if o.enabled}


class TestRuleOfTwo:
    """Tests for the minimum-duration rule."""

    def test_four_month_course_disables_long_cycles(self):
        """Quarterly needs 6 months and annual needs 24."""
        assert _enabled(4) == {BillingCycle.MONTHLY}

    def test_twenty_four_months_enables_everything(self):
        assert _enabled(24) == set(BillingCycle)

    def test_boundaries(self):
        assert BillingCycle.QUARTERLY in _enabled(6)
        assert BillingCycle.QUARTERLY not in _enabled(5)
        assert BillingCycle.BI_ANNUALLY in _enabled(12)
        assert BillingCycle.ANNUALLY not in _enabled(23)

    def test_options_carry_minimum_months(self):
        mins = {o.cycle: o.min_months for o in cycle_options(1)}
        assert mins == {
            BillingCycle.MONTHLY: 2,
            BillingCycle.QUARTERLY: 6,
            BillingCycle.BI_ANNUALLY: 12,
            BillingCycle.ANNUALLY: 24,
        }

    def test_unknown_duration_enables_everything(self):
        assert _enabled(None) == set(BillingCycle)

    def test_check_billing_cycle_raises(self):
        with pytest.raises(BillingCycleTooShort) as exc:
            check_billing_cycle(BillingCycle.ANNUALLY, 23)
        assert exc.value.required_months == 24
        check_billing_cycle(BillingCycle.ANNUALLY, 24)


class TestResolveBillingCycle:
    """Tests for re-evaluating a selection after a date edit."""

    def test_falls_back_to_monthly(self):
        decision = resolve_billing_cycle(BillingCycle.QUARTERLY, dt.date(2025, 1, 1), dt.date(2025, 6, 30))

        assert decision.duration_months == 5
        assert decision.selected == BillingCycle.MONTHLY
        assert decision.fell_back
        assert decision.warning.code == "billing_cycle_too_short"
        assert decision.warning.required_months == 6

    def test_keeps_valid_selection(self):
        decision = resolve_billing_cycle(BillingCycle.QUARTERLY, duration=6)

        assert decision.selected == BillingCycle.QUARTERLY
        assert not decision.fell_back
        assert decision.warning is None

    def test_end_before_start_is_rejected(self):
        with pytest.raises(ValidationError):
            resolve_billing_cycle(BillingCycle.MONTHLY, dt.date(2025, 6, 1), dt.date(2025, 1, 1))


class TestDuration:
    def test_whole_months(self):
        assert duration_months(dt.date(2024, 1, 1), dt.date(2024, 12, 31)) == 11
        assert duration_months(dt.date(2024, 11, 1), dt.date(2025, 2, 1)) == 3

    def test_never_below_one(self):
        assert duration_months(dt.date(2025, 1, 1), dt.date(2025, 1, 20)) == 1


class TestCourse:
    """Tests for course configuration checks and fee projections."""

    def test_recurring_requires_cycle(self):
        with pytest.raises(SchemaError):
            Course(id="C1", fee=Decimal("10"), payment_type=PaymentType.RECURRING)

    def test_one_time_rejects_cycle(self):
        with pytest.raises(SchemaError):
            Course(id="C1", fee=Decimal("10"), payment_type=PaymentType.ONE_TIME, billing_cycle=BillingCycle.MONTHLY)

    def test_validate_course_rejects_zero_fee(self):
        with pytest.raises(ValidationError):
            validate_course(Course(id="C1", fee=Decimal("0")))

    def test_validate_course_applies_rule_of_two(self):
        course = Course(id="C1", fee=Decimal("100"), payment_type=PaymentType.RECURRING,
                        billing_cycle=BillingCycle.QUARTERLY, duration_months=4)
        with pytest.raises(BillingCycleTooShort):
            validate_course(course)

    def test_total_fee_projection(self):
        course = Course(id="C1", fee=Decimal("200.00"), payment_type=PaymentType.RECURRING,
                        billing_cycle=BillingCycle.QUARTERLY, duration_months=12)

        assert total_cycles(course) == 4
        assert total_fee(course) == Decimal("800.00")

    def test_total_cycles_rounds_up(self):
        course = Course(id="C1", fee=Decimal("50.00"), payment_type=PaymentType.RECURRING,
                        billing_cycle=BillingCycle.QUARTERLY, duration_months=7)
        assert total_cycles(course) == 3

    def test_one_time_is_single_cycle(self):
        course = Course(id="C1", fee=Decimal("175.00"), duration_months=3)
        assert total_cycles(course) == 1
        assert total_fee(course) == Decimal("175.00")
