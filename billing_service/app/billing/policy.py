"""
Billing policy: which billing cycles a course may use, and the fee
projections that exist before any charge is posted.

A cycle of ``c`` months is allowed only when the course runs at least
``2 * c`` months.
"""
from __future__ import annotations

import datetime as dt
import logging
import math
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel

from .errors import BillingCycleTooShort, ValidationError
from .models import BillingCycle, Course, PaymentType, money

logger = logging.getLogger(__name__)

CYCLE_MONTHS = {
    BillingCycle.MONTHLY: 1,
    BillingCycle.QUARTERLY: 3,
    BillingCycle.BI_ANNUALLY: 6,
    BillingCycle.ANNUALLY: 12,
}
MIN_PERIODS = 2


class CycleOption(BaseModel):
    cycle: BillingCycle
    min_months: int
    enabled: bool


class PolicyDecision(BaseModel):
    requested: BillingCycle
    selected: BillingCycle
    duration_months: Optional[int] = None
    options: List[CycleOption]

    @property
    def fell_back(self) -> bool:
        return self.selected != self.requested

    @property
    def enabled_cycles(self) -> List[BillingCycle]:
        return [o.cycle for o in self.options if o.enabled]

    @property
    def warning(self) -> Optional[BillingCycleTooShort]:
        if not self.fell_back:
            return None
        return BillingCycleTooShort(
            self.requested.value,
            self.duration_months or 0,
            min_duration_months(self.requested),
        )


def cycle_months(cycle: BillingCycle) -> int:
    return CYCLE_MONTHS[BillingCycle(cycle)]


def min_duration_months(cycle: BillingCycle) -> int:
    return MIN_PERIODS * cycle_months(cycle)


def duration_months(start_date: dt.date, end_date: dt.date) -> int:
    """Whole calendar months between two dates, never less than one."""
    months = (end_date.year - start_date.year) * 12 + (end_date.month - start_date.month)
    return max(1, months)


def course_duration(course: Course) -> Optional[int]:
    if course.start_date and course.end_date:
        return duration_months(course.start_date, course.end_date)
    return course.duration_months


def cycle_options(duration: Optional[int]) -> List[CycleOption]:
    # unknown duration leaves every cycle selectable
    return [
        CycleOption(
            cycle=cycle,
            min_months=min_duration_months(cycle),
            enabled=duration is None or duration >= min_duration_months(cycle),
        )
        for cycle in CYCLE_MONTHS
    ]


def resolve_billing_cycle(
    requested: BillingCycle,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
    *,
    duration: Optional[int] = None,
) -> PolicyDecision:
    """
    Re-evaluate a billing-cycle selection after a date edit.

    When the requested cycle is no longer enabled the decision falls back to
    monthly and exposes a BillingCycleTooShort warning instead of raising.
    """
    requested = BillingCycle(requested)
    if start_date and end_date:
        if end_date < start_date:
            raise ValidationError("end_date precedes start_date")
        duration = duration_months(start_date, end_date)
    options = cycle_options(duration)
    enabled = {o.cycle for o in options if o.enabled}

    selected = requested if requested in enabled else BillingCycle.MONTHLY
    if selected != requested:
        logger.info(
            "billing cycle fallback requested=%s duration_months=%s required=%s",
            requested.value, duration, min_duration_months(requested),
        )
    return PolicyDecision(requested=requested, selected=selected, duration_months=duration, options=options)


def check_billing_cycle(cycle: BillingCycle, duration: int) -> None:
    required = min_duration_months(cycle)
    if duration < required:
        raise BillingCycleTooShort(BillingCycle(cycle).value, duration, required)


def validate_course(course: Course) -> None:
    """Strict check used when a course configuration is saved."""
    if course.fee <= 0:
        raise ValidationError("fee must be greater than zero")
    if course.payment_type == PaymentType.RECURRING:
        duration = course_duration(course)
        if duration is not None:
            check_billing_cycle(course.billing_cycle, duration)


def total_cycles(course: Course) -> int:
    if course.payment_type != PaymentType.RECURRING or course.billing_cycle is None:
        return 1
    duration = course_duration(course)
    if not duration:
        return 1
    return math.ceil(duration / cycle_months(course.billing_cycle))


def total_fee(course: Course) -> Decimal:
    return money(course.fee * total_cycles(course))
