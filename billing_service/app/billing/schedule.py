"""
Fee schedule generation.

Pure and deterministic: the same course configuration and enrollment start
always produce the same ordered list of cycles.
"""
from __future__ import annotations

import datetime as dt
import math
from decimal import Decimal
from typing import List, Optional

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, ConfigDict

from .models import BillingCycle, Course, Enrollment, PaymentType, money
from .policy import course_duration, cycle_months

MAX_CYCLES = 24
DEFAULT_PAYMENT_DEADLINE_DAYS = 5

# fixed abbreviations, %b depends on the process locale
MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


class FeeCycle(BaseModel):
    model_config = ConfigDict(frozen=True)

    number: int
    start_date: dt.date
    due_date: dt.date
    amount: Decimal
    period_label: str
    label: str


def period_label(start: dt.date, billing_cycle: Optional[BillingCycle]) -> str:
    if billing_cycle == BillingCycle.QUARTERLY:
        return f"Q{(start.month - 1) // 3 + 1} {start.year}"
    if billing_cycle == BillingCycle.BI_ANNUALLY:
        return f"H{1 if start.month <= 6 else 2} {start.year}"
    if billing_cycle == BillingCycle.ANNUALLY:
        return f"{start.year}"
    return f"{MONTH_ABBR[start.month - 1]} {start.year}"


def cycle_label(number: int, period: str) -> str:
    return f"Cycle {number} - {period}"


def _make_cycle(number: int, start: dt.date, fee: Decimal, deadline_days: int,
                billing_cycle: Optional[BillingCycle]) -> FeeCycle:
    period = period_label(start, billing_cycle)
    return FeeCycle(
        number=number,
        start_date=start,
        due_date=start + dt.timedelta(days=deadline_days),
        amount=fee,
        period_label=period,
        label=cycle_label(number, period),
    )


def generate_schedule(
    *,
    payment_type: PaymentType,
    fee: Decimal,
    enrollment_start: dt.date,
    billing_cycle: Optional[BillingCycle] = None,
    payment_deadline_days: Optional[int] = None,
    end_date: Optional[dt.date] = None,
    duration_months: Optional[int] = None,
) -> List[FeeCycle]:
    """
    Build the ordered fee cycles of one enrollment.

    One-time courses yield a single cycle. Recurring courses step from the
    enrollment start by the cycle length until the step passes ``end_date``
    (inclusive) or MAX_CYCLES is reached. Without an end date the course
    duration bounds the count, and a course with neither gets one cycle.
    """
    fee = money(fee)
    deadline = DEFAULT_PAYMENT_DEADLINE_DAYS if payment_deadline_days is None else payment_deadline_days

    if PaymentType(payment_type) == PaymentType.ONE_TIME or billing_cycle is None:
        return [_make_cycle(1, enrollment_start, fee, deadline, None)]

    step = cycle_months(billing_cycle)
    limit = MAX_CYCLES
    if end_date is None:
        limit = min(MAX_CYCLES, math.ceil(duration_months / step)) if duration_months else 1

    cycles: List[FeeCycle] = []
    for i in range(limit):
        # offset from the anchor so month-end starts do not drift
        start = enrollment_start + relativedelta(months=i * step)
        if end_date is not None and start > end_date:
            break
        cycles.append(_make_cycle(i + 1, start, fee, deadline, billing_cycle))
    return cycles


def schedule_for(course: Course, enrollment: Enrollment, *,
                 default_deadline_days: int = DEFAULT_PAYMENT_DEADLINE_DAYS) -> List[FeeCycle]:
    deadline = course.payment_deadline_days
    if deadline is None:
        deadline = default_deadline_days
    return generate_schedule(
        payment_type=course.payment_type,
        fee=course.fee,
        enrollment_start=enrollment.start_date,
        billing_cycle=course.billing_cycle,
        payment_deadline_days=deadline,
        end_date=course.end_date,
        duration_months=course_duration(course),
    )
