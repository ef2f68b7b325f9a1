"""
Charge reconciliation.

Merges a generated fee schedule with the persisted charge rows of one
account and course, and decides which single cycle is payable now.
"""
from __future__ import annotations

import datetime as dt
import logging
import re
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set

from pydantic import BaseModel

from .errors import UnmatchedCycle
from .models import (
    ChargeStatus,
    Course,
    CoursePaymentStatus,
    CycleStatus,
    Enrollment,
    OutstandingCharge,
    PaymentType,
    money,
)
from .policy import total_fee as course_total_fee
from .schedule import FeeCycle, schedule_for

logger = logging.getLogger(__name__)

_POSITIONAL = re.compile(r"^Cycle (\d+)$")


class ReconciledCycle(BaseModel):
    cycle: FeeCycle
    charge: Optional[OutstandingCharge] = None
    status: CycleStatus
    overdue: bool = False

    @property
    def payable(self) -> bool:
        return self.status == CycleStatus.PENDING and self.charge is not None


class ReconciliationResult(BaseModel):
    obligations: List[ReconciledCycle]
    history: List[ReconciledCycle]
    unmatched_cycles: List[FeeCycle]
    total_fee: Decimal
    total_paid: Decimal

    @property
    def total_outstanding(self) -> Decimal:
        return self.total_fee - self.total_paid

    @property
    def current(self) -> Optional[ReconciledCycle]:
        return next((c for c in self.obligations if c.status == CycleStatus.PENDING), None)

    @property
    def payable_charge_ids(self) -> Set[str]:
        return {c.charge.id for c in self.obligations if c.payable and c.charge.id}

    @property
    def notices(self) -> List[UnmatchedCycle]:
        return [UnmatchedCycle(c.number, c.label) for c in self.unmatched_cycles]

    @property
    def payment_status(self) -> CoursePaymentStatus:
        open_rows = [c for c in self.obligations if c.charge is not None]
        if not open_rows:
            # cycles left that have not been billed yet
            if self.obligations:
                return CoursePaymentStatus.ONGOING
            return CoursePaymentStatus.PAID
        if any(c.overdue for c in open_rows):
            return CoursePaymentStatus.OVERDUE
        return CoursePaymentStatus.PENDING


def match_charges(cycles: List[FeeCycle], charges: Iterable[OutstandingCharge]) -> Dict[int, OutstandingCharge]:
    """
    Pair cycles with charge rows; each row is used at most once.

    Priority: exact full label, then a period containing the bare period
    label, then a positional ``Cycle {n}`` period.
    """
    remaining = list(charges)
    matched: Dict[int, OutstandingCharge] = {}

    def _claim(cycle: FeeCycle, predicate) -> None:
        for charge in remaining:
            if predicate(charge):
                matched[cycle.number] = charge
                remaining.remove(charge)
                return

    for cycle in cycles:
        _claim(cycle, lambda ch, c=cycle: ch.period == c.label)

    for cycle in cycles:
        if cycle.number not in matched:
            _claim(cycle, lambda ch, c=cycle: c.period_label in ch.period)

    for cycle in cycles:
        if cycle.number not in matched:
            def _positional(ch, c=cycle):
                m = _POSITIONAL.match(ch.period.strip())
                return bool(m) and int(m.group(1)) == c.number
            _claim(cycle, _positional)

    return matched


def reconcile(
    cycles: List[FeeCycle],
    charges: Iterable[OutstandingCharge],
    *,
    total_fee: Optional[Decimal] = None,
    one_time: bool = False,
    as_of: Optional[dt.date] = None,
) -> ReconciliationResult:
    charges = list(charges)
    matched = match_charges(cycles, charges)

    if one_time and cycles and cycles[0].number not in matched:
        # a one-time course has a single obligation whatever its period text says
        open_rows = [c for c in charges if c not in matched.values()]
        if len(open_rows) == 1:
            matched[cycles[0].number] = open_rows[0]

    obligations: List[ReconciledCycle] = []
    history: List[ReconciledCycle] = []
    unmatched: List[FeeCycle] = []
    pending_assigned = False

    for cycle in cycles:
        charge = matched.get(cycle.number)
        if charge is None:
            unmatched.append(cycle)
            logger.info("unmatched cycle number=%s label=%s", cycle.number, cycle.label)
        elif charge.status == ChargeStatus.PAID:
            history.append(ReconciledCycle(cycle=cycle, charge=charge, status=CycleStatus.PAID))
            continue

        overdue = False
        if charge is not None:
            overdue = charge.status == ChargeStatus.OVERDUE or (as_of is not None and as_of > cycle.due_date)

        if charge is not None and not pending_assigned:
            status = CycleStatus.PENDING
            pending_assigned = True
        else:
            status = CycleStatus.ONGOING
        obligations.append(ReconciledCycle(cycle=cycle, charge=charge, status=status, overdue=overdue))

    if total_fee is None:
        total_fee = sum((c.amount for c in cycles), Decimal("0"))
    paid = sum((c.amount for c in charges if c.status == ChargeStatus.PAID), Decimal("0"))

    return ReconciliationResult(
        obligations=obligations,
        history=history,
        unmatched_cycles=unmatched,
        total_fee=money(total_fee),
        total_paid=money(paid),
    )


def reconcile_enrollment(
    course: Course,
    enrollment: Enrollment,
    charges: Iterable[OutstandingCharge],
    *,
    as_of: Optional[dt.date] = None,
    default_deadline_days: Optional[int] = None,
) -> ReconciliationResult:
    kwargs = {}
    if default_deadline_days is not None:
        kwargs["default_deadline_days"] = default_deadline_days
    cycles = schedule_for(course, enrollment, **kwargs)
    course_charges = [c for c in charges if c.course_id == course.id]
    return reconcile(
        cycles,
        course_charges,
        total_fee=course_total_fee(course),
        one_time=course.payment_type == PaymentType.ONE_TIME,
        as_of=as_of,
    )
