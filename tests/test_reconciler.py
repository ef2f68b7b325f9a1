"""
Charge Reconciler Tests
"""

import datetime as dt
from decimal import Decimal

from billing_service.app.billing.models import (
    BillingCycle,
    ChargeStatus,
    Course,
    CoursePaymentStatus,
    CycleStatus,
    Enrollment,
    OutstandingCharge,
    PaymentType,
)
from billing_service.app.billing.reconciler import match_charges, reconcile, reconcile_enrollment
from billing_service.app.billing.schedule import generate_schedule

START = dt.date(2025, 1, 1)


def _cycles(n=3, cycle=BillingCycle.MONTHLY):
    return generate_schedule(
        payment_type=PaymentType.RECURRING,
        fee=Decimal("100"),
        enrollment_start=START,
        billing_cycle=cycle,
        duration_months=n * (3 if cycle == BillingCycle.QUARTERLY else 1),
    )


def _charge(cid, period, status=ChargeStatus.UNPAID, due=dt.date(2025, 1, 6)):
    return OutstandingCharge(
        id=cid, account_id="EA001", course_id="C1", period=period,
        amount=Decimal("100"), due_date=due, status=status,
    )


class TestMatching:
    """Tests for pairing cycles with charge rows."""

    def test_exact_label_wins_over_substring(self):
        cycles = _cycles(2)
        loose = _charge("A", "Fee for Jan 2025")
        exact = _charge("B", "Cycle 1 - Jan 2025")

        matched = match_charges(cycles, [loose, exact])

        assert matched[1].id == "B"
        assert 2 not in matched

    def test_substring_match(self):
        matched = match_charges(_cycles(2), [_charge("A", "Feb 2025")])
        assert matched[2].id == "A"

    def test_positional_fallback(self):
        matched = match_charges(_cycles(3), [_charge("A", "Cycle 3")])
        assert matched[3].id == "A"

    def test_each_charge_used_once(self):
        cycles = _cycles(3, BillingCycle.QUARTERLY)
        matched = match_charges(cycles, [_charge("A", "Q1 2025")])
        assert list(matched) == [1]


class TestReconcile:
    """Tests for obligation classification."""

    def test_sequential_gating(self):
        """Only the first open cycle is payable, even when a later one is overdue."""
        cycles = _cycles(2)
        charges = [
            _charge("A", "Cycle 1 - Jan 2025", due=dt.date(2025, 1, 6)),
            _charge("B", "Cycle 2 - Feb 2025", status=ChargeStatus.OVERDUE, due=dt.date(2025, 2, 6)),
        ]

        result = reconcile(cycles, charges, as_of=dt.date(2025, 3, 1))

        assert [r.status for r in result.obligations] == [CycleStatus.PENDING, CycleStatus.ONGOING]
        assert result.payable_charge_ids == {"A"}
        assert result.obligations[1].overdue

    def test_paid_cycles_move_to_history(self):
        cycles = _cycles(3)
        charges = [
            _charge("A", "Cycle 1 - Jan 2025", status=ChargeStatus.PAID),
            _charge("B", "Cycle 2 - Feb 2025"),
            _charge("C", "Cycle 3 - Mar 2025"),
        ]

        result = reconcile(cycles, charges)

        assert [r.cycle.number for r in result.history] == [1]
        assert result.current.charge.id == "B"
        assert result.total_paid == Decimal("100.00")
        assert result.total_fee == Decimal("300.00")
        assert result.total_outstanding == Decimal("200.00")

    def test_unmatched_cycles_are_notices(self):
        cycles = _cycles(3)
        result = reconcile(cycles, [_charge("B", "Cycle 2 - Feb 2025")])

        assert [c.number for c in result.unmatched_cycles] == [1, 3]
        assert [n.code for n in result.notices] == ["unmatched_cycle", "unmatched_cycle"]
        # first cycle with a charge row becomes payable
        assert result.payable_charge_ids == {"B"}
        assert result.obligations[0].status == CycleStatus.ONGOING

    def test_overdue_from_as_of(self):
        result = reconcile(_cycles(1), [_charge("A", "Jan 2025")], as_of=dt.date(2025, 1, 7))
        assert result.obligations[0].overdue
        assert result.payment_status == CoursePaymentStatus.OVERDUE

    def test_payment_status(self):
        cycles = _cycles(2)
        paid = [
            _charge("A", "Cycle 1 - Jan 2025", status=ChargeStatus.PAID),
            _charge("B", "Cycle 2 - Feb 2025", status=ChargeStatus.PAID),
        ]
        assert reconcile(cycles, paid).payment_status == CoursePaymentStatus.PAID
        assert reconcile(cycles, paid[:1]).payment_status == CoursePaymentStatus.ONGOING
        assert reconcile(cycles, paid[:1] + [_charge("B", "Feb 2025")],
                         as_of=dt.date(2025, 2, 1)).payment_status == CoursePaymentStatus.PENDING

    def test_one_time_matches_single_open_charge(self):
        course = Course(id="C1", fee=Decimal("220"), duration_months=3)
        enrollment = Enrollment(id="E1", holder_id="H1", course_id="C1", start_date=START)

        result = reconcile_enrollment(course, enrollment, [_charge("A", "Course Fee")])

        assert result.payable_charge_ids == {"A"}
        assert result.unmatched_cycles == []

    def test_reconcile_enrollment_ignores_other_courses(self):
        course = Course(id="C1", fee=Decimal("100"), payment_type=PaymentType.RECURRING,
                        billing_cycle=BillingCycle.MONTHLY, duration_months=2)
        enrollment = Enrollment(id="E1", holder_id="H1", course_id="C1", start_date=START)
        other = _charge("X", "Cycle 1 - Jan 2025").model_copy(update={"course_id": "C9"})

        result = reconcile_enrollment(course, enrollment, [other])

        assert result.payable_charge_ids == set()
        assert result.total_fee == Decimal("200.00")
