"""
Fee run: post outstanding charges for cycles that have started, and flag
unpaid charges past their due date as overdue.

Safe to repeat for the same date; cycles that already have a charge row
are skipped.
"""
from __future__ import annotations

import datetime as dt
import logging
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel

from libs.event_contracts.billing_v1 import ChargePosted, FeeRunCompleted

from .errors import NotFound
from .models import ChargeStatus, Notification, NotificationLevel, OutstandingCharge, PaymentType, money
from .reconciler import reconcile
from .schedule import DEFAULT_PAYMENT_DEADLINE_DAYS, schedule_for
from .stores import AccountStore, AuditSink, ChargeStore, CourseStore, EnrollmentStore, NullAuditSink

logger = logging.getLogger(__name__)


class FeeRunResult(BaseModel):
    run_date: dt.date
    posted: List[OutstandingCharge]
    overdue: List[str]
    skipped_enrollments: List[str]
    notification: Notification

    @property
    def total_amount(self) -> Decimal:
        return money(sum((c.amount for c in self.posted), Decimal("0")))


class FeeRun:
    def __init__(
        self,
        accounts: AccountStore,
        charges: ChargeStore,
        courses: CourseStore,
        enrollments: EnrollmentStore,
        audit: Optional[AuditSink] = None,
        *,
        default_deadline_days: int = DEFAULT_PAYMENT_DEADLINE_DAYS,
    ):
        self._accounts = accounts
        self._charges = charges
        self._courses = courses
        self._enrollments = enrollments
        self._audit = audit or NullAuditSink()
        self._default_deadline_days = default_deadline_days

    def run(self, run_date: Optional[dt.date] = None) -> FeeRunResult:
        run_date = run_date or dt.date.today()
        posted: List[OutstandingCharge] = []
        skipped: List[str] = []

        for enrollment in self._enrollments.list_active_enrollments():
            account = self._accounts.get_account_by_holder(enrollment.holder_id)
            try:
                course = self._courses.get_course(enrollment.course_id)
            except NotFound:
                course = None
            if account is None or course is None:
                logger.warning("fee run skipped enrollment_id=%s (missing account or course)", enrollment.id)
                skipped.append(enrollment.id)
                continue

            cycles = schedule_for(course, enrollment, default_deadline_days=self._default_deadline_days)
            existing = self._charges.list_charges(account_id=account.id, course_id=course.id)
            view = reconcile(cycles, existing, one_time=course.payment_type == PaymentType.ONE_TIME)

            for cycle in view.unmatched_cycles:
                if cycle.start_date > run_date:
                    break
                charge = self._charges.add_charge(OutstandingCharge(
                    account_id=account.id,
                    course_id=course.id,
                    course_name=course.name,
                    period=cycle.label,
                    amount=cycle.amount,
                    due_date=cycle.due_date,
                    status=ChargeStatus.OVERDUE if run_date > cycle.due_date else ChargeStatus.UNPAID,
                ))
                posted.append(charge)
                self._audit.emit(ChargePosted(
                    account_id=account.id,
                    charge_id=charge.id,
                    course_id=course.id,
                    period=charge.period,
                    amount=charge.amount,
                    due_date=charge.due_date.isoformat(),
                ))

        overdue: List[str] = []
        for charge in self._charges.list_charges():
            if charge.status == ChargeStatus.UNPAID and charge.due_date < run_date:
                self._charges.mark_overdue(charge.id)
                overdue.append(charge.id)

        result = FeeRunResult(
            run_date=run_date,
            posted=posted,
            overdue=overdue,
            skipped_enrollments=skipped,
            notification=Notification(
                title="Fee Run Complete",
                message=f"{len(posted)} charge(s) posted, {len(overdue)} marked overdue",
                level=NotificationLevel.WARNING if skipped else NotificationLevel.SUCCESS,
            ),
        )
        self._audit.emit(FeeRunCompleted(
            run_date=run_date.isoformat(),
            charges_posted=len(posted),
            charges_overdue=len(overdue),
            total_amount=result.total_amount,
        ))
        logger.info("fee run run_date=%s posted=%s overdue=%s skipped=%s", run_date, len(posted), len(overdue), len(skipped))
        return result
