"""
Checkout: settle selected outstanding charges from the stored balance
and/or an external instrument.

The payment entry and every charge transition are written in one unit of
work; on any failure the account and the charges are left untouched.
"""
from __future__ import annotations

import datetime as dt
import logging
import uuid
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel

from libs.event_contracts.billing_v1 import PaymentFailed, PaymentSettled

from .allocator import Allocation, allocate, available_methods, selected_total
from .errors import BillingError, InvalidState, NotFound, ValidationError
from .ledger import AccountLedger
from .models import (
    ChargeStatus,
    Course,
    CourseItem,
    Enrollment,
    Notification,
    OutstandingCharge,
    PaymentInstrument,
    PaymentMethod,
    PaymentType,
    Transaction,
)
from .reconciler import ReconciliationResult, reconcile_enrollment
from .stores import (
    AccountStore,
    AuditSink,
    ChargeStore,
    CourseStore,
    EnrollmentStore,
    NullAuditSink,
    UnitOfWork,
)

logger = logging.getLogger(__name__)


class CheckoutQuote(BaseModel):
    account_id: str
    balance: Decimal
    selected_total: Decimal
    methods: List[PaymentMethod]

    @property
    def remaining_after_balance(self) -> Decimal:
        return max(Decimal("0.00"), self.selected_total - self.balance)


class EnrollmentObligations(BaseModel):
    enrollment: Enrollment
    course: Course
    reconciliation: ReconciliationResult


class CheckoutResult(BaseModel):
    transaction: Transaction
    allocation: Allocation
    charges: List[OutstandingCharge]
    notification: Notification


class CheckoutService:
    def __init__(
        self,
        accounts: AccountStore,
        charges: ChargeStore,
        courses: CourseStore,
        enrollments: EnrollmentStore,
        uow: UnitOfWork,
        ledger: AccountLedger,
        audit: Optional[AuditSink] = None,
        *,
        enforce_sequence: bool = True,
        default_deadline_days: Optional[int] = None,
    ):
        self._accounts = accounts
        self._charges = charges
        self._courses = courses
        self._enrollments = enrollments
        self._uow = uow
        self._ledger = ledger
        self._audit = audit or NullAuditSink()
        self._enforce_sequence = enforce_sequence
        self._default_deadline_days = default_deadline_days

    @staticmethod
    def _require_method(method) -> PaymentMethod:
        try:
            return PaymentMethod(method)
        except ValueError:
            raise ValidationError(f"unknown payment method {method!r}")

    def _load_selection(self, account_id: str, charge_ids: Sequence[str]) -> List[OutstandingCharge]:
        if not charge_ids:
            raise ValidationError("select at least one charge to pay")
        if len(set(charge_ids)) != len(charge_ids):
            raise ValidationError("a charge was selected more than once")
        selection = [self._charges.get_charge(cid) for cid in charge_ids]
        for charge in selection:
            if charge.account_id != account_id:
                raise ValidationError(f"charge {charge.id} does not belong to account {account_id}")
        return selection

    def _ensure_payable(self, account_id: str, holder_id: str, selection: List[OutstandingCharge],
                        as_of: Optional[dt.date]) -> None:
        """Only the earliest open cycle of each enrollment may be paid."""
        by_course: Dict[str, List[OutstandingCharge]] = {}
        for charge in selection:
            by_course.setdefault(charge.course_id, []).append(charge)

        for course_id, picked in by_course.items():
            enrollments = self._enrollments.list_active_enrollments(holder_id=holder_id, course_id=course_id)
            if not enrollments:
                # charges without an active enrollment are not sequenced
                continue
            course = self._courses.get_course(course_id)
            if course.payment_type == PaymentType.ONE_TIME:
                # a one-time course has no cycle order; any open charge of it may be paid
                continue
            account_charges = self._charges.list_charges(account_id=account_id, course_id=course_id)
            view = reconcile_enrollment(
                course, enrollments[0], account_charges,
                as_of=as_of, default_deadline_days=self._default_deadline_days,
            )
            payable = view.payable_charge_ids
            for charge in picked:
                if charge.status != ChargeStatus.PAID and charge.id not in payable:
                    raise InvalidState(
                        f"charge {charge.id} is not payable until earlier cycles are settled",
                        charge_id=charge.id,
                    )

    def _course_items(self, selection: List[OutstandingCharge]) -> List[CourseItem]:
        items = []
        for charge in selection:
            try:
                course: Optional[Course] = self._courses.get_course(charge.course_id)
            except NotFound:
                course = None
            items.append(CourseItem(
                course_id=charge.course_id,
                course_code=(course.code if course and course.code else charge.course_name) or charge.course_id,
                course_name=charge.course_name or (course.name if course else ""),
                amount=charge.amount,
            ))
        return items

    def obligations(self, account_id: str, *, as_of: Optional[dt.date] = None) -> List[EnrollmentObligations]:
        """Reconciled view of every active enrollment of the account holder."""
        account = self._accounts.get_account(account_id)
        views = []
        for enrollment in self._enrollments.list_active_enrollments(holder_id=account.holder_id):
            course = self._courses.get_course(enrollment.course_id)
            result = reconcile_enrollment(
                course, enrollment,
                self._charges.list_charges(account_id=account_id, course_id=course.id),
                as_of=as_of, default_deadline_days=self._default_deadline_days,
            )
            views.append(EnrollmentObligations(enrollment=enrollment, course=course, reconciliation=result))
        return views

    def quote(self, account_id: str, charge_ids: Sequence[str]) -> CheckoutQuote:
        selection = self._load_selection(account_id, charge_ids)
        account = self._accounts.get_account(account_id)
        total = selected_total(selection)
        return CheckoutQuote(
            account_id=account_id,
            balance=account.balance,
            selected_total=total,
            methods=available_methods(account.balance, total),
        )

    def checkout(
        self,
        account_id: str,
        charge_ids: Sequence[str],
        method: PaymentMethod,
        instrument: Optional[PaymentInstrument] = None,
        *,
        as_of: Optional[dt.date] = None,
    ) -> CheckoutResult:
        method = self._require_method(method)
        account = self._accounts.get_account(account_id)
        selection = self._load_selection(account_id, charge_ids)
        if self._enforce_sequence:
            self._ensure_payable(account_id, account.holder_id, selection, as_of)
        items = self._course_items(selection)
        description = "Course Fee - " + ", ".join(i.course_code for i in items)
        reference = f"PAY-{uuid.uuid4().hex[:12].upper()}"

        try:
            with self._ledger.locks.hold(account_id):
                with self._uow.atomic():
                    # re-read under the lock so the split uses the committed balance
                    balance = self._accounts.get_account(account_id).balance
                    fresh = [self._charges.get_charge(c.id) for c in selection]
                    allocation = allocate(fresh, method, balance, instrument)
                    txn = self._ledger.record_payment(
                        account_id, allocation, description=description, reference=reference, courses=items,
                    )
                    for charge in fresh:
                        self._charges.mark_paid(charge.id)
        except BillingError as exc:
            logger.warning("checkout failed account_id=%s method=%s code=%s", account_id, method.value, exc.code)
            self._audit.emit(PaymentFailed(
                account_id=account_id,
                amount=selected_total(selection),
                payment_method=method.value,
                charge_ids=[c.id for c in selection],
                reason_code=exc.code,
                reason_message=exc.message,
            ))
            raise

        settled = [c.model_copy(update={"status": ChargeStatus.PAID}) for c in fresh]
        logger.info(
            "checkout settled account_id=%s total=%s method=%s balance_used=%s external=%s",
            account_id, allocation.selected_total, allocation.method.value,
            allocation.balance_used, allocation.external_amount,
        )
        self._audit.emit(PaymentSettled(
            account_id=account_id,
            transaction_id=txn.id,
            amount=allocation.selected_total,
            balance_used=allocation.balance_used,
            external_amount=allocation.external_amount,
            payment_method=allocation.method.value,
            charge_ids=[c.id for c in settled],
        ))
        return CheckoutResult(
            transaction=txn,
            allocation=allocation,
            charges=settled,
            notification=Notification(
                title="Payment Successful",
                message=f"Your payment of ${allocation.selected_total} has been processed successfully.",
            ),
        )
