from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from billing_service.app.billing.eligibility import EligibilityCriteria
from billing_service.app.billing.models import (
    BatchAmountMode,
    BillingCycle,
    CoursePaymentStatus,
    CycleStatus,
    PaymentInstrument,
    PaymentMethod,
)


class ErrorBody(BaseModel):
    code: str
    message: str


class CycleOptionOut(BaseModel):
    cycle: BillingCycle
    min_months: int
    enabled: bool


class BillingOptionsResponse(BaseModel):
    success: bool = True
    requested: BillingCycle
    selected: BillingCycle
    duration_months: Optional[int] = None
    fell_back: bool
    options: List[CycleOptionOut]
    warning: Optional[ErrorBody] = None


class CycleOut(BaseModel):
    number: int
    label: str
    period_label: str
    start_date: dt.date
    due_date: dt.date
    amount: Decimal
    status: CycleStatus
    overdue: bool = False
    charge_id: Optional[str] = None
    payable: bool = False


class EnrollmentObligationsOut(BaseModel):
    enrollment_id: str
    course_id: str
    course_code: str
    course_name: str
    payment_status: CoursePaymentStatus
    total_fee: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    obligations: List[CycleOut]
    history: List[CycleOut]
    notices: List[ErrorBody] = Field(default_factory=list)


class ObligationsResponse(BaseModel):
    success: bool = True
    account_id: str
    enrollments: List[EnrollmentObligationsOut]


class QuoteRequest(BaseModel):
    charge_ids: List[str]


class CheckoutRequest(BaseModel):
    charge_ids: List[str]
    method: PaymentMethod
    instrument: Optional[PaymentInstrument] = None
    as_of: Optional[dt.date] = None


class TopUpRequest(BaseModel):
    amount: Decimal
    description: str
    external_description: Optional[str] = None
    schedule: bool = False
    scheduled_for: Optional[dt.date] = None


class ChargeRequest(BaseModel):
    amount: Decimal
    description: str
    course_id: Optional[str] = None
    period: Optional[str] = None
    schedule: bool = False
    scheduled_for: Optional[dt.date] = None


class BatchTopUpRequest(BaseModel):
    criteria: EligibilityCriteria = Field(default_factory=EligibilityCriteria)
    amount: Decimal
    mode: BatchAmountMode = BatchAmountMode.PER_ACCOUNT
    description: str
    external_description: Optional[str] = None
    schedule: bool = False
    scheduled_for: Optional[dt.date] = None
    created_by: str = "admin"


class AsOfRequest(BaseModel):
    as_of: Optional[dt.date] = None


class FeeRunRequest(BaseModel):
    run_date: Optional[dt.date] = None
