"""
Domain types for the billing engine.

Statuses and cycle kinds are closed enums; fields that only make sense
conditionally (``billing_cycle``, ``balance_after`` on a scheduled entry)
are explicit optionals.
"""
from __future__ import annotations

import datetime as dt
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

CENT = Decimal("0.01")


def money(value) -> Decimal:
    """Coerce ints, floats, strings and Decimals to a cent-quantized Decimal."""
    if isinstance(value, Decimal):
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


class PaymentType(str, Enum):
    ONE_TIME = "one_time"
    RECURRING = "recurring"


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    BI_ANNUALLY = "bi_annually"
    ANNUALLY = "annually"


class ChargeStatus(str, Enum):
    UNPAID = "unpaid"
    OVERDUE = "overdue"
    PAID = "paid"


class PaymentMethod(str, Enum):
    BALANCE = "balance"
    CARD = "card"
    COMBINED = "combined"


class TransactionType(str, Enum):
    TOP_UP = "top_up"
    CHARGE = "charge"
    PAYMENT = "payment"


class TransactionStatus(str, Enum):
    COMPLETED = "completed"
    PENDING = "pending"
    FAILED = "failed"


class AccountStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CLOSED = "closed"
    PENDING = "pending"


class SchoolingStatus(str, Enum):
    IN_SCHOOL = "in_school"
    GRADUATED = "graduated"
    DROPPED_OUT = "dropped_out"
    DEFERRED = "deferred"


class CycleStatus(str, Enum):
    PENDING = "pending"
    ONGOING = "ongoing"
    PAID = "paid"


class CoursePaymentStatus(str, Enum):
    PAID = "paid"
    ONGOING = "ongoing"
    PENDING = "pending"
    OVERDUE = "overdue"


class BatchAmountMode(str, Enum):
    PER_ACCOUNT = "per_account"
    DISTRIBUTE_EVENLY = "distribute_evenly"


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Course(BaseModel):
    id: str
    code: str = ""
    name: str = ""
    fee: Decimal
    payment_type: PaymentType = PaymentType.ONE_TIME
    billing_cycle: Optional[BillingCycle] = None
    duration_months: Optional[int] = Field(default=None, ge=1)
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    payment_deadline_days: Optional[int] = Field(default=None, ge=0)

    @field_validator("fee")
    @classmethod
    def _quantize_fee(cls, v: Decimal) -> Decimal:
        return money(v)

    @model_validator(mode="after")
    def _cycle_matches_payment_type(self) -> "Course":
        if self.payment_type == PaymentType.RECURRING and self.billing_cycle is None:
            raise ValueError("recurring courses require a billing_cycle")
        if self.payment_type == PaymentType.ONE_TIME and self.billing_cycle is not None:
            raise ValueError("one-time courses cannot carry a billing_cycle")
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date precedes start_date")
        return self


class AccountHolder(BaseModel):
    id: str
    first_name: str = ""
    last_name: str = ""
    date_of_birth: Optional[dt.date] = None
    age: int = Field(ge=0)
    schooling_status: SchoolingStatus = SchoolingStatus.IN_SCHOOL

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Account(BaseModel):
    id: str
    holder_id: str
    balance: Decimal = Decimal("0.00")
    status: AccountStatus = AccountStatus.ACTIVE

    @field_validator("balance")
    @classmethod
    def _non_negative(cls, v: Decimal) -> Decimal:
        v = money(v)
        if v < 0:
            raise ValueError("balance cannot be negative")
        return v


class Enrollment(BaseModel):
    id: str
    holder_id: str
    course_id: str
    start_date: dt.date
    end_date: Optional[dt.date] = None
    is_active: bool = True


class OutstandingCharge(BaseModel):
    id: Optional[str] = None
    account_id: str
    course_id: str
    course_name: str = ""
    period: str
    amount: Decimal
    due_date: dt.date
    status: ChargeStatus = ChargeStatus.UNPAID

    @field_validator("amount")
    @classmethod
    def _quantize_amount(cls, v: Decimal) -> Decimal:
        return money(v)

    @property
    def is_settled(self) -> bool:
        return self.status == ChargeStatus.PAID


class PaymentInstrument(BaseModel):
    id: str
    brand: str = "Visa"
    last4: str = Field(pattern=r"^\d{4}$")


class CourseItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    course_id: str
    course_code: str
    course_name: str = ""
    amount: Decimal


class PaymentLeg(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: PaymentMethod
    amount: Decimal
    card_last4: Optional[str] = None


class Transaction(BaseModel):
    """Append-only ledger entry. Only a pending entry ever changes, once, on execution."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    account_id: str
    type: TransactionType
    amount: Decimal
    balance_after: Optional[Decimal] = None
    description: str = ""
    external_description: Optional[str] = None
    reference: str = ""
    status: TransactionStatus = TransactionStatus.COMPLETED
    created_at: Optional[dt.datetime] = None
    scheduled_for: Optional[dt.date] = None
    executed_at: Optional[dt.datetime] = None
    course_id: Optional[str] = None
    period: Optional[str] = None
    batch_id: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    courses: List[CourseItem] = Field(default_factory=list)
    payment_breakdown: List[PaymentLeg] = Field(default_factory=list)

    @property
    def balance_delta(self) -> Decimal:
        # a payment moves the stored balance only by its balance leg
        if self.type == TransactionType.PAYMENT and self.payment_breakdown:
            used = sum((leg.amount for leg in self.payment_breakdown if leg.method == PaymentMethod.BALANCE), Decimal("0"))
            return -money(used)
        return self.amount


class Batch(BaseModel):
    id: str
    type: str = "top_up"
    description: str
    external_description: Optional[str] = None
    total_amount: Decimal
    account_count: int
    status: TransactionStatus = TransactionStatus.COMPLETED
    scheduled_for: Optional[dt.date] = None
    created_at: Optional[dt.datetime] = None
    created_by: str = "system"


class Notification(BaseModel):
    title: str
    message: str
    level: NotificationLevel = NotificationLevel.SUCCESS
