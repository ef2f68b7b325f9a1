from decimal import Decimal

from pydantic import BaseModel, Field
import uuid, datetime as dt

#payment_settled
class PaymentSettled(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str = "payment_settled"
    occurred_at: str = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc).isoformat())
    account_id: str
    transaction_id: str
    amount: Decimal
    balance_used: Decimal
    external_amount: Decimal
    payment_method: str
    charge_ids: list[str] = Field(default_factory=list)

#payment_failed
class PaymentFailed(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str = "payment_failed"
    occurred_at: str = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc).isoformat())
    account_id: str
    amount: Decimal
    payment_method: str
    charge_ids: list[str] = Field(default_factory=list)
    reason_code: str | None = None
    reason_message: str | None = None

#charge_posted
class ChargePosted(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str = "charge_posted"
    occurred_at: str = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc).isoformat())
    account_id: str
    charge_id: str
    course_id: str
    period: str
    amount: Decimal
    due_date: str

#fee_run_completed
class FeeRunCompleted(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str = "fee_run_completed"
    occurred_at: str = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc).isoformat())
    run_date: str
    charges_posted: int
    charges_overdue: int
    total_amount: Decimal
