from decimal import Decimal

from pydantic import BaseModel, Field
import uuid, datetime as dt

#top_up_completed
class TopUpCompleted(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str = "top_up_completed"
    occurred_at: str = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc).isoformat())
    account_id: str
    transaction_id: str
    amount: Decimal
    balance_after: Decimal
    reference: str | None = None

#top_up_scheduled
class TopUpScheduled(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str = "top_up_scheduled"
    occurred_at: str = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc).isoformat())
    account_id: str
    transaction_id: str
    amount: Decimal
    scheduled_for: str
    reference: str | None = None

#batch_top_up_completed
class BatchTopUpCompleted(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str = "batch_top_up_completed"
    occurred_at: str = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc).isoformat())
    batch_id: str
    description: str
    total_amount: Decimal
    account_count: int
    failed_count: int = 0
    scheduled: bool = False
