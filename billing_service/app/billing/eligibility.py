"""Account selection for batch financial operations."""
from __future__ import annotations

from decimal import Decimal, ROUND_DOWN
from typing import Callable, Iterable, List, Optional

from pydantic import BaseModel, model_validator

from .errors import ValidationError
from .models import (
    Account,
    AccountHolder,
    AccountStatus,
    BatchAmountMode,
    CENT,
    SchoolingStatus,
    money,
)


class EligibilityCriteria(BaseModel):
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    min_balance: Optional[Decimal] = None
    max_balance: Optional[Decimal] = None
    schooling_status: Optional[SchoolingStatus] = None

    @model_validator(mode="after")
    def _ranges(self) -> "EligibilityCriteria":
        if self.min_age is not None and self.max_age is not None and self.min_age > self.max_age:
            raise ValueError("min_age exceeds max_age")
        if self.min_balance is not None and self.max_balance is not None and self.min_balance > self.max_balance:
            raise ValueError("min_balance exceeds max_balance")
        return self


class EligibilityResult(BaseModel):
    accounts: List[Account]

    @property
    def count(self) -> int:
        return len(self.accounts)

    def amount_per_account(self, amount: Decimal, mode: BatchAmountMode) -> Decimal:
        amount = money(amount)
        if BatchAmountMode(mode) == BatchAmountMode.PER_ACCOUNT:
            return amount
        if not self.count:
            return Decimal("0.00")
        # round down so the sum never exceeds the amount being distributed
        return (amount / self.count).quantize(CENT, rounding=ROUND_DOWN)

    def total_amount(self, amount: Decimal, mode: BatchAmountMode) -> Decimal:
        return money(self.amount_per_account(amount, mode) * self.count)


def is_eligible(account: Account, holder: Optional[AccountHolder], criteria: EligibilityCriteria) -> bool:
    if account.status != AccountStatus.ACTIVE:
        return False
    if holder is None:
        return False
    if criteria.min_age is not None and holder.age < criteria.min_age:
        return False
    if criteria.max_age is not None and holder.age > criteria.max_age:
        return False
    if criteria.min_balance is not None and account.balance < criteria.min_balance:
        return False
    if criteria.max_balance is not None and account.balance > criteria.max_balance:
        return False
    if criteria.schooling_status is not None and holder.schooling_status != criteria.schooling_status:
        return False
    return True


def select_accounts(
    accounts: Iterable[Account],
    get_holder: Callable[[str], Optional[AccountHolder]],
    criteria: EligibilityCriteria,
) -> EligibilityResult:
    return EligibilityResult(
        accounts=[a for a in accounts if is_eligible(a, get_holder(a.holder_id), criteria)]
    )


def batch_amounts(result: EligibilityResult, amount: Decimal, mode: BatchAmountMode) -> Decimal:
    """Validate a batch amount against the selection and return the per-account figure."""
    if amount is None or money(amount) <= 0:
        raise ValidationError("amount must be greater than zero")
    per_account = result.amount_per_account(amount, mode)
    if result.count and per_account <= 0:
        raise ValidationError("amount is too small to distribute across the selected accounts")
    return per_account
