"""
Typed failures of the billing engine.

Every error carries a stable ``code`` that the HTTP layer and the audit
events reuse as ``reason_code``.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional


class BillingError(Exception):
    """Base exception for billing engine errors."""

    code = "billing_error"

    def __init__(self, message: str = "", **details: Any):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ValidationError(BillingError):
    """Raised when an input fails structural validation, before any mutation."""

    code = "validation_error"


class NotFound(BillingError):
    """Raised when an account, course, charge or ledger entry does not exist."""

    code = "not_found"


class InvalidState(BillingError):
    """Raised when an entity is not in a state that allows the operation."""

    code = "invalid_state"


class BillingCycleTooShort(BillingError):
    """
    Course duration does not span two full periods of the billing cycle.

    Non-fatal: the policy returns it alongside a monthly fallback.
    """

    code = "billing_cycle_too_short"

    def __init__(self, requested: str, duration_months: int, required_months: int):
        super().__init__(
            f"{requested} billing needs at least {required_months} months, course runs {duration_months}",
            requested=requested,
            duration_months=duration_months,
            required_months=required_months,
        )
        self.requested = requested
        self.duration_months = duration_months
        self.required_months = required_months


class InsufficientBalance(BillingError):
    code = "insufficient_balance"

    def __init__(self, balance: Decimal, required: Decimal, account_id: Optional[str] = None):
        super().__init__(
            f"Insufficient balance: available {balance}, required {required}",
            balance=str(balance),
            required=str(required),
            account_id=account_id,
        )
        self.balance = balance
        self.required = required


class MissingPaymentInstrument(BillingError):
    code = "missing_payment_instrument"


class NoEligibleAccounts(BillingError):
    code = "no_eligible_accounts"


class UnmatchedCycle(BillingError):
    """A generated cycle has no charge record yet. Reported, never raised."""

    code = "unmatched_cycle"

    def __init__(self, cycle_number: int, label: str):
        super().__init__(f"No charge recorded for {label}", cycle_number=cycle_number, label=label)
        self.cycle_number = cycle_number
        self.label = label
