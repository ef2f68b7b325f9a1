"""Billing-cycle and payment-settlement engine."""

from .allocator import Allocation, allocate, available_methods
from .checkout import CheckoutQuote, CheckoutResult, CheckoutService, EnrollmentObligations
from .eligibility import EligibilityCriteria, EligibilityResult, select_accounts
from .fee_run import FeeRun, FeeRunResult
from .ledger import AccountLedger, AccountLocks, BatchResult, LedgerResult
from .policy import resolve_billing_cycle, total_cycles, total_fee, validate_course
from .reconciler import ReconciliationResult, reconcile, reconcile_enrollment
from .schedule import FeeCycle, generate_schedule, schedule_for

__all__ = [
    "AccountLedger",
    "AccountLocks",
    "Allocation",
    "BatchResult",
    "CheckoutQuote",
    "CheckoutResult",
    "CheckoutService",
    "EligibilityCriteria",
    "EligibilityResult",
    "EnrollmentObligations",
    "FeeCycle",
    "FeeRun",
    "FeeRunResult",
    "LedgerResult",
    "ReconciliationResult",
    "allocate",
    "available_methods",
    "generate_schedule",
    "reconcile",
    "reconcile_enrollment",
    "resolve_billing_cycle",
    "schedule_for",
    "select_accounts",
    "total_cycles",
    "total_fee",
    "validate_course",
]
