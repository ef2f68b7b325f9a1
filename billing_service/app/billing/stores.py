"""
Repository interfaces the engine consumes. No I/O lives in the engine;
implementations are in ``billing_service.app.repositories``.
"""
from __future__ import annotations

from decimal import Decimal
from typing import ContextManager, List, NamedTuple, Optional, Protocol

from pydantic import BaseModel

from .models import (
    Account,
    AccountHolder,
    Batch,
    Course,
    Enrollment,
    OutstandingCharge,
    Transaction,
)


class AccountStore(Protocol):
    def get_account(self, account_id: str) -> Account: ...

    def set_balance(self, account_id: str, new_balance: Decimal) -> None: ...

    def list_accounts(self) -> List[Account]: ...

    def get_holder(self, holder_id: str) -> Optional[AccountHolder]: ...

    def get_account_by_holder(self, holder_id: str) -> Optional[Account]: ...


class ChargeStore(Protocol):
    def list_charges(self, account_id: Optional[str] = None, course_id: Optional[str] = None) -> List[OutstandingCharge]: ...

    def get_charge(self, charge_id: str) -> OutstandingCharge: ...

    def add_charge(self, charge: OutstandingCharge) -> OutstandingCharge: ...

    def mark_paid(self, charge_id: str) -> None: ...

    def mark_overdue(self, charge_id: str) -> None: ...


class LedgerStore(Protocol):
    def append(self, txn: Transaction) -> Transaction: ...

    def get(self, transaction_id: str) -> Transaction: ...

    def list_for_account(self, account_id: str) -> List[Transaction]: ...

    def list_pending(self) -> List[Transaction]: ...

    def complete(self, transaction_id: str, balance_after: Decimal) -> Transaction: ...

    def fail(self, transaction_id: str) -> Transaction: ...

    def append_batch(self, batch: Batch) -> Batch: ...


class EnrollmentStore(Protocol):
    def list_active_enrollments(self, holder_id: Optional[str] = None, course_id: Optional[str] = None) -> List[Enrollment]: ...


class CourseStore(Protocol):
    def get_course(self, course_id: str) -> Course: ...


class UnitOfWork(Protocol):
    def atomic(self) -> ContextManager[None]:
        """All store calls inside the block commit together or not at all."""
        ...


class AuditSink(Protocol):
    def emit(self, event: BaseModel) -> None: ...


class NullAuditSink:
    def emit(self, event: BaseModel) -> None:
        return None


class Repositories(NamedTuple):
    accounts: AccountStore
    charges: ChargeStore
    ledger: LedgerStore
    enrollments: EnrollmentStore
    courses: CourseStore
    uow: UnitOfWork
