from __future__ import annotations

import copy
import datetime as dt
import threading
import uuid
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional

from billing_service.app.billing.errors import InvalidState, NotFound
from billing_service.app.billing.models import (
    Account,
    AccountHolder,
    Batch,
    ChargeStatus,
    Course,
    Enrollment,
    OutstandingCharge,
    Transaction,
    TransactionStatus,
    money,
)
from billing_service.app.billing.stores import Repositories


class MemoryDatabase:
    """
    In-process tables guarded by one reentrant lock.

    ``atomic()`` snapshots every table and restores the snapshot if the block
    raises; nested blocks join the outermost one.
    """

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.holders: Dict[str, AccountHolder] = {}
        self.accounts: Dict[str, Account] = {}
        self.courses: Dict[str, Course] = {}
        self.enrollments: Dict[str, Enrollment] = {}
        self.charges: Dict[str, OutstandingCharge] = {}
        self.transactions: Dict[str, Transaction] = {}
        self.batches: Dict[str, Batch] = {}
        self._depth = 0

    _TABLES = ("holders", "accounts", "courses", "enrollments", "charges", "transactions", "batches")

    def _snapshot(self) -> Dict[str, Any]:
        return {name: copy.copy(getattr(self, name)) for name in self._TABLES}

    def _restore(self, snap: Dict[str, Any]) -> None:
        for name, table in snap.items():
            setattr(self, name, table)

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with self.lock:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return
            snap = self._snapshot()
            self._depth = 1
            try:
                yield
            except BaseException:
                self._restore(snap)
                raise
            finally:
                self._depth = 0

    # seeding helpers
    def add_holder(self, holder: AccountHolder) -> AccountHolder:
        with self.lock:
            self.holders[holder.id] = holder
        return holder

    def add_account(self, account: Account) -> Account:
        with self.lock:
            self.accounts[account.id] = account
        return account

    def add_course(self, course: Course) -> Course:
        with self.lock:
            self.courses[course.id] = course
        return course

    def add_enrollment(self, enrollment: Enrollment) -> Enrollment:
        with self.lock:
            self.enrollments[enrollment.id] = enrollment
        return enrollment

    def deactivate_enrollment(self, enrollment_id: str) -> None:
        with self.lock:
            e = self.enrollments[enrollment_id]
            self.enrollments[enrollment_id] = e.model_copy(update={"is_active": False})


class MemoryAccountStore:
    def __init__(self, db: MemoryDatabase):
        self._db = db

    def get_account(self, account_id: str) -> Account:
        with self._db.lock:
            account = self._db.accounts.get(account_id)
        if account is None:
            raise NotFound(f"account {account_id} not found")
        return account.model_copy()

    def set_balance(self, account_id: str, new_balance: Decimal) -> None:
        new_balance = money(new_balance)
        if new_balance < 0:
            raise InvalidState("balance cannot be negative", account_id=account_id)
        with self._db.lock:
            account = self.get_account(account_id)
            self._db.accounts[account_id] = account.model_copy(update={"balance": new_balance})

    def list_accounts(self) -> List[Account]:
        with self._db.lock:
            return [a.model_copy() for a in self._db.accounts.values()]

    def get_holder(self, holder_id: str) -> Optional[AccountHolder]:
        with self._db.lock:
            return self._db.holders.get(holder_id)

    def get_account_by_holder(self, holder_id: str) -> Optional[Account]:
        with self._db.lock:
            for account in self._db.accounts.values():
                if account.holder_id == holder_id:
                    return account.model_copy()
        return None


class MemoryChargeStore:
    def __init__(self, db: MemoryDatabase):
        self._db = db

    def list_charges(self, account_id: Optional[str] = None, course_id: Optional[str] = None) -> List[OutstandingCharge]:
        with self._db.lock:
            rows = list(self._db.charges.values())
        return [
            c.model_copy() for c in rows
            if (account_id is None or c.account_id == account_id)
            and (course_id is None or c.course_id == course_id)
        ]

    def get_charge(self, charge_id: str) -> OutstandingCharge:
        with self._db.lock:
            charge = self._db.charges.get(charge_id)
        if charge is None:
            raise NotFound(f"charge {charge_id} not found")
        return charge.model_copy()

    def add_charge(self, charge: OutstandingCharge) -> OutstandingCharge:
        stored = charge if charge.id else charge.model_copy(update={"id": f"CHG-{uuid.uuid4().hex[:10].upper()}"})
        with self._db.lock:
            self._db.charges[stored.id] = stored
        return stored.model_copy()

    def _set_status(self, charge_id: str, status: ChargeStatus) -> None:
        with self._db.lock:
            charge = self.get_charge(charge_id)
            self._db.charges[charge_id] = charge.model_copy(update={"status": status})

    def mark_paid(self, charge_id: str) -> None:
        self._set_status(charge_id, ChargeStatus.PAID)

    def mark_overdue(self, charge_id: str) -> None:
        self._set_status(charge_id, ChargeStatus.OVERDUE)


class MemoryLedgerStore:
    def __init__(self, db: MemoryDatabase):
        self._db = db

    def append(self, txn: Transaction) -> Transaction:
        with self._db.lock:
            stored = txn.model_copy(update={
                "id": txn.id or f"TXN-{uuid.uuid4().hex[:12].upper()}",
                "created_at": txn.created_at or dt.datetime.now(dt.timezone.utc),
            })
            if stored.id in self._db.transactions:
                raise InvalidState(f"transaction {stored.id} already exists")
            # dicts keep insertion order, which is creation order
            self._db.transactions[stored.id] = stored
        return stored

    def get(self, transaction_id: str) -> Transaction:
        with self._db.lock:
            txn = self._db.transactions.get(transaction_id)
        if txn is None:
            raise NotFound(f"transaction {transaction_id} not found")
        return txn

    def list_for_account(self, account_id: str) -> List[Transaction]:
        with self._db.lock:
            return [t for t in self._db.transactions.values() if t.account_id == account_id]

    def list_pending(self) -> List[Transaction]:
        with self._db.lock:
            return [t for t in self._db.transactions.values() if t.status == TransactionStatus.PENDING]

    def _transition(self, transaction_id: str, **update: Any) -> Transaction:
        with self._db.lock:
            txn = self.get(transaction_id)
            if txn.status != TransactionStatus.PENDING:
                raise InvalidState(f"transaction {transaction_id} is {txn.status.value}, not pending")
            done = txn.model_copy(update=update)
            self._db.transactions[transaction_id] = done
        return done

    def complete(self, transaction_id: str, balance_after: Decimal) -> Transaction:
        return self._transition(
            transaction_id,
            status=TransactionStatus.COMPLETED,
            balance_after=money(balance_after),
            executed_at=dt.datetime.now(dt.timezone.utc),
        )

    def fail(self, transaction_id: str) -> Transaction:
        return self._transition(transaction_id, status=TransactionStatus.FAILED)

    def append_batch(self, batch: Batch) -> Batch:
        stored = batch.model_copy(update={"created_at": batch.created_at or dt.datetime.now(dt.timezone.utc)})
        with self._db.lock:
            self._db.batches[stored.id] = stored
        return stored


class MemoryEnrollmentStore:
    def __init__(self, db: MemoryDatabase):
        self._db = db

    def list_active_enrollments(self, holder_id: Optional[str] = None, course_id: Optional[str] = None) -> List[Enrollment]:
        with self._db.lock:
            rows = list(self._db.enrollments.values())
        return [
            e for e in rows
            if e.is_active
            and (holder_id is None or e.holder_id == holder_id)
            and (course_id is None or e.course_id == course_id)
        ]


class MemoryCourseStore:
    def __init__(self, db: MemoryDatabase):
        self._db = db

    def get_course(self, course_id: str) -> Course:
        with self._db.lock:
            course = self._db.courses.get(course_id)
        if course is None:
            raise NotFound(f"course {course_id} not found")
        return course


def memory_repositories(db: Optional[MemoryDatabase] = None) -> Repositories:
    db = db or MemoryDatabase()
    return Repositories(
        accounts=MemoryAccountStore(db),
        charges=MemoryChargeStore(db),
        ledger=MemoryLedgerStore(db),
        enrollments=MemoryEnrollmentStore(db),
        courses=MemoryCourseStore(db),
        uow=db,
    )
