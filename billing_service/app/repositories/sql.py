from __future__ import annotations

import datetime as dt
import json
import threading
import uuid
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Mapping, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session, sessionmaker

from billing_service.app.billing.errors import InvalidState, NotFound
from billing_service.app.billing.models import (
    Account,
    AccountHolder,
    Batch,
    ChargeStatus,
    Course,
    CourseItem,
    Enrollment,
    OutstandingCharge,
    PaymentLeg,
    Transaction,
    TransactionStatus,
    money,
)
from billing_service.app.billing.stores import Repositories
from billing_service.app.db import session_scope

# Values are bound as plain strings so the same statements run on PostgreSQL and SQLite.


def _dec(v: Any) -> Optional[Decimal]:
    return None if v is None else money(Decimal(str(v)))


def _date(v: Any) -> Optional[dt.date]:
    if v is None or isinstance(v, dt.date) and not isinstance(v, dt.datetime):
        return v
    if isinstance(v, dt.datetime):
        return v.date()
    return dt.date.fromisoformat(str(v)[:10])


def _ts(v: Any) -> Optional[dt.datetime]:
    if v is None or isinstance(v, dt.datetime):
        return v
    return dt.datetime.fromisoformat(str(v))


def _iso(v: Optional[dt.date]) -> Optional[str]:
    return v.isoformat() if v is not None else None


def _enum(v: Any) -> Optional[str]:
    return getattr(v, "value", v)


class SqlDatabase:
    """
    Unit of work over a SQLAlchemy sessionmaker.

    Inside ``atomic()`` every store call on the same thread shares one
    session; nested blocks join it. Outside, each call commits on its own.
    """

    def __init__(self, factory: sessionmaker):
        self.factory = factory
        self._local = threading.local()

    @property
    def dialect(self) -> str:
        return self.factory.kw["bind"].dialect.name

    @contextmanager
    def atomic(self) -> Iterator[None]:
        if getattr(self._local, "session", None) is not None:
            self._local.depth += 1
            try:
                yield
            finally:
                self._local.depth -= 1
            return
        with session_scope(self.factory) as db:
            self._local.session = db
            self._local.depth = 1
            try:
                yield
            finally:
                self._local.session = None
                self._local.depth = 0

    @contextmanager
    def session(self) -> Iterator[Session]:
        current = getattr(self._local, "session", None)
        if current is not None:
            yield current
            return
        with session_scope(self.factory) as db:
            yield db

    @property
    def in_atomic(self) -> bool:
        return getattr(self._local, "session", None) is not None


class SqlAccountStore:
    def __init__(self, db: SqlDatabase):
        self._db = db

    @staticmethod
    def _account(row: Mapping[str, Any]) -> Account:
        return Account(
            id=row["account_id"],
            holder_id=row["holder_id"],
            balance=_dec(row["balance"]),
            status=row["status"],
        )

    def get_account(self, account_id: str) -> Account:
        sql = "SELECT account_id, holder_id, balance, status FROM accounts WHERE account_id = :aid"
        if self._db.in_atomic and self._db.dialect == "postgresql":
            # Lock account row
            sql += " FOR UPDATE"
        with self._db.session() as s:
            row = s.execute(text(sql), {"aid": account_id}).mappings().first()
        if not row:
            raise NotFound(f"account {account_id} not found")
        return self._account(row)

    def set_balance(self, account_id: str, new_balance: Decimal) -> None:
        new_balance = money(new_balance)
        if new_balance < 0:
            raise InvalidState("balance cannot be negative", account_id=account_id)
        with self._db.session() as s:
            res = s.execute(
                text("UPDATE accounts SET balance = :bal WHERE account_id = :aid"),
                {"bal": str(new_balance), "aid": account_id},
            )
        if res.rowcount == 0:
            raise NotFound(f"account {account_id} not found")

    def list_accounts(self) -> List[Account]:
        with self._db.session() as s:
            rows = s.execute(
                text("SELECT account_id, holder_id, balance, status FROM accounts ORDER BY account_id")
            ).mappings().all()
        return [self._account(r) for r in rows]

    def get_holder(self, holder_id: str) -> Optional[AccountHolder]:
        with self._db.session() as s:
            row = s.execute(
                text(
                    """
                    SELECT holder_id, first_name, last_name, date_of_birth, age, schooling_status
                    FROM account_holders WHERE holder_id = :hid
                    """
                ),
                {"hid": holder_id},
            ).mappings().first()
        if not row:
            return None
        return AccountHolder(
            id=row["holder_id"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            date_of_birth=_date(row["date_of_birth"]),
            age=int(row["age"]),
            schooling_status=row["schooling_status"],
        )

    def get_account_by_holder(self, holder_id: str) -> Optional[Account]:
        with self._db.session() as s:
            row = s.execute(
                text("SELECT account_id, holder_id, balance, status FROM accounts WHERE holder_id = :hid"),
                {"hid": holder_id},
            ).mappings().first()
        return self._account(row) if row else None


class SqlChargeStore:
    _COLUMNS = "charge_id, account_id, course_id, course_name, period, amount, due_date, status"

    def __init__(self, db: SqlDatabase):
        self._db = db

    @staticmethod
    def _charge(row: Mapping[str, Any]) -> OutstandingCharge:
        return OutstandingCharge(
            id=row["charge_id"],
            account_id=row["account_id"],
            course_id=row["course_id"],
            course_name=row["course_name"],
            period=row["period"],
            amount=_dec(row["amount"]),
            due_date=_date(row["due_date"]),
            status=row["status"],
        )

    def list_charges(self, account_id: Optional[str] = None, course_id: Optional[str] = None) -> List[OutstandingCharge]:
        where, params = [], {}
        if account_id is not None:
            where.append("account_id = :aid")
            params["aid"] = account_id
        if course_id is not None:
            where.append("course_id = :cid")
            params["cid"] = course_id
        sql = f"SELECT {self._COLUMNS} FROM outstanding_charges"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY due_date, charge_id"
        with self._db.session() as s:
            rows = s.execute(text(sql), params).mappings().all()
        return [self._charge(r) for r in rows]

    def get_charge(self, charge_id: str) -> OutstandingCharge:
        with self._db.session() as s:
            row = s.execute(
                text(f"SELECT {self._COLUMNS} FROM outstanding_charges WHERE charge_id = :cid"),
                {"cid": charge_id},
            ).mappings().first()
        if not row:
            raise NotFound(f"charge {charge_id} not found")
        return self._charge(row)

    def add_charge(self, charge: OutstandingCharge) -> OutstandingCharge:
        stored = charge if charge.id else charge.model_copy(update={"id": f"CHG-{uuid.uuid4().hex[:10].upper()}"})
        with self._db.session() as s:
            s.execute(
                text(
                    """
                    INSERT INTO outstanding_charges (charge_id, account_id, course_id, course_name, period, amount, due_date, status)
                    VALUES (:cid, :aid, :course_id, :course_name, :period, :amount, :due_date, :status)
                    """
                ),
                {
                    "cid": stored.id,
                    "aid": stored.account_id,
                    "course_id": stored.course_id,
                    "course_name": stored.course_name,
                    "period": stored.period,
                    "amount": str(stored.amount),
                    "due_date": _iso(stored.due_date),
                    "status": stored.status.value,
                },
            )
        return stored

    def _set_status(self, charge_id: str, status: ChargeStatus) -> None:
        with self._db.session() as s:
            res = s.execute(
                text("UPDATE outstanding_charges SET status = :st WHERE charge_id = :cid"),
                {"st": status.value, "cid": charge_id},
            )
        if res.rowcount == 0:
            raise NotFound(f"charge {charge_id} not found")

    def mark_paid(self, charge_id: str) -> None:
        self._set_status(charge_id, ChargeStatus.PAID)

    def mark_overdue(self, charge_id: str) -> None:
        self._set_status(charge_id, ChargeStatus.OVERDUE)


class SqlLedgerStore:
    _COLUMNS = """
        transaction_id, account_id, type, amount, balance_after, description, external_description,
        reference, status, created_at, scheduled_for, executed_at, course_id, period, batch_id,
        payment_method, courses, payment_breakdown
    """

    def __init__(self, db: SqlDatabase):
        self._db = db

    @staticmethod
    def _txn(row: Mapping[str, Any]) -> Transaction:
        return Transaction(
            id=row["transaction_id"],
            account_id=row["account_id"],
            type=row["type"],
            amount=_dec(row["amount"]),
            balance_after=_dec(row["balance_after"]),
            description=row["description"],
            external_description=row["external_description"],
            reference=row["reference"],
            status=row["status"],
            created_at=_ts(row["created_at"]),
            scheduled_for=_date(row["scheduled_for"]),
            executed_at=_ts(row["executed_at"]),
            course_id=row["course_id"],
            period=row["period"],
            batch_id=row["batch_id"],
            payment_method=row["payment_method"],
            courses=[CourseItem.model_validate(c) for c in json.loads(row["courses"] or "[]")],
            payment_breakdown=[PaymentLeg.model_validate(p) for p in json.loads(row["payment_breakdown"] or "[]")],
        )

    def append(self, txn: Transaction) -> Transaction:
        stored = txn.model_copy(update={
            "id": txn.id or f"TXN-{uuid.uuid4().hex[:12].upper()}",
            "created_at": txn.created_at or dt.datetime.now(dt.timezone.utc),
        })
        with self._db.session() as s:
            exists = s.execute(
                text("SELECT 1 FROM transactions WHERE transaction_id = :tid"), {"tid": stored.id}
            ).first()
            if exists:
                raise InvalidState(f"transaction {stored.id} already exists")
            seq = s.execute(text("SELECT COALESCE(MAX(seq), 0) + 1 FROM transactions")).scalar_one()
            s.execute(
                text(
                    """
                    INSERT INTO transactions (
                        transaction_id, seq, account_id, type, amount, balance_after, description,
                        external_description, reference, status, created_at, scheduled_for, executed_at,
                        course_id, period, batch_id, payment_method, courses, payment_breakdown
                    ) VALUES (
                        :tid, :seq, :aid, :type, :amount, :balance_after, :description,
                        :external_description, :reference, :status, :created_at, :scheduled_for, :executed_at,
                        :course_id, :period, :batch_id, :payment_method, :courses, :payment_breakdown
                    )
                    """
                ),
                {
                    "tid": stored.id,
                    "seq": int(seq),
                    "aid": stored.account_id,
                    "type": stored.type.value,
                    "amount": str(stored.amount),
                    "balance_after": str(stored.balance_after) if stored.balance_after is not None else None,
                    "description": stored.description,
                    "external_description": stored.external_description,
                    "reference": stored.reference,
                    "status": stored.status.value,
                    "created_at": stored.created_at.isoformat(),
                    "scheduled_for": _iso(stored.scheduled_for),
                    "executed_at": stored.executed_at.isoformat() if stored.executed_at else None,
                    "course_id": stored.course_id,
                    "period": stored.period,
                    "batch_id": stored.batch_id,
                    "payment_method": _enum(stored.payment_method),
                    "courses": json.dumps([c.model_dump(mode="json") for c in stored.courses]),
                    "payment_breakdown": json.dumps([p.model_dump(mode="json") for p in stored.payment_breakdown]),
                },
            )
        return stored

    def get(self, transaction_id: str) -> Transaction:
        with self._db.session() as s:
            row = s.execute(
                text(f"SELECT {self._COLUMNS} FROM transactions WHERE transaction_id = :tid"),
                {"tid": transaction_id},
            ).mappings().first()
        if not row:
            raise NotFound(f"transaction {transaction_id} not found")
        return self._txn(row)

    def list_for_account(self, account_id: str) -> List[Transaction]:
        with self._db.session() as s:
            rows = s.execute(
                text(f"SELECT {self._COLUMNS} FROM transactions WHERE account_id = :aid ORDER BY seq"),
                {"aid": account_id},
            ).mappings().all()
        return [self._txn(r) for r in rows]

    def list_pending(self) -> List[Transaction]:
        with self._db.session() as s:
            rows = s.execute(
                text(f"SELECT {self._COLUMNS} FROM transactions WHERE status = 'pending' ORDER BY seq")
            ).mappings().all()
        return [self._txn(r) for r in rows]

    def _transition(self, transaction_id: str, sql: str, params: Dict[str, Any]) -> Transaction:
        with self._db.session() as s:
            res = s.execute(text(sql), {"tid": transaction_id, **params})
            if res.rowcount == 0:
                # distinguishes missing from already-moved
                current = self.get(transaction_id)
                raise InvalidState(f"transaction {transaction_id} is {current.status.value}, not pending")
        return self.get(transaction_id)

    def complete(self, transaction_id: str, balance_after: Decimal) -> Transaction:
        return self._transition(
            transaction_id,
            """
            UPDATE transactions
            SET status = 'completed', balance_after = :bal, executed_at = :now
            WHERE transaction_id = :tid AND status = 'pending'
            """,
            {"bal": str(money(balance_after)), "now": dt.datetime.now(dt.timezone.utc).isoformat()},
        )

    def fail(self, transaction_id: str) -> Transaction:
        return self._transition(
            transaction_id,
            "UPDATE transactions SET status = 'failed' WHERE transaction_id = :tid AND status = 'pending'",
            {},
        )

    def append_batch(self, batch: Batch) -> Batch:
        stored = batch.model_copy(update={"created_at": batch.created_at or dt.datetime.now(dt.timezone.utc)})
        with self._db.session() as s:
            s.execute(
                text(
                    """
                    INSERT INTO batches (batch_id, type, description, external_description, total_amount,
                                         account_count, status, scheduled_for, created_at, created_by)
                    VALUES (:bid, :type, :description, :external_description, :total_amount,
                            :account_count, :status, :scheduled_for, :created_at, :created_by)
                    """
                ),
                {
                    "bid": stored.id,
                    "type": stored.type,
                    "description": stored.description,
                    "external_description": stored.external_description,
                    "total_amount": str(stored.total_amount),
                    "account_count": stored.account_count,
                    "status": stored.status.value,
                    "scheduled_for": _iso(stored.scheduled_for),
                    "created_at": stored.created_at.isoformat(),
                    "created_by": stored.created_by,
                },
            )
        return stored


class SqlEnrollmentStore:
    def __init__(self, db: SqlDatabase):
        self._db = db

    def list_active_enrollments(self, holder_id: Optional[str] = None, course_id: Optional[str] = None) -> List[Enrollment]:
        sql = """
            SELECT enrollment_id, holder_id, course_id, start_date, end_date, is_active
            FROM enrollments WHERE is_active = :active
        """
        params: Dict[str, Any] = {"active": True}
        if holder_id is not None:
            sql += " AND holder_id = :hid"
            params["hid"] = holder_id
        if course_id is not None:
            sql += " AND course_id = :cid"
            params["cid"] = course_id
        sql += " ORDER BY start_date, enrollment_id"
        with self._db.session() as s:
            rows = s.execute(text(sql), params).mappings().all()
        return [
            Enrollment(
                id=r["enrollment_id"],
                holder_id=r["holder_id"],
                course_id=r["course_id"],
                start_date=_date(r["start_date"]),
                end_date=_date(r["end_date"]),
                is_active=bool(r["is_active"]),
            )
            for r in rows
        ]


class SqlCourseStore:
    def __init__(self, db: SqlDatabase):
        self._db = db

    def get_course(self, course_id: str) -> Course:
        with self._db.session() as s:
            row = s.execute(
                text(
                    """
                    SELECT course_id, code, name, fee, payment_type, billing_cycle, duration_months,
                           start_date, end_date, payment_deadline_days
                    FROM courses WHERE course_id = :cid
                    """
                ),
                {"cid": course_id},
            ).mappings().first()
        if not row:
            raise NotFound(f"course {course_id} not found")
        return Course(
            id=row["course_id"],
            code=row["code"],
            name=row["name"],
            fee=_dec(row["fee"]),
            payment_type=row["payment_type"],
            billing_cycle=row["billing_cycle"],
            duration_months=row["duration_months"],
            start_date=_date(row["start_date"]),
            end_date=_date(row["end_date"]),
            payment_deadline_days=row["payment_deadline_days"],
        )


def sql_repositories(factory: sessionmaker) -> Repositories:
    db = SqlDatabase(factory)
    return Repositories(
        accounts=SqlAccountStore(db),
        charges=SqlChargeStore(db),
        ledger=SqlLedgerStore(db),
        enrollments=SqlEnrollmentStore(db),
        courses=SqlCourseStore(db),
        uow=db,
    )
