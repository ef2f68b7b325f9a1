"""
Account ledger.

Every completed entry satisfies ``balance_after = balance_before + delta``.
The read-modify-write of a balance runs under a per-account lock, inside a
unit of work, so concurrent credits and debits cannot lose an update.
Scheduled entries are written ``pending`` and only move the balance when
executed.
"""
from __future__ import annotations

import datetime as dt
import logging
import threading
import uuid
from contextlib import contextmanager
from decimal import Decimal
from typing import Dict, Iterator, List, Optional

from pydantic import BaseModel

from libs.event_contracts.ledger_v1 import BatchTopUpCompleted, TopUpCompleted, TopUpScheduled

from .allocator import Allocation
from .eligibility import EligibilityCriteria, batch_amounts, select_accounts
from .errors import (
    BillingError,
    InsufficientBalance,
    InvalidState,
    NoEligibleAccounts,
    ValidationError,
)
from .models import (
    AccountStatus,
    Batch,
    BatchAmountMode,
    CourseItem,
    Notification,
    NotificationLevel,
    Transaction,
    TransactionStatus,
    TransactionType,
    money,
)
from .stores import AccountStore, AuditSink, LedgerStore, NullAuditSink, UnitOfWork

logger = logging.getLogger(__name__)


def _short_id() -> str:
    return uuid.uuid4().hex[:10].upper()


class AccountLocks:
    """Registry of reentrant locks, one per account id."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def _lock_for(self, account_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = self._locks[account_id] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, account_id: str) -> Iterator[None]:
        with self._lock_for(account_id):
            yield


class LedgerResult(BaseModel):
    transaction: Transaction
    notification: Notification


class EntryFailure(BaseModel):
    account_id: str
    transaction_id: Optional[str] = None
    code: str
    message: str


class BatchResult(BaseModel):
    batch: Batch
    transactions: List[Transaction]
    failures: List[EntryFailure]
    notification: Notification


class RunDueResult(BaseModel):
    executed: List[Transaction]
    failures: List[EntryFailure]


class AccountLedger:
    def __init__(
        self,
        accounts: AccountStore,
        ledger: LedgerStore,
        uow: UnitOfWork,
        audit: Optional[AuditSink] = None,
        locks: Optional[AccountLocks] = None,
    ):
        self._accounts = accounts
        self._ledger = ledger
        self._uow = uow
        self._audit = audit or NullAuditSink()
        self._locks = locks or AccountLocks()

    @property
    def locks(self) -> AccountLocks:
        return self._locks

    # ---- validation helpers ----
    @staticmethod
    def _require_amount(amount) -> Decimal:
        if amount is None:
            raise ValidationError("amount is required")
        try:
            value = money(amount)
        except (ArithmeticError, ValueError, TypeError):
            raise ValidationError(f"invalid amount {amount!r}")
        if value <= 0:
            raise ValidationError("amount must be greater than zero")
        return value

    @staticmethod
    def _require_description(description: Optional[str]) -> str:
        if not description or not description.strip():
            raise ValidationError("description is required")
        return description.strip()

    @staticmethod
    def _require_schedule(schedule: bool, scheduled_for: Optional[dt.date]) -> None:
        if schedule and scheduled_for is None:
            raise ValidationError("scheduled date is required when scheduling")

    # ---- core mutation ----
    def _post(self, txn: Transaction) -> Transaction:
        """Apply a completed entry: lock, read, check, append, write balance."""
        with self._locks.hold(txn.account_id):
            with self._uow.atomic():
                account = self._accounts.get_account(txn.account_id)
                if account.status == AccountStatus.CLOSED:
                    raise InvalidState(f"account {account.id} is closed", account_id=account.id)
                new_balance = account.balance + txn.balance_delta
                if new_balance < 0:
                    raise InsufficientBalance(account.balance, -txn.balance_delta, account_id=account.id)
                stored = self._ledger.append(
                    txn.model_copy(update={"balance_after": new_balance, "status": TransactionStatus.COMPLETED})
                )
                self._accounts.set_balance(account.id, new_balance)
        logger.info(
            "ledger posted account_id=%s type=%s amount=%s balance_after=%s",
            stored.account_id, stored.type.value, stored.amount, stored.balance_after,
        )
        return stored

    def _schedule(self, txn: Transaction, scheduled_for: dt.date) -> Transaction:
        # existence check only; no balance is touched until execution
        self._accounts.get_account(txn.account_id)
        stored = self._ledger.append(
            txn.model_copy(update={"status": TransactionStatus.PENDING, "balance_after": None, "scheduled_for": scheduled_for})
        )
        logger.info(
            "ledger scheduled account_id=%s type=%s amount=%s scheduled_for=%s",
            stored.account_id, stored.type.value, stored.amount, scheduled_for,
        )
        return stored

    # ---- public operations ----
    def top_up(
        self,
        account_id: str,
        amount,
        *,
        description: str,
        reference: Optional[str] = None,
        external_description: Optional[str] = None,
        schedule: bool = False,
        scheduled_for: Optional[dt.date] = None,
        batch_id: Optional[str] = None,
        emit: bool = True,
    ) -> LedgerResult:
        value = self._require_amount(amount)
        description = self._require_description(description)
        self._require_schedule(schedule, scheduled_for)

        txn = Transaction(
            account_id=account_id,
            type=TransactionType.TOP_UP,
            amount=value,
            description=description,
            external_description=external_description,
            reference=reference or f"TOPUP-{_short_id()}",
            batch_id=batch_id,
        )
        if schedule:
            stored = self._schedule(txn, scheduled_for)
            if emit:
                self._audit.emit(TopUpScheduled(
                    account_id=account_id, transaction_id=stored.id, amount=value,
                    scheduled_for=scheduled_for.isoformat(), reference=stored.reference,
                ))
            note = Notification(
                title="Top-up Scheduled",
                message=f"Top-up of ${value} scheduled for {scheduled_for.isoformat()}",
                level=NotificationLevel.INFO,
            )
        else:
            stored = self._post(txn)
            if emit:
                self._audit.emit(TopUpCompleted(
                    account_id=account_id, transaction_id=stored.id, amount=value,
                    balance_after=stored.balance_after, reference=stored.reference,
                ))
            note = Notification(title="Top-up Successful", message=f"${value} added to account {account_id}")
        return LedgerResult(transaction=stored, notification=note)

    def charge(
        self,
        account_id: str,
        amount,
        *,
        description: str,
        course_id: Optional[str] = None,
        period: Optional[str] = None,
        reference: Optional[str] = None,
        schedule: bool = False,
        scheduled_for: Optional[dt.date] = None,
    ) -> LedgerResult:
        value = self._require_amount(amount)
        description = self._require_description(description)
        self._require_schedule(schedule, scheduled_for)

        txn = Transaction(
            account_id=account_id,
            type=TransactionType.CHARGE,
            amount=-value,
            description=description,
            reference=reference or f"CHG-{_short_id()}",
            course_id=course_id,
            period=period,
        )
        if schedule:
            stored = self._schedule(txn, scheduled_for)
            note = Notification(
                title="Charge Scheduled",
                message=f"Charge of ${value} scheduled for {scheduled_for.isoformat()}",
                level=NotificationLevel.INFO,
            )
        else:
            stored = self._post(txn)
            note = Notification(title="Charge Posted", message=f"${value} charged to account {account_id}")
        return LedgerResult(transaction=stored, notification=note)

    def record_payment(
        self,
        account_id: str,
        allocation: Allocation,
        *,
        description: str,
        reference: str,
        courses: List[CourseItem],
    ) -> Transaction:
        """Write the single payment entry of a checkout; callers hold the unit of work."""
        with self._locks.hold(account_id):
            current = self._accounts.get_account(account_id).balance
            if current != allocation.balance_before:
                raise InvalidState(
                    "balance changed since the payment was allocated",
                    account_id=account_id,
                )
            txn = Transaction(
                account_id=account_id,
                type=TransactionType.PAYMENT,
                amount=-allocation.selected_total,
                description=description,
                reference=reference,
                payment_method=allocation.method,
                courses=courses,
                payment_breakdown=allocation.breakdown,
            )
            return self._post(txn)

    def execute_scheduled(self, transaction_id: str, *, as_of: Optional[dt.date] = None) -> LedgerResult:
        as_of = as_of or dt.date.today()
        pending = self._ledger.get(transaction_id)
        with self._locks.hold(pending.account_id):
            with self._uow.atomic():
                txn = self._ledger.get(transaction_id)
                if txn.status != TransactionStatus.PENDING:
                    raise InvalidState(f"transaction {transaction_id} is {txn.status.value}, not pending")
                if txn.scheduled_for and txn.scheduled_for > as_of:
                    raise InvalidState(f"transaction {transaction_id} is scheduled for {txn.scheduled_for.isoformat()}")
                account = self._accounts.get_account(txn.account_id)
                if account.status == AccountStatus.CLOSED:
                    raise InvalidState(f"account {account.id} is closed", account_id=account.id)
                new_balance = account.balance + txn.balance_delta
                if new_balance < 0:
                    raise InsufficientBalance(account.balance, -txn.balance_delta, account_id=account.id)
                done = self._ledger.complete(transaction_id, new_balance)
                self._accounts.set_balance(account.id, new_balance)

        logger.info("ledger executed transaction_id=%s account_id=%s balance_after=%s", done.id, done.account_id, new_balance)
        if done.type == TransactionType.TOP_UP:
            self._audit.emit(TopUpCompleted(
                account_id=done.account_id, transaction_id=done.id, amount=done.amount,
                balance_after=new_balance, reference=done.reference,
            ))
        return LedgerResult(
            transaction=done,
            notification=Notification(title="Scheduled Entry Executed", message=f"{done.reference} applied"),
        )

    def run_due(self, as_of: Optional[dt.date] = None) -> RunDueResult:
        """
        Execute every pending entry due on or before ``as_of``; each entry is
        its own unit of work. An entry that cannot be applied is marked failed.
        """
        as_of = as_of or dt.date.today()
        executed: List[Transaction] = []
        failures: List[EntryFailure] = []
        for txn in self._ledger.list_pending():
            if txn.scheduled_for and txn.scheduled_for > as_of:
                continue
            try:
                executed.append(self.execute_scheduled(txn.id, as_of=as_of).transaction)
            except BillingError as exc:
                logger.warning("scheduled entry failed transaction_id=%s code=%s", txn.id, exc.code)
                if self._ledger.get(txn.id).status == TransactionStatus.PENDING:
                    self._ledger.fail(txn.id)
                failures.append(EntryFailure(account_id=txn.account_id, transaction_id=txn.id, code=exc.code, message=exc.message))
        return RunDueResult(executed=executed, failures=failures)

    def batch_top_up(
        self,
        criteria: EligibilityCriteria,
        amount,
        *,
        description: str,
        mode: BatchAmountMode = BatchAmountMode.PER_ACCOUNT,
        external_description: Optional[str] = None,
        schedule: bool = False,
        scheduled_for: Optional[dt.date] = None,
        created_by: str = "system",
    ) -> BatchResult:
        """
        Top up every eligible account. Accounts are processed independently:
        a failure is reported for that account and the rest still run.

        Raises:
            ValidationError: bad amount, description or schedule, before any write
            NoEligibleAccounts: the criteria select nothing
        """
        self._require_amount(amount)
        description = self._require_description(description)
        self._require_schedule(schedule, scheduled_for)

        selection = select_accounts(self._accounts.list_accounts(), self._accounts.get_holder, criteria)
        if not selection.count:
            raise NoEligibleAccounts("No accounts match the selected criteria")
        per_account = batch_amounts(selection, amount, mode)

        batch_id = f"BAT-{_short_id()}"
        posted: List[Transaction] = []
        failures: List[EntryFailure] = []
        for account in selection.accounts:
            try:
                result = self.top_up(
                    account.id,
                    per_account,
                    description=description,
                    external_description=external_description,
                    reference=f"{batch_id}-{account.id}",
                    schedule=schedule,
                    scheduled_for=scheduled_for,
                    batch_id=batch_id,
                    emit=False,
                )
                posted.append(result.transaction)
            except BillingError as exc:
                logger.warning("batch top-up failed batch_id=%s account_id=%s code=%s", batch_id, account.id, exc.code)
                failures.append(EntryFailure(account_id=account.id, code=exc.code, message=exc.message))
            except Exception as exc:
                logger.exception("batch top-up error batch_id=%s account_id=%s", batch_id, account.id)
                failures.append(EntryFailure(account_id=account.id, code="unexpected_error", message=str(exc)))

        if schedule:
            status = TransactionStatus.PENDING
        else:
            status = TransactionStatus.COMPLETED if posted else TransactionStatus.FAILED
        batch = self._ledger.append_batch(Batch(
            id=batch_id,
            description=description,
            external_description=external_description,
            total_amount=money(per_account * len(posted)),
            account_count=len(posted),
            status=status,
            scheduled_for=scheduled_for if schedule else None,
            created_by=created_by,
        ))
        self._audit.emit(BatchTopUpCompleted(
            batch_id=batch.id,
            description=batch.description,
            total_amount=batch.total_amount,
            account_count=batch.account_count,
            failed_count=len(failures),
            scheduled=schedule,
        ))
        logger.info(
            "batch top-up batch_id=%s accounts=%s failed=%s total=%s",
            batch.id, batch.account_count, len(failures), batch.total_amount,
        )

        if failures:
            level = NotificationLevel.WARNING
            message = f"{batch.account_count} account(s) topped up, {len(failures)} failed"
        else:
            level = NotificationLevel.SUCCESS
            message = f"Processed for {batch.account_count} account(s), total ${batch.total_amount}"
        title = "Top-up Scheduled" if schedule else "Top-up Successful"
        return BatchResult(
            batch=batch,
            transactions=posted,
            failures=failures,
            notification=Notification(title=title, message=message, level=level),
        )

    def history(self, account_id: str) -> List[Transaction]:
        return self._ledger.list_for_account(account_id)

    def replay_balance(self, account_id: str, opening_balance: Decimal = Decimal("0.00")) -> Decimal:
        """Fold completed entries in creation order."""
        balance = money(opening_balance)
        for txn in self._ledger.list_for_account(account_id):
            if txn.status == TransactionStatus.COMPLETED:
                balance += txn.balance_delta
        return balance

    def verify(self, account_id: str, opening_balance: Decimal = Decimal("0.00")) -> bool:
        return self.replay_balance(account_id, opening_balance) == self._accounts.get_account(account_id).balance
