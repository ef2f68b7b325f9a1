"""
Pytest Configuration and Fixtures
"""

import datetime as dt
from decimal import Decimal

import pytest

from billing_service.app.billing.checkout import CheckoutService
from billing_service.app.billing.fee_run import FeeRun
from billing_service.app.billing.ledger import AccountLedger
from billing_service.app.billing.models import (
    Account,
    AccountHolder,
    AccountStatus,
    BillingCycle,
    Course,
    Enrollment,
    OutstandingCharge,
    PaymentInstrument,
    PaymentType,
    SchoolingStatus,
)
from billing_service.app.repositories.memory import MemoryDatabase, memory_repositories

TODAY = dt.date(2025, 1, 10)


class RecordingSink:
    """Audit sink that keeps every emitted event."""

    def __init__(self):
        self.events = []

    def emit(self, event):
        self.events.append(event)

    @property
    def types(self):
        return [e.event_type for e in self.events]

    def of_type(self, event_type):
        return [e for e in self.events if e.event_type == event_type]


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def card():
    return PaymentInstrument(id="PM001", brand="Visa", last4="4242")


@pytest.fixture
def db():
    """Demo data: EA001 holds $100 and owes $150 + $50 + $220 across three courses."""
    database = MemoryDatabase()
    database.add_holder(AccountHolder(id="AH001", first_name="Wei Ming", last_name="Tan", age=24))
    database.add_holder(AccountHolder(id="AH002", first_name="Priya", last_name="Kumar", age=26,
                                      schooling_status=SchoolingStatus.GRADUATED))
    database.add_account(Account(id="EA001", holder_id="AH001", balance=Decimal("100.00")))
    database.add_account(Account(id="EA002", holder_id="AH002", balance=Decimal("50.00")))

    database.add_course(Course(
        id="CRS001", code="IT101", name="Introduction to Programming", fee=Decimal("150.00"),
        payment_type=PaymentType.RECURRING, billing_cycle=BillingCycle.MONTHLY,
        start_date=dt.date(2025, 1, 1), end_date=dt.date(2025, 6, 30),
    ))
    database.add_course(Course(
        id="CRS003", code="ENG102", name="English Communication", fee=Decimal("50.00"),
        payment_type=PaymentType.RECURRING, billing_cycle=BillingCycle.MONTHLY,
        start_date=dt.date(2025, 1, 1), end_date=dt.date(2025, 3, 31),
    ))
    database.add_course(Course(
        id="CRS005", code="DES101", name="Graphic Design Basics", fee=Decimal("220.00"),
        payment_type=PaymentType.ONE_TIME, duration_months=3,
    ))
    database.add_enrollment(Enrollment(id="ENR001", holder_id="AH001", course_id="CRS001", start_date=dt.date(2025, 1, 1)))
    database.add_enrollment(Enrollment(id="ENR002", holder_id="AH001", course_id="CRS003", start_date=dt.date(2025, 1, 1)))
    database.add_enrollment(Enrollment(id="ENR003", holder_id="AH001", course_id="CRS005", start_date=dt.date(2025, 1, 1)))

    for charge in (
        OutstandingCharge(id="CHG001", account_id="EA001", course_id="CRS001", course_name="Introduction to Programming",
                          period="Cycle 1 - Jan 2025", amount=Decimal("150.00"), due_date=dt.date(2025, 1, 6)),
        OutstandingCharge(id="CHG002", account_id="EA001", course_id="CRS003", course_name="English Communication",
                          period="Jan 2025", amount=Decimal("50.00"), due_date=dt.date(2025, 1, 6)),
        OutstandingCharge(id="CHG003", account_id="EA001", course_id="CRS005", course_name="Graphic Design Basics",
                          period="Course Fee", amount=Decimal("220.00"), due_date=dt.date(2025, 1, 6)),
        OutstandingCharge(id="CHG004", account_id="EA001", course_id="CRS001", course_name="Introduction to Programming",
                          period="Cycle 2 - Feb 2025", amount=Decimal("150.00"), due_date=dt.date(2025, 2, 6)),
    ):
        database.charges[charge.id] = charge
    return database


@pytest.fixture
def repos(db):
    return memory_repositories(db)


@pytest.fixture
def ledger(repos, sink):
    return AccountLedger(repos.accounts, repos.ledger, repos.uow, sink)


@pytest.fixture
def checkout_service(repos, ledger, sink):
    return CheckoutService(
        repos.accounts, repos.charges, repos.courses, repos.enrollments, repos.uow, ledger, sink,
    )


@pytest.fixture
def fee_run(repos, sink):
    return FeeRun(repos.accounts, repos.charges, repos.courses, repos.enrollments, sink)


@pytest.fixture
def batch_db():
    """Accounts for eligibility filtering: ages 15/20/25, the last one suspended."""
    database = MemoryDatabase()
    for holder_id, account_id, age, status in (
        ("H15", "A15", 15, AccountStatus.ACTIVE),
        ("H20", "A20", 20, AccountStatus.ACTIVE),
        ("H25", "A25", 25, AccountStatus.SUSPENDED),
    ):
        database.add_holder(AccountHolder(id=holder_id, age=age))
        database.add_account(Account(id=account_id, holder_id=holder_id, balance=Decimal("10.00"), status=status))
    return database
