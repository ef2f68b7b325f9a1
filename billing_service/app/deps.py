from __future__ import annotations

from functools import lru_cache
from typing import Optional

from billing_service.app.billing.checkout import CheckoutService
from billing_service.app.billing.fee_run import FeeRun
from billing_service.app.billing.ledger import AccountLedger
from billing_service.app.billing.stores import AuditSink, Repositories
from billing_service.app.db import SessionLocal, get_engine
from billing_service.app.messaging.events import EventBus, FanoutSink
from billing_service.app.messaging.publisher import RmqAuditSink
from billing_service.app.repositories.sql import sql_repositories
from billing_service.app.settings import Settings, settings as default_settings


class BillingServices:
    """Engine components wired over one set of repositories and one audit sink."""

    def __init__(self, repos: Repositories, audit: Optional[AuditSink] = None,
                 bus: Optional[EventBus] = None, config: Optional[Settings] = None):
        config = config or default_settings
        self.repos = repos
        self.bus = bus or EventBus()
        self.audit = FanoutSink(self.bus, audit) if audit is not None else self.bus
        self.ledger = AccountLedger(repos.accounts, repos.ledger, repos.uow, self.audit)
        self.checkout = CheckoutService(
            repos.accounts, repos.charges, repos.courses, repos.enrollments, repos.uow,
            self.ledger, self.audit,
            enforce_sequence=config.ENFORCE_SEQUENTIAL_SETTLEMENT,
            default_deadline_days=config.DEFAULT_PAYMENT_DEADLINE_DAYS,
        )
        self.fee_run = FeeRun(
            repos.accounts, repos.charges, repos.courses, repos.enrollments, self.audit,
            default_deadline_days=config.DEFAULT_PAYMENT_DEADLINE_DAYS,
        )


@lru_cache(maxsize=1)
def get_services() -> BillingServices:
    get_engine()
    return BillingServices(sql_repositories(SessionLocal), audit=RmqAuditSink())
