from __future__ import annotations

"""
Billing tables.

Plain DDL that runs on PostgreSQL and SQLite alike. Money is NUMERIC(12,2);
statuses are stored as their enum values.

Run:
  python -m billing_service.db.schema
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine

DDL = [
    """
    CREATE TABLE IF NOT EXISTS account_holders (
        holder_id        TEXT PRIMARY KEY,
        first_name       TEXT NOT NULL DEFAULT '',
        last_name        TEXT NOT NULL DEFAULT '',
        date_of_birth    DATE,
        age              INTEGER NOT NULL,
        schooling_status TEXT NOT NULL DEFAULT 'in_school'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS accounts (
        account_id TEXT PRIMARY KEY,
        holder_id  TEXT NOT NULL UNIQUE REFERENCES account_holders (holder_id),
        balance    NUMERIC(12, 2) NOT NULL DEFAULT 0 CHECK (balance >= 0),
        status     TEXT NOT NULL DEFAULT 'active'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS courses (
        course_id             TEXT PRIMARY KEY,
        code                  TEXT NOT NULL DEFAULT '',
        name                  TEXT NOT NULL DEFAULT '',
        fee                   NUMERIC(12, 2) NOT NULL,
        payment_type          TEXT NOT NULL,
        billing_cycle         TEXT,
        duration_months       INTEGER,
        start_date            DATE,
        end_date              DATE,
        payment_deadline_days INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS enrollments (
        enrollment_id TEXT PRIMARY KEY,
        holder_id     TEXT NOT NULL REFERENCES account_holders (holder_id),
        course_id     TEXT NOT NULL REFERENCES courses (course_id),
        start_date    DATE NOT NULL,
        end_date      DATE,
        is_active     BOOLEAN NOT NULL DEFAULT TRUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS outstanding_charges (
        charge_id   TEXT PRIMARY KEY,
        account_id  TEXT NOT NULL REFERENCES accounts (account_id),
        course_id   TEXT NOT NULL,
        course_name TEXT NOT NULL DEFAULT '',
        period      TEXT NOT NULL,
        amount      NUMERIC(12, 2) NOT NULL,
        due_date    DATE NOT NULL,
        status      TEXT NOT NULL DEFAULT 'unpaid'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transactions (
        transaction_id       TEXT PRIMARY KEY,
        seq                  BIGINT NOT NULL,
        account_id           TEXT NOT NULL REFERENCES accounts (account_id),
        type                 TEXT NOT NULL,
        amount               NUMERIC(12, 2) NOT NULL,
        balance_after        NUMERIC(12, 2),
        description          TEXT NOT NULL DEFAULT '',
        external_description TEXT,
        reference            TEXT NOT NULL DEFAULT '',
        status               TEXT NOT NULL,
        created_at           TIMESTAMP NOT NULL,
        scheduled_for        DATE,
        executed_at          TIMESTAMP,
        course_id            TEXT,
        period               TEXT,
        batch_id             TEXT,
        payment_method       TEXT,
        courses              TEXT NOT NULL DEFAULT '[]',
        payment_breakdown    TEXT NOT NULL DEFAULT '[]'
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_transactions_account ON transactions (account_id, seq)",
    "CREATE INDEX IF NOT EXISTS ix_charges_account_course ON outstanding_charges (account_id, course_id)",
    """
    CREATE TABLE IF NOT EXISTS batches (
        batch_id             TEXT PRIMARY KEY,
        type                 TEXT NOT NULL DEFAULT 'top_up',
        description          TEXT NOT NULL,
        external_description TEXT,
        total_amount         NUMERIC(12, 2) NOT NULL,
        account_count        INTEGER NOT NULL,
        status               TEXT NOT NULL,
        scheduled_for        DATE,
        created_at           TIMESTAMP NOT NULL,
        created_by           TEXT NOT NULL DEFAULT 'system'
    )
    """,
]


def init_schema(engine: Engine) -> None:
    with engine.begin() as conn:
        for stmt in DDL:
            conn.execute(text(stmt))


if __name__ == "__main__":
    from billing_service.app.db import get_engine

    init_schema(get_engine())
    print("Billing schema created.")
