from __future__ import annotations

"""
Seed data for Billing Service.

Demo holders, accounts, courses, enrollments and outstanding charges.
EA001 (Wei Ming Tan) holds $100 so that a $50 charge settles from balance
and a $150 charge needs a combined payment.

Run:
  docker compose exec billing_service python -m billing_service.db.seed
"""

from typing import Optional

from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from billing_service.app.db import session_scope


HOLDERS = [
    {"holder_id": "AH001", "first_name": "Wei Ming", "last_name": "Tan", "date_of_birth": "2000-03-15", "age": 24, "schooling_status": "in_school"},
    {"holder_id": "AH002", "first_name": "Priya", "last_name": "Kumar", "date_of_birth": "1998-07-22", "age": 26, "schooling_status": "graduated"},
    {"holder_id": "AH003", "first_name": "Muhammad", "last_name": "Ali", "date_of_birth": "2005-11-08", "age": 19, "schooling_status": "in_school"},
    {"holder_id": "AH004", "first_name": "Mei Ling", "last_name": "Lim", "date_of_birth": "2002-05-30", "age": 22, "schooling_status": "in_school"},
    {"holder_id": "AH005", "first_name": "Raj", "last_name": "Sharma", "date_of_birth": "1996-09-12", "age": 28, "schooling_status": "graduated"},
    {"holder_id": "AH006", "first_name": "Sarah", "last_name": "Chen", "date_of_birth": "2007-02-18", "age": 17, "schooling_status": "in_school"},
]

ACCOUNTS = [
    {"account_id": "EA001", "holder_id": "AH001", "balance": "100.00", "status": "active"},
    {"account_id": "EA002", "holder_id": "AH002", "balance": "450.50", "status": "active"},
    {"account_id": "EA003", "holder_id": "AH003", "balance": "2000.00", "status": "active"},
    {"account_id": "EA004", "holder_id": "AH004", "balance": "875.25", "status": "active"},
    {"account_id": "EA005", "holder_id": "AH005", "balance": "0.00", "status": "closed"},
    {"account_id": "EA006", "holder_id": "AH006", "balance": "1500.00", "status": "active"},
]

COURSES = [
    {"course_id": "CRS001", "code": "IT101", "name": "Introduction to Programming", "fee": "150.00", "payment_type": "recurring", "billing_cycle": "monthly", "duration_months": 6, "start_date": "2025-01-01", "end_date": "2025-06-30"},
    {"course_id": "CRS002", "code": "BUS201", "name": "Business Management", "fee": "200.00", "payment_type": "recurring", "billing_cycle": "quarterly", "duration_months": 12, "start_date": "2024-01-01", "end_date": "2024-12-31"},
    {"course_id": "CRS003", "code": "ENG102", "name": "English Communication", "fee": "50.00", "payment_type": "recurring", "billing_cycle": "monthly", "duration_months": 3, "start_date": "2025-01-01", "end_date": "2025-03-31"},
    {"course_id": "CRS005", "code": "DES101", "name": "Graphic Design Basics", "fee": "175.00", "payment_type": "one_time", "billing_cycle": None, "duration_months": 3, "start_date": "2024-07-01", "end_date": "2024-09-30"},
    {"course_id": "CRS007", "code": "DATA101", "name": "Data Analytics", "fee": "220.00", "payment_type": "recurring", "billing_cycle": "monthly", "duration_months": 6, "start_date": "2024-10-01", "end_date": "2025-03-31"},
]

ENROLLMENTS = [
    {"enrollment_id": "ENR001", "holder_id": "AH001", "course_id": "CRS001", "start_date": "2025-01-01"},
    {"enrollment_id": "ENR002", "holder_id": "AH001", "course_id": "CRS003", "start_date": "2025-01-01"},
    {"enrollment_id": "ENR009", "holder_id": "AH001", "course_id": "CRS007", "start_date": "2024-10-01"},
    {"enrollment_id": "ENR010", "holder_id": "AH001", "course_id": "CRS002", "start_date": "2024-06-01"},
    {"enrollment_id": "ENR003", "holder_id": "AH003", "course_id": "CRS001", "start_date": "2024-02-01"},
    {"enrollment_id": "ENR005", "holder_id": "AH006", "course_id": "CRS005", "start_date": "2024-07-01"},
]

CHARGES = [
    {"charge_id": "CHG001", "account_id": "EA001", "course_id": "CRS001", "course_name": "Introduction to Programming", "period": "Cycle 1 - Jan 2025", "amount": "150.00", "due_date": "2025-01-06", "status": "unpaid"},
    {"charge_id": "CHG002", "account_id": "EA001", "course_id": "CRS003", "course_name": "English Communication", "period": "Jan 2025", "amount": "50.00", "due_date": "2025-01-06", "status": "unpaid"},
    {"charge_id": "CHG006", "account_id": "EA001", "course_id": "CRS007", "course_name": "Data Analytics", "period": "Jan 2025", "amount": "220.00", "due_date": "2025-01-20", "status": "unpaid"},
    {"charge_id": "CHG007", "account_id": "EA001", "course_id": "CRS002", "course_name": "Business Management", "period": "Q4 2024", "amount": "200.00", "due_date": "2024-12-20", "status": "overdue"},
    {"charge_id": "CHG003", "account_id": "EA003", "course_id": "CRS001", "course_name": "Introduction to Programming", "period": "Jan 2025", "amount": "150.00", "due_date": "2025-01-15", "status": "unpaid"},
]


def seed(factory: Optional[sessionmaker] = None) -> None:
    with session_scope(factory) as db:
        for h in HOLDERS:
            db.execute(
                text(
                    """
                    INSERT INTO account_holders (holder_id, first_name, last_name, date_of_birth, age, schooling_status)
                    VALUES (:holder_id, :first_name, :last_name, :date_of_birth, :age, :schooling_status)
                    ON CONFLICT (holder_id) DO NOTHING
                    """
                ),
                h,
            )
        for a in ACCOUNTS:
            db.execute(
                text(
                    """
                    INSERT INTO accounts (account_id, holder_id, balance, status)
                    VALUES (:account_id, :holder_id, :balance, :status)
                    ON CONFLICT (account_id) DO NOTHING
                    """
                ),
                a,
            )
        for c in COURSES:
            db.execute(
                text(
                    """
                    INSERT INTO courses (course_id, code, name, fee, payment_type, billing_cycle, duration_months, start_date, end_date)
                    VALUES (:course_id, :code, :name, :fee, :payment_type, :billing_cycle, :duration_months, :start_date, :end_date)
                    ON CONFLICT (course_id) DO NOTHING
                    """
                ),
                c,
            )
        for e in ENROLLMENTS:
            db.execute(
                text(
                    """
                    INSERT INTO enrollments (enrollment_id, holder_id, course_id, start_date, is_active)
                    VALUES (:enrollment_id, :holder_id, :course_id, :start_date, :is_active)
                    ON CONFLICT (enrollment_id) DO NOTHING
                    """
                ),
                {**e, "is_active": True},
            )
        for ch in CHARGES:
            db.execute(
                text(
                    """
                    INSERT INTO outstanding_charges (charge_id, account_id, course_id, course_name, period, amount, due_date, status)
                    VALUES (:charge_id, :account_id, :course_id, :course_name, :period, :amount, :due_date, :status)
                    ON CONFLICT (charge_id) DO NOTHING
                    """
                ),
                ch,
            )


if __name__ == "__main__":
    seed()
    print("Billing seed completed.")
