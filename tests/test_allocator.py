"""
Payment Allocator Tests
"""

import datetime as dt
from decimal import Decimal

import pytest

from billing_service.app.billing.allocator import allocate, available_methods
from billing_service.app.billing.errors import (
    InsufficientBalance,
    InvalidState,
    MissingPaymentInstrument,
    ValidationError,
)
from billing_service.app.billing.models import ChargeStatus, OutstandingCharge, PaymentMethod


def _charges(*amounts, account_id="EA001"):
    return [
        OutstandingCharge(id=f"C{i}", account_id=account_id, course_id=f"CRS{i}", period="Jan 2025",
                          amount=Decimal(a), due_date=dt.date(2025, 1, 6))
        for i, a in enumerate(amounts)
    ]


class TestAllocate:
    """Tests for splitting a payment between balance and card."""

    def test_combined_split(self, card):
        allocation = allocate(_charges("150", "50", "220"), PaymentMethod.COMBINED, Decimal("100"), card)

        assert allocation.selected_total == Decimal("420.00")
        assert allocation.balance_used == Decimal("100.00")
        assert allocation.external_amount == Decimal("320.00")
        assert allocation.balance_after == Decimal("0.00")
        legs = allocation.breakdown
        assert [(l.method, l.amount) for l in legs] == [
            (PaymentMethod.BALANCE, Decimal("100.00")),
            (PaymentMethod.CARD, Decimal("320.00")),
        ]
        assert legs[1].card_last4 == "4242"

    def test_balance_only(self):
        allocation = allocate(_charges("50"), PaymentMethod.BALANCE, Decimal("100"))

        assert allocation.balance_used == Decimal("50.00")
        assert allocation.external_amount == Decimal("0.00")
        assert allocation.balance_after == Decimal("50.00")
        assert len(allocation.breakdown) == 1

    def test_card_only(self, card):
        allocation = allocate(_charges("150"), PaymentMethod.CARD, Decimal("100"), card)

        assert allocation.balance_used == Decimal("0.00")
        assert allocation.external_amount == Decimal("150.00")
        assert allocation.balance_after == Decimal("100.00")

    def test_insufficient_balance(self):
        with pytest.raises(InsufficientBalance) as exc:
            allocate(_charges("200"), PaymentMethod.BALANCE, Decimal("50"))
        assert exc.value.code == "insufficient_balance"
        assert exc.value.required == Decimal("200.00")

    @pytest.mark.parametrize("method", [PaymentMethod.CARD, PaymentMethod.COMBINED])
    def test_instrument_required(self, method):
        with pytest.raises(MissingPaymentInstrument):
            allocate(_charges("150"), method, Decimal("100"))

    def test_combined_not_offered_when_balance_covers(self, card):
        with pytest.raises(ValidationError):
            allocate(_charges("50"), PaymentMethod.COMBINED, Decimal("100"), card)

    def test_combined_not_offered_with_empty_balance(self, card):
        with pytest.raises(ValidationError):
            allocate(_charges("50"), PaymentMethod.COMBINED, Decimal("0"), card)

    def test_empty_selection(self):
        with pytest.raises(ValidationError):
            allocate([], PaymentMethod.BALANCE, Decimal("100"))

    def test_mixed_accounts(self):
        charges = _charges("10") + _charges("20", account_id="EA002")
        with pytest.raises(ValidationError):
            allocate(charges, PaymentMethod.BALANCE, Decimal("100"))

    def test_already_paid(self):
        charges = [_charges("10")[0].model_copy(update={"status": ChargeStatus.PAID})]
        with pytest.raises(InvalidState):
            allocate(charges, PaymentMethod.BALANCE, Decimal("100"))

    def test_zero_total_is_never_synthesized(self):
        with pytest.raises(ValidationError):
            allocate(_charges("0"), PaymentMethod.BALANCE, Decimal("100"))


class TestAvailableMethods:
    def test_partial_balance_offers_combined(self):
        assert available_methods(Decimal("100"), Decimal("420")) == [PaymentMethod.CARD, PaymentMethod.COMBINED]

    def test_sufficient_balance(self):
        assert available_methods(Decimal("100"), Decimal("50")) == [PaymentMethod.BALANCE, PaymentMethod.CARD]

    def test_empty_balance(self):
        assert available_methods(Decimal("0"), Decimal("50")) == [PaymentMethod.CARD]
