"""
Checkout allocation: split a selected total between the stored balance and
an external payment instrument. Pure; the ledger commits the result.
"""
from __future__ import annotations

from decimal import Decimal
from typing import List, Optional, Sequence

from pydantic import BaseModel

from .errors import InsufficientBalance, InvalidState, MissingPaymentInstrument, ValidationError
from .models import (
    ChargeStatus,
    OutstandingCharge,
    PaymentInstrument,
    PaymentLeg,
    PaymentMethod,
    money,
)


class Allocation(BaseModel):
    method: PaymentMethod
    selected_total: Decimal
    balance_before: Decimal
    balance_used: Decimal
    external_amount: Decimal
    instrument: Optional[PaymentInstrument] = None

    @property
    def balance_after(self) -> Decimal:
        return self.balance_before - self.balance_used

    @property
    def breakdown(self) -> List[PaymentLeg]:
        legs: List[PaymentLeg] = []
        if self.balance_used > 0:
            legs.append(PaymentLeg(method=PaymentMethod.BALANCE, amount=self.balance_used))
        if self.external_amount > 0:
            legs.append(
                PaymentLeg(
                    method=PaymentMethod.CARD,
                    amount=self.external_amount,
                    card_last4=self.instrument.last4 if self.instrument else None,
                )
            )
        return legs


def selected_total(charges: Sequence[OutstandingCharge]) -> Decimal:
    return money(sum((c.amount for c in charges), Decimal("0")))


def available_methods(balance: Decimal, total: Decimal) -> List[PaymentMethod]:
    methods = []
    if balance >= total:
        methods.append(PaymentMethod.BALANCE)
    methods.append(PaymentMethod.CARD)
    if 0 < balance < total:
        methods.append(PaymentMethod.COMBINED)
    return methods


def _validate_selection(charges: Sequence[OutstandingCharge]) -> Decimal:
    if not charges:
        raise ValidationError("select at least one charge to pay")
    if len({c.account_id for c in charges}) > 1:
        raise ValidationError("selected charges belong to different accounts")
    ids = [c.id for c in charges]
    if len(set(ids)) != len(ids):
        raise ValidationError("a charge was selected more than once")
    for charge in charges:
        if charge.status == ChargeStatus.PAID:
            raise InvalidState(f"charge {charge.id} is already paid", charge_id=charge.id)
    total = selected_total(charges)
    if total <= 0:
        raise ValidationError("selected total must be greater than zero")
    return total


def allocate(
    charges: Sequence[OutstandingCharge],
    method: PaymentMethod,
    balance: Decimal,
    instrument: Optional[PaymentInstrument] = None,
) -> Allocation:
    """
    Raises:
        ValidationError: empty or mixed selection, or combined not on offer
        InsufficientBalance: balance-only payment above the available balance
        MissingPaymentInstrument: card or combined without an instrument
    """
    total = _validate_selection(charges)
    method = PaymentMethod(method)
    balance = money(balance)

    if method == PaymentMethod.BALANCE:
        if balance < total:
            raise InsufficientBalance(balance, total, account_id=charges[0].account_id)
        balance_used, external = total, Decimal("0.00")
        instrument = None
    elif method == PaymentMethod.CARD:
        if instrument is None:
            raise MissingPaymentInstrument("select or add a payment card")
        balance_used, external = Decimal("0.00"), total
    else:
        if instrument is None:
            raise MissingPaymentInstrument("combined payment needs a card for the remainder")
        if not (0 < balance < total):
            raise ValidationError("combined payment is only offered when the balance partly covers the total")
        balance_used = min(balance, total)
        external = total - balance_used

    return Allocation(
        method=method,
        selected_total=total,
        balance_before=balance,
        balance_used=balance_used,
        external_amount=external,
        instrument=instrument,
    )
