from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

from haulbook.services.payment_reconciler import PaymentReconciler


def payment(amount, excess=0):
    return SimpleNamespace(amount=Decimal(str(amount)), excess_amount=Decimal(str(excess)))


def test_partial_payment_has_no_excess():
    applied, excess, remaining = PaymentReconciler.allocate(Decimal('1000'), [], Decimal('400'))
    assert (applied, excess, remaining) == (Decimal('400'), Decimal('0'), Decimal('600'))


def test_overpayment_splits_into_applied_and_excess():
    applied, excess, remaining = PaymentReconciler.allocate(Decimal('1000'), [payment(400)], Decimal('1200'))
    assert applied == Decimal('600')
    assert excess == Decimal('600')
    assert remaining == Decimal('0')


def test_payment_on_settled_invoice_is_all_excess():
    payments = [payment(150, excess=50)]
    applied, excess, remaining = PaymentReconciler.allocate(Decimal('100'), payments, Decimal('30'))
    assert applied == Decimal('0')
    assert excess == Decimal('30')
    assert remaining == Decimal('0')


@pytest.mark.parametrize('amount', [0, -5])
def test_non_positive_amount_rejected(amount):
    with pytest.raises(ValueError):
        PaymentReconciler.allocate(Decimal('100'), [], amount)


def test_remaining_balance_ignores_excess():
    payments = [payment(300), payment(900, excess=200)]
    assert PaymentReconciler.applied_total(payments) == Decimal('1000')
    assert PaymentReconciler.remaining_balance(Decimal('1000'), payments) == Decimal('0')


def test_payment_status():
    now = datetime(2024, 6, 1)
    past_due = datetime(2024, 5, 1)
    future_due = datetime(2024, 7, 1)

    assert PaymentReconciler.payment_status(Decimal('100'), [payment(100)], past_due, now) == 'paid'
    assert PaymentReconciler.payment_status(Decimal('100'), [payment(40)], past_due, now) == 'overdue'
    assert PaymentReconciler.payment_status(Decimal('100'), [payment(40)], future_due, now) == 'partial'
    assert PaymentReconciler.payment_status(Decimal('100'), [], None, now) == 'unpaid'


def test_due_balance_clamps_at_zero():
    assert PaymentReconciler.clamp_due(Decimal('100'), Decimal('-150')) == Decimal('0')
    assert PaymentReconciler.clamp_due(Decimal('100'), Decimal('-40')) == Decimal('60')
    assert PaymentReconciler.clamp_due(None, Decimal('25')) == Decimal('25')
