import logging
from haulbook.utils.date_utils import utc_now
from haulbook.utils.money import to_decimal, ZERO

logger = logging.getLogger(__name__)

class PaymentReconciler:
    @staticmethod
    def applied_total(payments):
        """Sum of (amount - excess_amount) over recorded payments"""
        total = ZERO
        for payment in payments:
            total += to_decimal(payment.amount) - to_decimal(payment.excess_amount)
        return total

    @staticmethod
    def remaining_balance(total_amount, payments):
        return to_decimal(total_amount) - PaymentReconciler.applied_total(payments)

    @staticmethod
    def allocate(total_amount, payments, amount):
        """
        Split an incoming payment into the part applied to the invoice and the excess.

        Returns:
            tuple (applied_amount, excess_amount, new_remaining_balance)
        """
        amount = to_decimal(amount)
        if amount <= ZERO:
            raise ValueError("Payment amount must be greater than 0")

        remaining = PaymentReconciler.remaining_balance(total_amount, payments)
        excess = ZERO
        if amount > remaining:
            # An already settled or overpaid invoice turns the whole payment into excess
            excess = amount - max(remaining, ZERO)
        applied = amount - excess
        return applied, excess, remaining - applied

    @staticmethod
    def payment_status(total_amount, payments, due_date=None, now=None):
        """
        unpaid / partial / paid / overdue, recomputed after every payment change.
        """
        remaining = PaymentReconciler.remaining_balance(total_amount, payments)
        if remaining <= ZERO:
            return 'paid'
        now = now or utc_now()
        if due_date is not None and now > due_date:
            return 'overdue'
        if PaymentReconciler.applied_total(payments) > ZERO:
            return 'partial'
        return 'unpaid'

    @staticmethod
    def clamp_due(current_due, delta):
        """Company due balance is a cache that never drops below zero"""
        new_due = to_decimal(current_due) + to_decimal(delta)
        if new_due < ZERO:
            logger.info(f"Due balance clamped to 0 (would have been {new_due})")
            return ZERO
        return new_due
