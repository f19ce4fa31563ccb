import logging
from haulbook.utils.date_utils import day_bounds
from haulbook.utils.money import to_decimal, ZERO

logger = logging.getLogger(__name__)

class StatementComputer:
    @staticmethod
    def compute(initial_balance, transactions, period_start=None, period_end=None):
        """
        Walk an account's transactions in date order and build the period statement.

        Logic:
        - Transactions dated before period_start 00:00:00.000 (local) are folded into the
          opening balance and do not count towards period totals
        - Transactions inside [period_start 00:00:00.000, period_end 23:59:59.999] move the
          running balance, add to the totals and get a running balance of their own
        - Transactions after period_end are ignored completely
        - Either bound may be None, which leaves that side open

        Args:
            initial_balance: Account opening figure before any transaction
            transactions: Sequence of dicts with id, transaction_date (storage datetime),
                credit and debit
            period_start: date or None
            period_end: date or None

        Returns:
            dict with opening_balance, closing_balance, total_credit, total_debit,
            period_transactions (chronological, annotated) and transactions (input order,
            annotated with running_balance)
        """
        start_bound, end_bound = day_bounds(period_start, period_end)

        # sorted() is stable, so same-instant rows keep their input order
        ordered = sorted(transactions, key=lambda t: t['transaction_date'])

        current_balance = to_decimal(initial_balance)
        opening_balance = current_balance
        total_credit = ZERO
        total_debit = ZERO
        running = {}
        period_transactions = []

        for txn in ordered:
            txn_date = txn['transaction_date']
            credit = to_decimal(txn.get('credit'))
            debit = to_decimal(txn.get('debit'))

            if start_bound is not None and txn_date < start_bound:
                current_balance += credit - debit
                opening_balance = current_balance
                continue

            if end_bound is not None and txn_date > end_bound:
                continue

            total_credit += credit
            total_debit += debit
            current_balance += credit - debit
            running[txn['id']] = current_balance
            period_transactions.append(dict(txn, running_balance=current_balance))

        annotated = [
            dict(txn, running_balance=running.get(txn['id'], current_balance))
            for txn in transactions
        ]

        logger.debug(
            f"Statement computed over {len(period_transactions)} of {len(annotated)} transactions"
        )

        return {
            'opening_balance': opening_balance,
            'closing_balance': current_balance,
            'total_credit': total_credit,
            'total_debit': total_debit,
            'period_transactions': period_transactions,
            'transactions': annotated,
        }
