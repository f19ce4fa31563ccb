from datetime import date, datetime
from decimal import Decimal

from haulbook.services.statement_service import StatementComputer


def txn(txn_id, when, credit=0, debit=0):
    return {'id': txn_id, 'transaction_date': when, 'credit': Decimal(str(credit)), 'debit': Decimal(str(debit))}


JANUARY_LEDGER = [
    txn(1, datetime(2024, 1, 1, 9, 0), credit=500),
    txn(2, datetime(2024, 1, 10, 15, 30), debit=200),
    txn(3, datetime(2024, 2, 1, 8, 0), credit=100),
]


def test_january_statement():
    result = StatementComputer.compute(Decimal('1000'), JANUARY_LEDGER, date(2024, 1, 1), date(2024, 1, 31))

    assert result['opening_balance'] == Decimal('1000')
    assert result['total_credit'] == Decimal('500')
    assert result['total_debit'] == Decimal('200')
    assert result['closing_balance'] == Decimal('1300')
    assert [t['id'] for t in result['period_transactions']] == [1, 2]
    assert [t['running_balance'] for t in result['period_transactions']] == [Decimal('1500'), Decimal('1300')]


def test_closing_equals_opening_plus_credit_minus_debit():
    for start, end in [(date(2024, 1, 5), date(2024, 2, 28)), (date(2024, 1, 11), None), (None, date(2024, 1, 9))]:
        result = StatementComputer.compute(Decimal('250.50'), JANUARY_LEDGER, start, end)
        assert result['closing_balance'] == (
            result['opening_balance'] + result['total_credit'] - result['total_debit']
        )


def test_earlier_transactions_fold_into_opening_balance():
    result = StatementComputer.compute(Decimal('1000'), JANUARY_LEDGER, date(2024, 1, 15), date(2024, 2, 15))

    assert result['opening_balance'] == Decimal('1300')
    assert result['total_credit'] == Decimal('100')
    assert result['total_debit'] == Decimal('0')
    assert result['closing_balance'] == Decimal('1400')


def test_no_period_covers_everything():
    result = StatementComputer.compute(Decimal('0'), JANUARY_LEDGER)

    assert result['opening_balance'] == Decimal('0')
    assert result['closing_balance'] == Decimal('400')
    assert len(result['period_transactions']) == 3


def test_period_end_includes_last_millisecond_of_day():
    ledger = [txn('late', datetime(2024, 1, 31, 23, 59, 59, 999000), credit=10)]
    result = StatementComputer.compute(Decimal('0'), ledger, date(2024, 1, 31), date(2024, 1, 31))
    assert result['total_credit'] == Decimal('10')


def test_input_order_is_preserved_in_annotated_list():
    shuffled = [JANUARY_LEDGER[2], JANUARY_LEDGER[0], JANUARY_LEDGER[1]]
    result = StatementComputer.compute(Decimal('1000'), shuffled, date(2024, 1, 1), date(2024, 1, 31))

    assert [t['id'] for t in result['transactions']] == [3, 1, 2]
    # Outside the period a row shows the final balance
    assert result['transactions'][0]['running_balance'] == Decimal('1300')


def test_same_instant_keeps_input_order():
    when = datetime(2024, 3, 1, 12, 0)
    ledger = [txn('a', when, credit=5), txn('b', when, debit=3)]
    result = StatementComputer.compute(Decimal('0'), ledger)
    assert [t['running_balance'] for t in result['period_transactions']] == [Decimal('5'), Decimal('2')]
