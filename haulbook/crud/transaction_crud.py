from haulbook import db
from haulbook.models import Account, AccountTransaction
from haulbook.crud.account_crud import find_account
from haulbook.services.statement_service import StatementComputer
from haulbook.utils.logging_utils import log_action
from haulbook.utils.errors import HaulbookError, NotFoundError, require_super_admin, to_uuid
from haulbook.utils.date_utils import parse_date, parse_datetime, day_bounds, utc_now
from haulbook.utils.money import to_decimal, as_float, ZERO
from haulbook.utils.pagination import normalize_page, build_pagination
from sqlalchemy import func
import logging

logger = logging.getLogger(__name__)

class TransactionError(HaulbookError):
    """Custom exception for ledger transaction operations"""
    pass

def serialize_transaction(txn, account=None):
    account = account or txn.account
    return {
        'id': str(txn.id),
        'account_id': str(txn.account_id),
        'account': {
            'title': account.title,
            'slug': account.slug,
            'currency': account.currency,
            'currency_symbol': account.currency_symbol,
        } if account else None,
        'transaction_date': txn.transaction_date.isoformat() if txn.transaction_date else None,
        'details': txn.details,
        'credit': as_float(txn.credit),
        'debit': as_float(txn.debit),
        'destination': txn.destination,
        'rate_of_exchange': float(txn.rate_of_exchange) if txn.rate_of_exchange is not None else None,
        'created_at': txn.created_at.isoformat() if txn.created_at else None,
    }

def create_transaction(data, user_role, current_user_id, ip_address, user_agent):
    """Record a credit or debit and move the account's current balance in the same commit"""
    require_super_admin(user_role)
    try:
        txn_type = data.get('type')
        amount = to_decimal(data.get('amount'))
        details = (data.get('details') or '').strip()
        destination = (data.get('destination') or '').strip() or None
        debit_type = data.get('debit_type')

        if not data.get('account_id') or not txn_type or amount == ZERO or not details:
            raise ValueError("Account, type, amount, and details are required")
        if txn_type not in ('credit', 'debit'):
            raise ValueError("Transaction type must be credit or debit")
        if amount < ZERO:
            raise ValueError("Amount must be greater than 0")
        if txn_type == 'debit' and debit_type == 'transfer' and not destination:
            raise ValueError("Destination is required for transfers")

        account = Account.query.filter_by(id=to_uuid(data['account_id'], 'account_id')) \
            .with_for_update().first()
        if not account:
            raise NotFoundError("Account not found")

        credit = amount if txn_type == 'credit' else ZERO
        debit = amount if txn_type == 'debit' else ZERO

        txn = AccountTransaction(
            account_id=account.id,
            transaction_date=parse_datetime(data.get('transaction_date')) or utc_now(),
            details=details,
            credit=credit,
            debit=debit,
            destination=destination if txn_type == 'debit' and debit_type == 'transfer' else None,
            rate_of_exchange=to_decimal(data.get('rate_of_exchange'), None),
            recorded_by=to_uuid(current_user_id, 'user_id')
        )
        account.current_balance = to_decimal(account.current_balance) + credit - debit

        db.session.add(txn)
        db.session.commit()

        log_action(
            current_user_id,
            'CREATE',
            'account_transactions',
            txn.id,
            None,
            serialize_transaction(txn, account),
            ip_address,
            user_agent
        )

        return txn
    except HaulbookError:
        db.session.rollback()
        raise
    except ValueError as e:
        db.session.rollback()
        logger.error(f"Validation error: {str(e)}")
        raise TransactionError(str(e))
    except Exception as e:
        logger.error(f"Error creating transaction: {str(e)}")
        db.session.rollback()
        raise TransactionError("Failed to create transaction")

def get_transactions(user_role, filters=None, page=1, limit=50):
    require_super_admin(user_role)
    filters = filters or {}
    try:
        page, limit = normalize_page(page, limit)
        query = AccountTransaction.query.join(Account, Account.id == AccountTransaction.account_id)

        if filters.get('account_slug'):
            query = query.filter(Account.slug == filters['account_slug'].strip().lower())
        elif filters.get('account_ids'):
            query = query.filter(AccountTransaction.account_id.in_(
                [to_uuid(a, 'account_id') for a in filters['account_ids']]
            ))

        start_date = parse_date(filters.get('start_date'))
        end_date = parse_date(filters.get('end_date'))
        if start_date:
            # A lone start date selects that single day
            start, end = day_bounds(start_date, end_date or start_date)
            query = query.filter(AccountTransaction.transaction_date >= start,
                                 AccountTransaction.transaction_date <= end)

        if filters.get('type') == 'credit':
            query = query.filter(AccountTransaction.credit > 0)
        elif filters.get('type') == 'debit':
            query = query.filter(AccountTransaction.debit > 0)

        if filters.get('search'):
            query = query.filter(
                func.lower(AccountTransaction.details).contains(filters['search'].lower(), autoescape=True)
            )

        total = query.count()
        rows = query.order_by(AccountTransaction.transaction_date.desc(),
                              AccountTransaction.created_at.desc()) \
            .offset((page - 1) * limit).limit(limit).all()

        return {
            'transactions': [serialize_transaction(t) for t in rows],
            'pagination': build_pagination(page, limit, total),
        }
    except HaulbookError:
        raise
    except ValueError as e:
        logger.error(f"Validation error: {str(e)}")
        raise TransactionError(str(e))
    except Exception as e:
        logger.error(f"Error getting transactions: {str(e)}")
        raise TransactionError("Failed to retrieve transactions")

def get_account_statement(account_ref, user_role, start_date=None, end_date=None,
                          search=None, page=1, limit=50):
    """
    Statement for one account over [start_date, end_date].

    Balances are computed over every transaction of the account; search and
    pagination only choose which in-period rows are returned for display.
    """
    require_super_admin(user_role)
    try:
        account = find_account(account_ref)
        page, limit = normalize_page(page, limit)
        start_date = parse_date(start_date)
        end_date = parse_date(end_date)

        rows = AccountTransaction.query.filter_by(account_id=account.id) \
            .order_by(AccountTransaction.created_at.asc()).all()
        by_id = {t.id: t for t in rows}

        statement = StatementComputer.compute(
            account.initial_balance,
            [{'id': t.id, 'transaction_date': t.transaction_date,
              'credit': t.credit, 'debit': t.debit} for t in rows],
            start_date,
            end_date
        )

        # Newest first for display, like the ledger listing
        period = list(reversed(statement['period_transactions']))
        if search:
            term = search.lower()
            period = [p for p in period if term in (by_id[p['id']].details or '').lower()]

        total = len(period)
        page_rows = period[(page - 1) * limit: page * limit]

        items = []
        for entry in page_rows:
            item = serialize_transaction(by_id[entry['id']], account)
            item['running_balance'] = as_float(entry['running_balance'])
            items.append(item)

        return {
            'account': {
                'id': str(account.id),
                'title': account.title,
                'slug': account.slug,
                'currency': account.currency,
                'currency_symbol': account.currency_symbol,
                'initial_balance': as_float(account.initial_balance),
                'current_balance': as_float(account.current_balance),
            },
            'period': {
                'start_date': start_date.isoformat() if start_date else None,
                'end_date': end_date.isoformat() if end_date else None,
            },
            'summary': {
                'opening_balance': as_float(statement['opening_balance']),
                'closing_balance': as_float(statement['closing_balance']),
                'total_credit': as_float(statement['total_credit']),
                'total_debit': as_float(statement['total_debit']),
                'transaction_count': len(statement['period_transactions']),
            },
            'transactions': items,
            'pagination': build_pagination(page, limit, total),
        }
    except HaulbookError:
        raise
    except ValueError as e:
        logger.error(f"Validation error: {str(e)}")
        raise TransactionError(str(e))
    except Exception as e:
        logger.error(f"Error building statement for account {account_ref}: {str(e)}")
        raise TransactionError("Failed to build account statement")
