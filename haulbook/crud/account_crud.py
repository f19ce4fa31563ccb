from haulbook import db
from haulbook.models import Account
from haulbook.utils.logging_utils import log_action
from haulbook.utils.errors import (
    HaulbookError, NotFoundError, DuplicateKeyError, require_super_admin
)
from haulbook.utils.money import to_decimal, as_float
from haulbook.utils.pagination import normalize_page, build_pagination
from sqlalchemy import or_, func
from sqlalchemy.exc import IntegrityError
import uuid
import logging

logger = logging.getLogger(__name__)

class AccountError(HaulbookError):
    """Custom exception for account operations"""
    pass

def serialize_account(account):
    return {
        'id': str(account.id),
        'title': account.title,
        'slug': account.slug,
        'initial_balance': as_float(account.initial_balance),
        'current_balance': as_float(account.current_balance),
        'currency': account.currency,
        'currency_symbol': account.currency_symbol,
        'created_at': account.created_at.isoformat() if account.created_at else None,
        'updated_at': account.updated_at.isoformat() if account.updated_at else None,
    }

def find_account(account_ref):
    """Look an account up by UUID or by slug"""
    try:
        account_id = uuid.UUID(str(account_ref))
    except ValueError:
        account_id = None
    if account_id:
        account = Account.query.get(account_id)
    else:
        account = Account.query.filter_by(slug=str(account_ref).strip().lower()).first()
    if not account:
        raise NotFoundError("Account not found")
    return account

def get_accounts(user_role, search=None, currency=None, page=1, limit=10):
    require_super_admin(user_role)
    try:
        page, limit = normalize_page(page, limit)
        query = Account.query

        if search:
            term = search.strip().lower()
            query = query.filter(or_(
                func.lower(Account.title).contains(term, autoescape=True),
                func.lower(Account.slug).contains(term, autoescape=True),
            ))

        if currency and currency != 'all':
            query = query.filter(Account.currency == currency)

        total = query.count()
        accounts = query.order_by(Account.created_at.desc()) \
            .offset((page - 1) * limit).limit(limit).all()

        return {
            'accounts': [serialize_account(a) for a in accounts],
            'pagination': build_pagination(page, limit, total),
        }
    except Exception as e:
        logger.error(f"Error getting accounts: {str(e)}")
        raise AccountError("Failed to retrieve accounts")

def get_account(account_ref, user_role):
    require_super_admin(user_role)
    return serialize_account(find_account(account_ref))

def create_account(data, user_role, current_user_id, ip_address, user_agent):
    require_super_admin(user_role, "Access denied: Super admin required")
    try:
        required_fields = ['title', 'slug', 'currency', 'currency_symbol']
        for field in required_fields:
            if not str(data.get(field) or '').strip():
                raise ValueError("All fields are required")

        if data.get('initial_balance') in (None, ''):
            raise ValueError("Initial balance must be a valid number")
        initial_balance = to_decimal(data.get('initial_balance'))

        slug = data['slug'].strip().lower()
        if Account.query.filter_by(slug=slug).first():
            raise DuplicateKeyError("Account with this slug already exists")

        account = Account(
            title=data['title'].strip(),
            slug=slug,
            initial_balance=initial_balance,
            current_balance=initial_balance,
            currency=data['currency'].strip(),
            currency_symbol=data['currency_symbol'].strip()
        )
        db.session.add(account)
        db.session.commit()

        log_action(
            current_user_id,
            'CREATE',
            'accounts',
            account.id,
            None,
            serialize_account(account),
            ip_address,
            user_agent
        )

        return account
    except HaulbookError:
        db.session.rollback()
        raise
    except IntegrityError:
        db.session.rollback()
        raise DuplicateKeyError("Account with this slug already exists")
    except ValueError as e:
        logger.error(f"Validation error: {str(e)}")
        raise AccountError(str(e))
    except Exception as e:
        logger.error(f"Error creating account: {str(e)}")
        db.session.rollback()
        raise AccountError("Failed to create account")

def delete_account(account_ref, user_role, current_user_id, ip_address, user_agent):
    require_super_admin(user_role)
    try:
        account = find_account(account_ref)
        old_values = serialize_account(account)
        account_id = account.id

        db.session.delete(account)
        db.session.commit()

        log_action(
            current_user_id,
            'DELETE',
            'accounts',
            account_id,
            old_values,
            None,
            ip_address,
            user_agent
        )
        return True
    except HaulbookError:
        raise
    except Exception as e:
        logger.error(f"Error deleting account {account_ref}: {str(e)}")
        db.session.rollback()
        raise AccountError("Failed to delete account")
