from haulbook import db
from haulbook.models import Company, Invoice, Carrier, Car
from haulbook.crud.scoping import apply_owner_scope, get_owned, resolve_target_user
from haulbook.services.payment_reconciler import PaymentReconciler
from haulbook.utils.logging_utils import log_action
from haulbook.utils.errors import HaulbookError, DuplicateKeyError, ValidationError, to_uuid
from haulbook.utils.money import to_decimal, as_float, ZERO
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload
import logging

logger = logging.getLogger(__name__)

class CompanyError(HaulbookError):
    """Custom exception for company balance operations"""
    pass

def normalize_company_name(name):
    return (name or '').strip().upper()

def serialize_company(company):
    return {
        'id': str(company.id),
        'company_name': company.name or 'UNKNOWN',
        'address': company.address or '',
        'credit_balance': as_float(company.credit_balance),
        'due_balance': as_float(company.due_balance),
        'user_id': str(company.user_id),
        'created_at': company.created_at.isoformat() if company.created_at else None,
    }

def find_or_create_company(name, owner_id):
    """Company row for (name, owner); created with zero balances when missing. Caller commits."""
    name = normalize_company_name(name)
    company = Company.query.filter_by(name=name, user_id=owner_id).first()
    if not company:
        company = Company(name=name, user_id=owner_id, credit_balance=ZERO, due_balance=ZERO)
        db.session.add(company)
        db.session.flush()
    return company

def adjust_due_balance(name, owner_id, delta):
    """Add delta to the cached due balance, never letting it fall below zero. Caller commits."""
    if not normalize_company_name(name):
        return None
    company = find_or_create_company(name, owner_id)
    company.due_balance = PaymentReconciler.clamp_due(company.due_balance, delta)
    return company

def adjust_credit_balance(name, owner_id, delta):
    """Add (or take back) credit. Caller commits."""
    if not normalize_company_name(name):
        return None
    company = find_or_create_company(name, owner_id)
    company.credit_balance = to_decimal(company.credit_balance) + to_decimal(delta)
    return company

def get_company_balances(user_id, user_role):
    try:
        query = apply_owner_scope(Company.query, Company, user_id, user_role)
        companies = query.order_by(Company.name.asc()).all()
        return [serialize_company(c) for c in companies]
    except HaulbookError:
        raise
    except Exception as e:
        logger.error(f"Error getting company balances: {str(e)}")
        raise CompanyError("Failed to get company balances")

def create_company(data, user_id, user_role, ip_address, user_agent):
    try:
        name = normalize_company_name(data.get('name'))
        if not name:
            raise ValueError("Company name is required")
        owner_id = resolve_target_user(data, user_id, user_role)

        if Company.query.filter_by(name=name, user_id=owner_id).first():
            raise DuplicateKeyError(f'Company "{name}" already exists')

        company = Company(
            name=name,
            user_id=owner_id,
            address=(data.get('address') or '').strip(),
            credit_balance=ZERO,
            due_balance=ZERO
        )
        db.session.add(company)
        db.session.commit()

        log_action(user_id, 'CREATE', 'companies', company.id, None, serialize_company(company),
                   ip_address, user_agent)
        return company
    except HaulbookError:
        db.session.rollback()
        raise
    except ValueError as e:
        db.session.rollback()
        raise CompanyError(str(e))
    except Exception as e:
        logger.error(f"Error creating company: {str(e)}")
        db.session.rollback()
        raise CompanyError("Failed to create company")

def get_company_credit(company_name, user_id, user_role):
    """
    Credit held for a client company.

    Sum of |remaining| over the company's overpaid invoices plus the stored
    credit balance.
    """
    try:
        name = normalize_company_name(company_name)
        if not name:
            return {'company_name': name, 'credit': 0.0, 'credit_balance': 0.0, 'overpaid_credit': 0.0}

        invoices = apply_owner_scope(Invoice.query, Invoice, user_id, user_role) \
            .filter(Invoice.client_company_name == name) \
            .options(selectinload(Invoice.payments)).all()

        overpaid = ZERO
        for invoice in invoices:
            # Excess is recorded per payment as company credit, so only legacy or edited
            # invoices still show a negative remaining here.
            remaining = PaymentReconciler.remaining_balance(invoice.total_amount, invoice.payments)
            if remaining < ZERO:
                overpaid += abs(remaining)

        stored = ZERO
        companies = apply_owner_scope(Company.query, Company, user_id, user_role) \
            .filter(Company.name == name).all()
        for company in companies:
            stored += to_decimal(company.credit_balance)

        return {
            'company_name': name,
            'credit': as_float(overpaid + stored),
            'credit_balance': as_float(stored),
            'overpaid_credit': as_float(overpaid),
        }
    except HaulbookError:
        raise
    except Exception as e:
        logger.error(f"Error getting company credit for {company_name}: {str(e)}")
        raise CompanyError("Failed to get company credit")

def set_company_credit(company_name, new_balance, user_id, user_role, ip_address, user_agent, owner_id=None):
    """Manual override: store new_balance as the company's credit, no invoice reconciliation"""
    try:
        name = normalize_company_name(company_name)
        if not name:
            raise ValueError("Company name is required")
        if new_balance is None or new_balance == '':
            raise ValueError("Credit balance is required")
        new_balance = to_decimal(new_balance)

        if user_role == 'super_admin' and owner_id:
            owner_id = to_uuid(owner_id, 'user_id')
        else:
            owner_id = to_uuid(user_id, 'user_id')

        company = find_or_create_company(name, owner_id)
        old_values = {'credit_balance': company.credit_balance}
        company.credit_balance = new_balance
        db.session.commit()

        log_action(user_id, 'UPDATE', 'companies', company.id, old_values,
                   {'credit_balance': new_balance}, ip_address, user_agent)
        return company
    except HaulbookError:
        db.session.rollback()
        raise
    except ValueError as e:
        db.session.rollback()
        raise CompanyError(str(e))
    except Exception as e:
        logger.error(f"Error setting company credit for {company_name}: {str(e)}")
        db.session.rollback()
        raise CompanyError("Failed to set company credit")

def _owner_cars(owner_id, name):
    owned_carriers = select(Carrier.id).where(Carrier.user_id == owner_id)
    return Car.query.filter(Car.carrier_id.in_(owned_carriers), func.upper(Car.company_name) == name)

def update_company_name(company_id, new_name, user_id, user_role, ip_address, user_agent):
    """
    Rename a company and carry the new name onto the owner's cars and invoices.

    Cars and invoices hold the company name as text, so they are rewritten in the same commit.
    """
    try:
        company = get_owned(Company, company_id, user_id, user_role, 'Company', for_write=True)
        name = normalize_company_name(new_name)
        if not name:
            raise ValueError("Company name is required")

        old_name = company.name
        if name == old_name:
            return {'company': serialize_company(company), 'cars_updated': 0, 'invoices_updated': 0}

        clash = Company.query.filter(Company.name == name, Company.user_id == company.user_id,
                                     Company.id != company.id).first()
        if clash:
            raise DuplicateKeyError(f'Company "{name}" already exists')

        company.name = name
        cars_updated = _owner_cars(company.user_id, old_name) \
            .update({'company_name': name}, synchronize_session='fetch')
        invoices_updated = Invoice.query.filter(Invoice.user_id == company.user_id,
                                                Invoice.client_company_name == old_name) \
            .update({'client_company_name': name}, synchronize_session='fetch')
        db.session.commit()

        log_action(user_id, 'UPDATE', 'companies', company.id, {'name': old_name},
                   {'name': name, 'cars_updated': cars_updated, 'invoices_updated': invoices_updated},
                   ip_address, user_agent)
        logger.info(f"Renamed company {old_name} to {name}: {cars_updated} cars, {invoices_updated} invoices")
        return {'company': serialize_company(company), 'cars_updated': cars_updated,
                'invoices_updated': invoices_updated}
    except HaulbookError:
        db.session.rollback()
        raise
    except ValueError as e:
        db.session.rollback()
        raise CompanyError(str(e))
    except Exception as e:
        logger.error(f"Error renaming company {company_id}: {str(e)}")
        db.session.rollback()
        raise CompanyError("Failed to update company name")

def delete_company(company_id, user_id, user_role, ip_address, user_agent):
    try:
        company = get_owned(Company, company_id, user_id, user_role, 'Company', for_write=True)
        if _owner_cars(company.user_id, company.name).first():
            raise ValidationError("Company cannot be deleted because it is assigned in one or more trips. "
                                  "Remove the company from all trips first.")

        old_values = serialize_company(company)
        record_id = company.id
        db.session.delete(company)
        db.session.commit()

        log_action(user_id, 'DELETE', 'companies', record_id, old_values, None, ip_address, user_agent)
        return True
    except HaulbookError:
        db.session.rollback()
        raise
    except Exception as e:
        logger.error(f"Error deleting company {company_id}: {str(e)}")
        db.session.rollback()
        raise CompanyError("Failed to delete company")
