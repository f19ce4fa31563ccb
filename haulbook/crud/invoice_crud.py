from haulbook import db
from haulbook.models import Invoice, InvoicePayment, Car, Receipt
from haulbook.crud.scoping import apply_owner_scope, get_owned, resolve_target_user
from haulbook.crud.company_crud import adjust_due_balance, adjust_credit_balance, normalize_company_name
from haulbook.crud.document_numbers import issue_daily_number
from haulbook.crud.receipt_crud import create_receipt, serialize_receipt
from haulbook.services.payment_reconciler import PaymentReconciler
from haulbook.services.carrier_query import contains_ci
from haulbook.utils.logging_utils import log_action
from haulbook.utils.errors import HaulbookError, ValidationError, NotFoundError, DuplicateKeyError, to_uuid
from haulbook.utils.date_utils import parse_datetime, utc_now
from haulbook.utils.money import to_decimal, quantize, as_float, ZERO
from haulbook.utils.pagination import normalize_page, build_pagination
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
import logging

logger = logging.getLogger(__name__)

PAYMENT_STATUSES = ('unpaid', 'partial', 'paid', 'overdue')
CREATE_ATTEMPTS = 3

class InvoiceError(HaulbookError):
    """Custom exception for invoice and payment operations"""
    pass

def serialize_payment(payment, index):
    return {
        'id': str(payment.id),
        'index': index,
        'amount': as_float(payment.amount),
        'excess_amount': as_float(payment.excess_amount),
        'applied_amount': as_float(to_decimal(payment.amount) - to_decimal(payment.excess_amount)),
        'payment_method': payment.payment_method,
        'account_info': payment.account_info or '',
        'payment_date': payment.payment_date.isoformat() if payment.payment_date else None,
        'notes': payment.notes or '',
        'recorded_by': str(payment.recorded_by) if payment.recorded_by else None,
    }

def serialize_invoice(invoice):
    payments = list(invoice.payments)
    paid = PaymentReconciler.applied_total(payments)
    return {
        'id': str(invoice.id),
        'invoice_number': invoice.invoice_number,
        'user_id': str(invoice.user_id),
        'sender_company_name': invoice.sender_company_name,
        'sender_address': invoice.sender_address or '',
        'client_company_name': invoice.client_company_name,
        'invoice_date': invoice.invoice_date.isoformat() if invoice.invoice_date else None,
        'start_date': invoice.start_date.isoformat() if invoice.start_date else None,
        'end_date': invoice.end_date.isoformat() if invoice.end_date else None,
        'due_date': invoice.due_date.isoformat() if invoice.due_date else None,
        'car_ids': [str(car.id) for car in invoice.cars],
        'trip_numbers': invoice.trip_numbers or [],
        'descriptions': invoice.descriptions or [],
        'subtotal': as_float(invoice.subtotal),
        'vat_percentage': as_float(invoice.vat_percentage),
        'vat_amount': as_float(invoice.vat_amount),
        'total_amount': as_float(invoice.total_amount),
        'total_paid': as_float(paid),
        'remaining_balance': as_float(to_decimal(invoice.total_amount) - paid),
        'is_active': invoice.is_active or '',
        'payment_status': invoice.payment_status,
        'payments': [serialize_payment(p, i) for i, p in enumerate(payments)],
        'created_at': invoice.created_at.isoformat() if invoice.created_at else None,
    }

def generate_invoice_number():
    return issue_daily_number(Invoice.invoice_number, 'INV')

def _visible_cars(car_ids, user_id, user_role):
    cars = []
    for car_id in car_ids or []:
        car = Car.query.get(to_uuid(car_id, 'car id'))
        # A car the caller cannot see is reported exactly like a missing one
        if not car or (user_role != 'super_admin' and car.carrier.user_id != to_uuid(user_id, 'user_id')):
            raise ValidationError(f"Car {car_id} not found")
        cars.append(car)
    return cars

def _trip_numbers(cars):
    numbers = []
    for car in cars:
        carrier = car.carrier
        if carrier and carrier.type != 'company' and carrier.trip_number and carrier.trip_number not in numbers:
            numbers.append(carrier.trip_number)
    return numbers

def _amounts(data, cars):
    """subtotal, vat_percentage, vat_amount, total_amount with derived values filled in"""
    if data.get('subtotal') not in (None, ''):
        subtotal = to_decimal(data['subtotal'])
    else:
        subtotal = sum((to_decimal(car.amount) for car in cars), ZERO)
    vat_percentage = to_decimal(data.get('vat_percentage'))

    if data.get('vat_amount') not in (None, ''):
        vat_amount = to_decimal(data['vat_amount'])
    else:
        vat_amount = quantize(subtotal * vat_percentage / 100)

    if data.get('total_amount') not in (None, ''):
        total_amount = to_decimal(data['total_amount'])
    else:
        total_amount = subtotal + vat_amount

    if min(subtotal, vat_percentage, vat_amount, total_amount) < ZERO:
        raise ValueError("Invoice amounts cannot be negative")
    return subtotal, vat_percentage, vat_amount, total_amount

def _build_invoice(data, user_id, user_role):
    sender = (data.get('sender_company_name') or '').strip()
    client = normalize_company_name(data.get('client_company_name'))
    if not sender or not client:
        raise ValueError("Sender and client company names are required")

    cars = _visible_cars(data.get('car_ids'), user_id, user_role)
    subtotal, vat_percentage, vat_amount, total_amount = _amounts(data, cars)

    invoice = Invoice(
        invoice_number=generate_invoice_number(),
        user_id=resolve_target_user(data, user_id, user_role),
        sender_company_name=sender,
        sender_address=(data.get('sender_address') or '').strip(),
        client_company_name=client,
        invoice_date=parse_datetime(data.get('invoice_date')) or utc_now(),
        start_date=parse_datetime(data.get('start_date')),
        end_date=parse_datetime(data.get('end_date')),
        due_date=parse_datetime(data.get('due_date')),
        subtotal=subtotal,
        vat_percentage=vat_percentage,
        vat_amount=vat_amount,
        total_amount=total_amount,
        descriptions=list(data.get('descriptions') or []),
        trip_numbers=_trip_numbers(cars),
        is_active=data.get('is_active') or '',
        payment_status='unpaid'
    )
    invoice.cars = cars
    invoice.payment_status = PaymentReconciler.payment_status(total_amount, [], invoice.due_date)
    return invoice

def create_invoice(data, user_id, user_role, ip_address, user_agent):
    """
    Create an invoice and add its total to the client company's due balance.

    A collision on the invoice number (two invoices issued at once) is retried
    with a freshly generated number.
    """
    try:
        for attempt in range(1, CREATE_ATTEMPTS + 1):
            invoice = _build_invoice(data, user_id, user_role)
            db.session.add(invoice)
            try:
                db.session.flush()
            except IntegrityError:
                db.session.rollback()
                logger.warning(f"Invoice number {invoice.invoice_number} already taken (attempt {attempt})")
                continue

            adjust_due_balance(invoice.client_company_name, invoice.user_id, invoice.total_amount)
            db.session.commit()

            log_action(user_id, 'CREATE', 'invoices', invoice.id, None, serialize_invoice(invoice),
                       ip_address, user_agent)
            return invoice

        raise DuplicateKeyError("Could not allocate a unique invoice number, please try again")
    except HaulbookError:
        db.session.rollback()
        raise
    except ValueError as e:
        db.session.rollback()
        logger.error(f"Validation error: {str(e)}")
        raise InvoiceError(str(e))
    except Exception as e:
        logger.error(f"Error creating invoice: {str(e)}")
        db.session.rollback()
        raise InvoiceError("Failed to create invoice")

def _filtered_invoices(user_id, user_role, filters):
    query = apply_owner_scope(Invoice.query, Invoice, user_id, user_role)

    company = (filters.get('company') or '').strip()
    if company:
        query = query.filter(func.upper(Invoice.client_company_name) == company.upper())

    status = (filters.get('payment_status') or '').strip()
    if status and status != 'all':
        if status not in PAYMENT_STATUSES:
            raise ValidationError(f"Invalid payment status: {status}")
        query = query.filter(Invoice.payment_status == status)

    search = (filters.get('search') or '').strip()
    if search:
        conditions = [contains_ci(Invoice.invoice_number, search),
                      contains_ci(Invoice.sender_company_name, search)]
        # Client name is already pinned by the company filter
        if not company:
            conditions.append(contains_ci(Invoice.client_company_name, search))
        query = query.filter(or_(*conditions))
    return query

def get_invoices(user_id, user_role, filters=None, page=1, limit=None):
    filters = filters or {}
    try:
        page, limit = normalize_page(page, limit)
        query = _filtered_invoices(user_id, user_role, filters)
        total = query.count()

        invoices = query.options(selectinload(Invoice.payments), selectinload(Invoice.cars)) \
            .order_by(Invoice.invoice_date.desc(), Invoice.created_at.desc()) \
            .offset((page - 1) * limit).limit(limit).all()

        matching_ids = query.with_entities(Invoice.id).subquery()
        total_amount = query.with_entities(func.coalesce(func.sum(Invoice.total_amount), 0)).scalar()
        total_paid = db.session.query(
            func.coalesce(func.sum(InvoicePayment.amount - func.coalesce(InvoicePayment.excess_amount, 0)), 0)
        ).filter(InvoicePayment.invoice_id.in_(select(matching_ids.c.id))).scalar()
        total_amount, total_paid = to_decimal(total_amount), to_decimal(total_paid)

        return {
            'invoices': [serialize_invoice(i) for i in invoices],
            'pagination': build_pagination(page, limit, total),
            'totals': {
                'total_amount': as_float(total_amount),
                'total_paid': as_float(total_paid),
                'total_balance': as_float(total_amount - total_paid),
            }
        }
    except HaulbookError:
        raise
    except Exception as e:
        logger.error(f"Error getting invoices: {str(e)}")
        raise InvoiceError("Failed to retrieve invoices")

def get_invoice(invoice_id, user_id, user_role):
    return serialize_invoice(get_owned(Invoice, invoice_id, user_id, user_role, 'Invoice'))

def delete_invoice(invoice_id, user_id, user_role, ip_address, user_agent):
    try:
        invoice = get_owned(Invoice, invoice_id, user_id, user_role, 'Invoice', for_write=True)
        old_values = serialize_invoice(invoice)

        remaining = PaymentReconciler.remaining_balance(invoice.total_amount, invoice.payments)
        if remaining > ZERO:
            adjust_due_balance(invoice.client_company_name, invoice.user_id, -remaining)
        excess = sum((to_decimal(p.excess_amount) for p in invoice.payments), ZERO)
        if excess > ZERO:
            adjust_credit_balance(invoice.client_company_name, invoice.user_id, -excess)

        record_id = invoice.id
        Receipt.query.filter_by(invoice_id=invoice.id).delete(synchronize_session='fetch')
        db.session.delete(invoice)
        db.session.commit()

        log_action(user_id, 'DELETE', 'invoices', record_id, old_values, None, ip_address, user_agent)
        return True
    except HaulbookError:
        db.session.rollback()
        raise
    except Exception as e:
        logger.error(f"Error deleting invoice {invoice_id}: {str(e)}")
        db.session.rollback()
        raise InvoiceError("Failed to delete invoice")

def _default_payment_note(amount, applied, excess):
    if excess <= ZERO:
        return ''
    return (f"Full payment: {amount:,.2f} | Applied: {applied:,.2f} | "
            f"Excess (added to credit): {excess:,.2f}")

def apply_payment(invoice_id, data, user_id, user_role, ip_address, user_agent):
    """
    Record a payment against an invoice.

    The part covering the remaining balance comes off the client's due balance;
    anything beyond it is stored as excess on the payment and credited to the client.
    """
    try:
        invoice = get_owned(Invoice, invoice_id, user_id, user_role, 'Invoice', for_write=True)
        amount = to_decimal(data.get('amount'))
        applied, excess, new_remaining = PaymentReconciler.allocate(invoice.total_amount, invoice.payments, amount)

        payment = InvoicePayment(
            amount=amount,
            excess_amount=excess,
            payment_method=data.get('payment_method') or 'Cash',
            account_info=data.get('account_info') or '',
            payment_date=parse_datetime(data.get('payment_date')) or utc_now(),
            notes=data.get('notes') or _default_payment_note(amount, applied, excess),
            recorded_by=to_uuid(user_id, 'user_id')
        )
        invoice.payments.append(payment)
        db.session.flush()

        invoice.payment_status = PaymentReconciler.payment_status(invoice.total_amount, invoice.payments,
                                                                  invoice.due_date)
        if applied > ZERO:
            adjust_due_balance(invoice.client_company_name, invoice.user_id, -applied)
        if excess > ZERO:
            adjust_credit_balance(invoice.client_company_name, invoice.user_id, excess)

        receipt = create_receipt(invoice, payment, len(invoice.payments) - 1)
        db.session.commit()

        log_action(user_id, 'CREATE', 'invoice_payments', payment.id, None,
                   serialize_payment(payment, len(invoice.payments) - 1), ip_address, user_agent)

        if excess > ZERO:
            message = f"Payment recorded. {excess:,.2f} added to company credit. Receipt #{receipt.receipt_number}."
        else:
            message = f"Payment recorded successfully. Receipt #{receipt.receipt_number}."
        return {
            'invoice': serialize_invoice(invoice),
            'applied_amount': as_float(applied),
            'excess_amount': as_float(excess),
            'new_remaining_balance': as_float(new_remaining),
            'receipt': serialize_receipt(receipt),
            'message': message,
        }
    except HaulbookError:
        db.session.rollback()
        raise
    except ValueError as e:
        db.session.rollback()
        raise InvoiceError(str(e))
    except Exception as e:
        logger.error(f"Error recording payment on invoice {invoice_id}: {str(e)}")
        db.session.rollback()
        raise InvoiceError("Failed to record payment")

def delete_payment(invoice_id, payment_id, user_id, user_role, ip_address, user_agent):
    """Remove a payment and undo its effect on the client's due and credit balances. Receipts are kept."""
    try:
        invoice = get_owned(Invoice, invoice_id, user_id, user_role, 'Invoice', for_write=True)
        payment = InvoicePayment.query.filter_by(id=to_uuid(payment_id, 'payment id'),
                                                 invoice_id=invoice.id).first()
        if not payment:
            raise NotFoundError("Payment not found")

        old_values = serialize_payment(payment, invoice.payments.index(payment))
        record_id = payment.id
        excess = to_decimal(payment.excess_amount)
        applied = to_decimal(payment.amount) - excess
        if applied > ZERO:
            adjust_due_balance(invoice.client_company_name, invoice.user_id, applied)
        if excess > ZERO:
            adjust_credit_balance(invoice.client_company_name, invoice.user_id, -excess)

        Receipt.query.filter_by(payment_id=payment.id).update({'payment_id': None}, synchronize_session=False)
        invoice.payments.remove(payment)
        db.session.flush()
        invoice.payment_status = PaymentReconciler.payment_status(invoice.total_amount, invoice.payments,
                                                                  invoice.due_date)
        db.session.commit()

        log_action(user_id, 'DELETE', 'invoice_payments', record_id, old_values, None,
                   ip_address, user_agent)
        return invoice
    except HaulbookError:
        db.session.rollback()
        raise
    except Exception as e:
        logger.error(f"Error deleting payment {payment_id}: {str(e)}")
        db.session.rollback()
        raise InvoiceError("Failed to delete payment")

def get_company_breakdown(user_id, user_role):
    """Per client company invoice counts and amounts, largest outstanding balance first"""
    try:
        invoices = apply_owner_scope(Invoice.query, Invoice, user_id, user_role) \
            .options(selectinload(Invoice.payments)).all()

        companies = {}
        for invoice in invoices:
            name = invoice.client_company_name or 'Unknown'
            row = companies.setdefault(name, {
                'company_name': name,
                'total_invoices': 0,
                'paid_invoices': 0,
                'unpaid_invoices': 0,
                'partial_invoices': 0,
                'total_amount': ZERO,
                'total_paid': ZERO,
            })
            row['total_invoices'] += 1
            if invoice.payment_status in ('paid', 'unpaid', 'partial'):
                row[f"{invoice.payment_status}_invoices"] += 1
            row['total_amount'] += to_decimal(invoice.total_amount)
            row['total_paid'] += PaymentReconciler.applied_total(invoice.payments)

        rows = []
        for row in companies.values():
            row['outstanding_balance'] = row['total_amount'] - row['total_paid']
            rows.append(row)
        rows.sort(key=lambda r: r['outstanding_balance'], reverse=True)

        totals = {
            'total_companies': len(rows),
            'total_invoices': sum(r['total_invoices'] for r in rows),
            'paid_invoices': sum(r['paid_invoices'] for r in rows),
            'unpaid_invoices': sum(r['unpaid_invoices'] for r in rows),
            'partial_invoices': sum(r['partial_invoices'] for r in rows),
            'total_amount': as_float(sum((r['total_amount'] for r in rows), ZERO)),
            'total_paid': as_float(sum((r['total_paid'] for r in rows), ZERO)),
            'outstanding_balance': as_float(sum((r['outstanding_balance'] for r in rows), ZERO)),
        }
        for row in rows:
            for key in ('total_amount', 'total_paid', 'outstanding_balance'):
                row[key] = as_float(row[key])
        return {'companies': rows, 'totals': totals}
    except HaulbookError:
        raise
    except Exception as e:
        logger.error(f"Error getting company breakdown: {str(e)}")
        raise InvoiceError("Failed to get company breakdown")
