from haulbook import db
from haulbook.models import Receipt, Invoice
from haulbook.crud.scoping import apply_owner_scope, get_owned
from haulbook.crud.document_numbers import issue_daily_number
from haulbook.utils.logging_utils import log_action
from haulbook.utils.errors import HaulbookError, ValidationError
from haulbook.utils.date_utils import utc_now
from haulbook.utils.money import as_float, to_decimal
import logging

logger = logging.getLogger(__name__)

RECEIPT_STATUSES = ('generated', 'sent', 'archived')

class ReceiptError(HaulbookError):
    """Custom exception for receipt operations"""
    pass

def serialize_receipt(receipt):
    return {
        'id': str(receipt.id),
        'receipt_number': receipt.receipt_number,
        'invoice_id': str(receipt.invoice_id),
        'payment_id': str(receipt.payment_id) if receipt.payment_id else None,
        'payment_index': receipt.payment_index,
        'user_id': str(receipt.user_id),
        'invoice_number': receipt.invoice_number,
        'sender_company_name': receipt.sender_company_name,
        'sender_address': receipt.sender_address or '',
        'client_company_name': receipt.client_company_name,
        'payment_amount': as_float(receipt.payment_amount),
        'amount_applied': as_float(receipt.amount_applied),
        'excess_amount': as_float(receipt.excess_amount),
        'payment_method': receipt.payment_method,
        'account_info': receipt.account_info or '',
        'payment_date': receipt.payment_date.isoformat() if receipt.payment_date else None,
        'invoice_date': receipt.invoice_date.isoformat() if receipt.invoice_date else None,
        'invoice_amount': as_float(receipt.invoice_amount),
        'notes': receipt.notes or '',
        'status': receipt.status,
        'sent_at': receipt.sent_at.isoformat() if receipt.sent_at else None,
        'sent_to': receipt.sent_to,
        'created_at': receipt.created_at.isoformat() if receipt.created_at else None,
    }

def create_receipt(invoice, payment, payment_index):
    """Snapshot a recorded payment into a new receipt. Caller commits."""
    excess = to_decimal(payment.excess_amount)
    receipt = Receipt(
        receipt_number=issue_daily_number(Receipt.receipt_number, 'RCP'),
        invoice_id=invoice.id,
        payment_id=payment.id,
        payment_index=payment_index,
        user_id=invoice.user_id,
        invoice_number=invoice.invoice_number,
        sender_company_name=invoice.sender_company_name,
        sender_address=invoice.sender_address,
        client_company_name=invoice.client_company_name,
        payment_amount=payment.amount,
        amount_applied=to_decimal(payment.amount) - excess,
        excess_amount=excess,
        payment_method=payment.payment_method or 'Cash',
        account_info=payment.account_info,
        payment_date=payment.payment_date,
        invoice_date=invoice.invoice_date,
        invoice_amount=invoice.total_amount,
        notes=payment.notes,
        status='generated'
    )
    db.session.add(receipt)
    db.session.flush()
    return receipt

def get_receipts_by_invoice(invoice_id, user_id, user_role):
    invoice = get_owned(Invoice, invoice_id, user_id, user_role, 'Invoice')
    receipts = Receipt.query.filter_by(invoice_id=invoice.id) \
        .order_by(Receipt.created_at.desc()).all()
    return [serialize_receipt(r) for r in receipts]

def get_receipt(receipt_id, user_id, user_role):
    return serialize_receipt(get_owned(Receipt, receipt_id, user_id, user_role, 'Receipt'))

def update_receipt_status(receipt_id, status, user_id, user_role, ip_address, user_agent, sent_to=None):
    try:
        if status not in RECEIPT_STATUSES:
            raise ValidationError(f"Invalid receipt status. Must be one of: {', '.join(RECEIPT_STATUSES)}")
        receipt = get_owned(Receipt, receipt_id, user_id, user_role, 'Receipt', for_write=True)
        old_values = {'status': receipt.status, 'sent_to': receipt.sent_to}

        receipt.status = status
        if status == 'sent':
            receipt.sent_at = utc_now()
            if sent_to:
                receipt.sent_to = sent_to
        db.session.commit()

        log_action(user_id, 'UPDATE', 'receipts', receipt.id, old_values,
                   {'status': status, 'sent_to': receipt.sent_to}, ip_address, user_agent)
        return receipt
    except HaulbookError:
        db.session.rollback()
        raise
    except Exception as e:
        logger.error(f"Error updating receipt {receipt_id}: {str(e)}")
        db.session.rollback()
        raise ReceiptError("Failed to update receipt status")

def delete_receipt(receipt_id, user_id, user_role, ip_address, user_agent):
    try:
        receipt = get_owned(Receipt, receipt_id, user_id, user_role, 'Receipt', for_write=True)
        old_values = serialize_receipt(receipt)
        record_id = receipt.id
        db.session.delete(receipt)
        db.session.commit()

        log_action(user_id, 'DELETE', 'receipts', record_id, old_values, None, ip_address, user_agent)
        return True
    except HaulbookError:
        db.session.rollback()
        raise
    except Exception as e:
        logger.error(f"Error deleting receipt {receipt_id}: {str(e)}")
        db.session.rollback()
        raise ReceiptError("Failed to delete receipt")

def get_receipts_by_company(company_name, user_id, user_role):
    name = (company_name or '').strip().upper()
    query = apply_owner_scope(Receipt.query, Receipt, user_id, user_role) \
        .filter(db.func.upper(Receipt.client_company_name) == name)
    return [serialize_receipt(r) for r in query.order_by(Receipt.created_at.desc()).all()]
