import re

import pytest

from haulbook import db
from haulbook.models import Company, Receipt
from haulbook.crud import carrier_crud, car_crud, company_crud, invoice_crud, receipt_crud
from haulbook.crud.invoice_crud import InvoiceError
from haulbook.utils.errors import ValidationError, ForbiddenError, to_uuid


def make_invoice(user_id, total='1000', role='user', **extra):
    data = {
        'sender_company_name': 'Fast Haulage',
        'client_company_name': 'acme motors',
        'total_amount': total,
    }
    data.update(extra)
    return invoice_crud.create_invoice(data, user_id, role, '127.0.0.1', 'pytest')


def pay(invoice_id, user_id, amount, role='user'):
    return invoice_crud.apply_payment(invoice_id, {'amount': amount}, user_id, role, '127.0.0.1', 'pytest')


def company_row(user_id, name='ACME MOTORS'):
    return Company.query.filter_by(name=name, user_id=to_uuid(user_id)).first()


def test_invoice_number_and_due_balance(users):
    invoice = make_invoice(users['alice'])

    assert re.fullmatch(r'INV-\d{8}-001', invoice.invoice_number)
    assert invoice.client_company_name == 'ACME MOTORS'
    assert invoice.payment_status == 'unpaid'
    assert float(company_row(users['alice']).due_balance) == 1000.0

    second = make_invoice(users['alice'])
    assert second.invoice_number.endswith('-002')
    assert float(company_row(users['alice']).due_balance) == 2000.0


def test_vat_is_derived_when_missing(users):
    invoice = make_invoice(users['alice'], total=None, subtotal='200', vat_percentage='15')
    assert float(invoice.vat_amount) == 30.0
    assert float(invoice.total_amount) == 230.0


def test_sender_and_client_required(users):
    with pytest.raises(InvoiceError):
        invoice_crud.create_invoice({'sender_company_name': 'Fast Haulage'}, users['alice'], 'user', None, None)


def test_invoice_collects_trip_numbers_from_cars(users):
    trip = carrier_crud.create_carrier({'trip_number': 'TRIP-021', 'date': '2024-05-01'},
                                       users['alice'], 'user', None, None)['carrier']
    car = car_crud.create_car(trip['id'], {'stock_no': 'S1', 'name': 'Hilux', 'chassis': 'C1',
                                           'amount': 450, 'company_name': 'acme motors'},
                              users['alice'], 'user', None, None)

    invoice = make_invoice(users['alice'], total=None, car_ids=[str(car.id)])
    assert invoice.trip_numbers == ['TRIP-021']
    assert float(invoice.subtotal) == 450.0

    with pytest.raises(ValidationError):
        make_invoice(users['bob'], car_ids=[str(car.id)])


def test_overpayment_becomes_credit_and_due_clamps(users):
    invoice = make_invoice(users['alice'], total='1000')

    first = pay(invoice.id, users['alice'], '400')
    assert first['applied_amount'] == 400.0
    assert first['excess_amount'] == 0.0
    assert first['new_remaining_balance'] == 600.0
    assert first['invoice']['payment_status'] == 'partial'

    second = pay(invoice.id, users['alice'], '750')
    assert second['applied_amount'] == 600.0
    assert second['excess_amount'] == 150.0
    assert second['new_remaining_balance'] == 0.0
    assert second['invoice']['payment_status'] == 'paid'

    company = company_row(users['alice'])
    assert float(company.due_balance) == 0.0
    assert float(company.credit_balance) == 150.0

    credit = company_crud.get_company_credit('Acme Motors', users['alice'], 'user')
    assert credit['credit_balance'] == 150.0


def test_due_balance_never_goes_negative(users):
    invoice = make_invoice(users['alice'], total='500')
    company_crud.set_company_credit('ACME MOTORS', 0, users['alice'], 'user', None, None)
    company = company_row(users['alice'])
    company.due_balance = 100
    db.session.commit()

    pay(invoice.id, users['alice'], '300')
    assert float(company_row(users['alice']).due_balance) == 0.0


def test_payment_creates_receipt_snapshot(users):
    invoice = make_invoice(users['alice'], total='1000')
    result = pay(invoice.id, users['alice'], '1200')

    receipt = result['receipt']
    assert re.fullmatch(r'RCP-\d{8}-001', receipt['receipt_number'])
    assert receipt['status'] == 'generated'
    assert receipt['payment_index'] == 0
    assert receipt['amount_applied'] == 1000.0
    assert receipt['excess_amount'] == 200.0
    assert receipt['client_company_name'] == 'ACME MOTORS'
    assert receipt['invoice_number'] == invoice.invoice_number

    updated = receipt_crud.update_receipt_status(receipt['id'], 'sent', users['alice'], 'user', None, None,
                                                 sent_to='billing@acme.test')
    assert updated.status == 'sent'
    assert updated.sent_at is not None
    assert updated.sent_to == 'billing@acme.test'

    with pytest.raises(ValidationError):
        receipt_crud.update_receipt_status(receipt['id'], 'lost', users['alice'], 'user', None, None)


def test_delete_payment_reverses_balances(users):
    invoice = make_invoice(users['alice'], total='1000')
    result = pay(invoice.id, users['alice'], '1100')
    payment_id = result['invoice']['payments'][0]['id']

    invoice_crud.delete_payment(invoice.id, payment_id, users['alice'], 'user', None, None)

    company = company_row(users['alice'])
    assert float(company.due_balance) == 1000.0
    assert float(company.credit_balance) == 0.0
    assert invoice_crud.get_invoice(invoice.id, users['alice'], 'user')['payment_status'] == 'unpaid'
    # Receipts outlive the payment they document
    assert Receipt.query.count() == 1


def test_delete_invoice_reverses_remaining_and_excess(users):
    keep = make_invoice(users['alice'], total='300')
    invoice = make_invoice(users['alice'], total='1000')
    pay(invoice.id, users['alice'], '250')

    invoice_crud.delete_invoice(invoice.id, users['alice'], 'user', None, None)

    company = company_row(users['alice'])
    assert float(company.due_balance) == 300.0
    assert Receipt.query.count() == 0
    assert invoice_crud.get_invoice(keep.id, users['alice'], 'user')['total_amount'] == 300.0


def test_foreign_invoice_payment_refused(users):
    invoice = make_invoice(users['alice'])
    with pytest.raises(ForbiddenError):
        pay(invoice.id, users['bob'], '10')


def test_invoice_listing_totals_and_breakdown(users):
    first = make_invoice(users['alice'], total='1000')
    make_invoice(users['alice'], total='500', client_company_name='Beta Traders')
    make_invoice(users['bob'], total='9999')
    pay(first.id, users['alice'], '400')

    listing = invoice_crud.get_invoices(users['alice'], 'user', {}, page=1, limit=10)
    assert listing['pagination']['total'] == 2
    assert listing['totals'] == {'total_amount': 1500.0, 'total_paid': 400.0, 'total_balance': 1100.0}

    acme = invoice_crud.get_invoices(users['alice'], 'user', {'company': 'acme motors'})
    assert [i['client_company_name'] for i in acme['invoices']] == ['ACME MOTORS']

    breakdown = invoice_crud.get_company_breakdown(users['alice'], 'user')
    assert [c['company_name'] for c in breakdown['companies']] == ['ACME MOTORS', 'BETA TRADERS']
    assert breakdown['companies'][0]['outstanding_balance'] == 600.0
    assert breakdown['companies'][0]['partial_invoices'] == 1
    assert breakdown['totals']['total_invoices'] == 2
