from flask import jsonify, request
from flask_jwt_extended import jwt_required, get_jwt
from . import main
from ..crud import invoice_crud, receipt_crud
from ..crud.invoice_crud import serialize_invoice
from ..crud.receipt_crud import serialize_receipt
from ..utils.errors import HaulbookError

@main.route('/invoices/list', methods=['GET'])
@jwt_required()
def list_invoices():
    claims = get_jwt()
    filters = {key: request.args.get(key) for key in ('company', 'payment_status', 'search') if request.args.get(key)}
    try:
        result = invoice_crud.get_invoices(claims['id'], claims['role'], filters,
                                           page=request.args.get('page', 1),
                                           limit=request.args.get('limit'))
        return jsonify({'success': True, **result}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/invoices/add', methods=['POST'])
@jwt_required()
def add_invoice():
    claims = get_jwt()
    data = request.get_json(silent=True) or {}
    try:
        invoice = invoice_crud.create_invoice(data, claims['id'], claims['role'],
                                              request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'invoice': serialize_invoice(invoice)}), 201
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/invoices/breakdown', methods=['GET'])
@jwt_required()
def company_breakdown():
    claims = get_jwt()
    try:
        result = invoice_crud.get_company_breakdown(claims['id'], claims['role'])
        return jsonify({'success': True, **result}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/invoices/<string:invoice_id>', methods=['GET'])
@jwt_required()
def get_invoice(invoice_id):
    claims = get_jwt()
    try:
        return jsonify({'success': True,
                        'invoice': invoice_crud.get_invoice(invoice_id, claims['id'], claims['role'])}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/invoices/<string:invoice_id>', methods=['DELETE'])
@jwt_required()
def delete_invoice(invoice_id):
    claims = get_jwt()
    try:
        invoice_crud.delete_invoice(invoice_id, claims['id'], claims['role'],
                                    request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'message': 'Invoice deleted successfully'}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/invoices/<string:invoice_id>/payments', methods=['POST'])
@jwt_required()
def record_payment(invoice_id):
    claims = get_jwt()
    data = request.get_json(silent=True) or {}
    try:
        result = invoice_crud.apply_payment(invoice_id, data, claims['id'], claims['role'],
                                            request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, **result}), 201
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/invoices/<string:invoice_id>/payments/<string:payment_id>', methods=['DELETE'])
@jwt_required()
def delete_payment(invoice_id, payment_id):
    claims = get_jwt()
    try:
        invoice = invoice_crud.delete_payment(invoice_id, payment_id, claims['id'], claims['role'],
                                              request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'invoice': serialize_invoice(invoice),
                        'message': 'Payment deleted successfully'}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/invoices/<string:invoice_id>/receipts', methods=['GET'])
@jwt_required()
def invoice_receipts(invoice_id):
    claims = get_jwt()
    try:
        receipts = receipt_crud.get_receipts_by_invoice(invoice_id, claims['id'], claims['role'])
        return jsonify({'success': True, 'receipts': receipts}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/receipts/company/<path:company_name>', methods=['GET'])
@jwt_required()
def company_receipts(company_name):
    claims = get_jwt()
    try:
        receipts = receipt_crud.get_receipts_by_company(company_name, claims['id'], claims['role'])
        return jsonify({'success': True, 'receipts': receipts}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/receipts/<string:receipt_id>', methods=['GET'])
@jwt_required()
def get_receipt(receipt_id):
    claims = get_jwt()
    try:
        return jsonify({'success': True,
                        'receipt': receipt_crud.get_receipt(receipt_id, claims['id'], claims['role'])}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/receipts/<string:receipt_id>/status', methods=['PUT'])
@jwt_required()
def update_receipt_status(receipt_id):
    claims = get_jwt()
    data = request.get_json(silent=True) or {}
    try:
        receipt = receipt_crud.update_receipt_status(receipt_id, data.get('status'), claims['id'], claims['role'],
                                                     request.remote_addr, request.headers.get('User-Agent'),
                                                     sent_to=data.get('sent_to'))
        return jsonify({'success': True, 'receipt': serialize_receipt(receipt)}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/receipts/<string:receipt_id>', methods=['DELETE'])
@jwt_required()
def delete_receipt(receipt_id):
    claims = get_jwt()
    try:
        receipt_crud.delete_receipt(receipt_id, claims['id'], claims['role'],
                                    request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'message': 'Receipt deleted successfully'}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code
