from flask import jsonify, request
from flask_jwt_extended import jwt_required, get_jwt, get_jwt_identity
from . import main
from ..crud import account_crud, transaction_crud
from ..crud.transaction_crud import serialize_transaction
from ..utils.errors import HaulbookError
import logging

logger = logging.getLogger(__name__)

@main.route('/accounts/list', methods=['GET'])
@jwt_required()
def list_accounts():
    claims = get_jwt()
    try:
        result = account_crud.get_accounts(
            claims['role'],
            search=request.args.get('search'),
            currency=request.args.get('currency'),
            page=request.args.get('page', 1),
            limit=request.args.get('limit')
        )
        return jsonify({'success': True, **result}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/accounts/add', methods=['POST'])
@jwt_required()
def add_account():
    claims = get_jwt()
    data = request.get_json(silent=True) or {}
    try:
        account = account_crud.create_account(data, claims['role'], get_jwt_identity(),
                                              request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'account': account_crud.serialize_account(account)}), 201
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/accounts/<string:account_ref>', methods=['GET'])
@jwt_required()
def get_account(account_ref):
    claims = get_jwt()
    try:
        return jsonify({'success': True, 'account': account_crud.get_account(account_ref, claims['role'])}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/accounts/<string:account_ref>', methods=['DELETE'])
@jwt_required()
def delete_account(account_ref):
    claims = get_jwt()
    try:
        account_crud.delete_account(account_ref, claims['role'], get_jwt_identity(),
                                    request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'message': 'Account deleted successfully'}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/accounts/<string:account_ref>/statement', methods=['GET'])
@jwt_required()
def account_statement(account_ref):
    claims = get_jwt()
    try:
        statement = transaction_crud.get_account_statement(
            account_ref,
            claims['role'],
            start_date=request.args.get('start_date'),
            end_date=request.args.get('end_date'),
            search=request.args.get('search'),
            page=request.args.get('page', 1),
            limit=request.args.get('limit')
        )
        return jsonify({'success': True, **statement}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/transactions/list', methods=['GET'])
@jwt_required()
def list_transactions():
    claims = get_jwt()
    filters = {
        'account_slug': request.args.get('account_slug'),
        'account_ids': request.args.getlist('account_id'),
        'start_date': request.args.get('start_date'),
        'end_date': request.args.get('end_date'),
        'type': request.args.get('type'),
        'search': request.args.get('search'),
    }
    try:
        result = transaction_crud.get_transactions(claims['role'], filters,
                                                   page=request.args.get('page', 1),
                                                   limit=request.args.get('limit'))
        return jsonify({'success': True, **result}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/transactions/add', methods=['POST'])
@jwt_required()
def add_transaction():
    claims = get_jwt()
    data = request.get_json(silent=True) or {}
    try:
        txn = transaction_crud.create_transaction(data, claims['role'], get_jwt_identity(),
                                                  request.remote_addr, request.headers.get('User-Agent'))
        logger.info(f"Transaction {txn.id} recorded on account {txn.account_id}")
        return jsonify({'success': True, 'transaction': serialize_transaction(txn)}), 201
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code
