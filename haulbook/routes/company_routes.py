from flask import jsonify, request
from flask_jwt_extended import jwt_required, get_jwt
from . import main
from ..crud import company_crud
from ..crud.company_crud import serialize_company
from ..utils.errors import HaulbookError

@main.route('/companies/balances', methods=['GET'])
@jwt_required()
def company_balances():
    claims = get_jwt()
    try:
        return jsonify({'success': True,
                        'companies': company_crud.get_company_balances(claims['id'], claims['role'])}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/companies/add', methods=['POST'])
@jwt_required()
def add_company():
    claims = get_jwt()
    data = request.get_json(silent=True) or {}
    try:
        company = company_crud.create_company(data, claims['id'], claims['role'],
                                              request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'company': serialize_company(company)}), 201
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/companies/<path:company_name>/credit', methods=['GET'])
@jwt_required()
def company_credit(company_name):
    claims = get_jwt()
    try:
        credit = company_crud.get_company_credit(company_name, claims['id'], claims['role'])
        return jsonify({'success': True, **credit}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/companies/<path:company_name>/credit', methods=['PUT'])
@jwt_required()
def set_company_credit(company_name):
    claims = get_jwt()
    data = request.get_json(silent=True) or {}
    try:
        company = company_crud.set_company_credit(company_name, data.get('credit_balance'),
                                                  claims['id'], claims['role'],
                                                  request.remote_addr, request.headers.get('User-Agent'),
                                                  owner_id=data.get('user_id'))
        return jsonify({'success': True, 'company': serialize_company(company),
                        'message': 'Credit balance updated successfully'}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/companies/<string:company_id>', methods=['PUT'])
@jwt_required()
def update_company(company_id):
    claims = get_jwt()
    data = request.get_json(silent=True) or {}
    try:
        result = company_crud.update_company_name(company_id, data.get('name'), claims['id'], claims['role'],
                                                  request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, **result}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/companies/<string:company_id>', methods=['DELETE'])
@jwt_required()
def delete_company(company_id):
    claims = get_jwt()
    try:
        company_crud.delete_company(company_id, claims['id'], claims['role'],
                                    request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'message': 'Company deleted successfully'}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code
