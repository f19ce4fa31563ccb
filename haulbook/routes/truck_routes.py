from flask import jsonify, request
from flask_jwt_extended import jwt_required, get_jwt
from . import main
from ..crud import truck_crud, expense_crud
from ..crud.truck_crud import serialize_truck, serialize_driver
from ..crud.expense_crud import serialize_expense
from ..utils.errors import HaulbookError

@main.route('/trucks/list', methods=['GET'])
@jwt_required()
def list_trucks():
    claims = get_jwt()
    filters = {key: request.args.get(key) for key in ('is_active', 'search', 'user_id') if request.args.get(key)}
    try:
        return jsonify({'success': True,
                        'trucks': truck_crud.get_all_trucks(claims['id'], claims['role'], filters)}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/trucks/add', methods=['POST'])
@jwt_required()
def add_truck():
    claims = get_jwt()
    data = request.get_json(silent=True) or {}
    try:
        truck = truck_crud.create_truck(data, claims['id'], claims['role'],
                                        request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'truck': serialize_truck(truck)}), 201
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/trucks/<string:truck_id>', methods=['GET'])
@jwt_required()
def get_truck(truck_id):
    claims = get_jwt()
    try:
        return jsonify({'success': True, 'truck': truck_crud.get_truck(truck_id, claims['id'], claims['role'])}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/trucks/<string:truck_id>', methods=['PUT'])
@jwt_required()
def update_truck(truck_id):
    claims = get_jwt()
    data = request.get_json(silent=True) or {}
    try:
        truck = truck_crud.update_truck(truck_id, data, claims['id'], claims['role'],
                                        request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'truck': serialize_truck(truck)}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/trucks/<string:truck_id>', methods=['DELETE'])
@jwt_required()
def delete_truck(truck_id):
    claims = get_jwt()
    try:
        truck_crud.delete_truck(truck_id, claims['id'], claims['role'],
                                request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'message': 'Truck deleted successfully'}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/trucks/<string:truck_id>/expenses', methods=['GET'])
@jwt_required()
def list_truck_expenses(truck_id):
    claims = get_jwt()
    try:
        result = expense_crud.get_truck_expenses(truck_id, claims['id'], claims['role'])
        return jsonify({'success': True, **result}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/trucks/<string:truck_id>/expenses', methods=['POST'])
@jwt_required()
def add_truck_expense(truck_id):
    claims = get_jwt()
    data = request.get_json(silent=True) or {}
    try:
        expense = expense_crud.create_truck_expense(truck_id, data, claims['id'], claims['role'],
                                                    request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'expense': serialize_expense(expense)}), 201
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/trucks/<string:truck_id>/expenses/<string:expense_id>', methods=['DELETE'])
@jwt_required()
def delete_truck_expense(truck_id, expense_id):
    claims = get_jwt()
    try:
        expense_crud.delete_truck_expense(truck_id, expense_id, claims['id'], claims['role'],
                                          request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'message': 'Expense deleted successfully'}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/drivers/list', methods=['GET'])
@jwt_required()
def list_drivers():
    claims = get_jwt()
    try:
        return jsonify({'success': True, 'drivers': truck_crud.get_drivers(claims['id'], claims['role'])}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/drivers/add', methods=['POST'])
@jwt_required()
def add_driver():
    claims = get_jwt()
    data = request.get_json(silent=True) or {}
    try:
        driver = truck_crud.create_driver(data, claims['id'], claims['role'],
                                          request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'driver': serialize_driver(driver)}), 201
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/drivers/<string:driver_id>', methods=['GET'])
@jwt_required()
def get_driver(driver_id):
    claims = get_jwt()
    try:
        return jsonify({'success': True,
                        'driver': truck_crud.get_driver(driver_id, claims['id'], claims['role'])}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/drivers/<string:driver_id>', methods=['PUT'])
@jwt_required()
def update_driver(driver_id):
    claims = get_jwt()
    data = request.get_json(silent=True) or {}
    try:
        driver = truck_crud.update_driver(driver_id, data, claims['id'], claims['role'],
                                          request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'driver': serialize_driver(driver)}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/drivers/<string:driver_id>', methods=['DELETE'])
@jwt_required()
def delete_driver(driver_id):
    claims = get_jwt()
    try:
        truck_crud.delete_driver(driver_id, claims['id'], claims['role'],
                                 request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'message': 'Driver deleted successfully'}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/drivers/<string:driver_id>/rent-payments', methods=['GET'])
@jwt_required()
def driver_rent_payments(driver_id):
    claims = get_jwt()
    try:
        result = truck_crud.get_driver_rent_payments(driver_id, claims['id'], claims['role'],
                                                     page=request.args.get('page', 1),
                                                     limit=request.args.get('limit'))
        return jsonify({'success': True, **result}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/expenses/fuel-report', methods=['GET'])
@jwt_required()
def fuel_report():
    claims = get_jwt()
    filters = {key: request.args.get(key) for key in ('start_date', 'end_date', 'user_id') if request.args.get(key)}
    filters['truck_ids'] = request.args.getlist('truck_id')
    try:
        return jsonify({'success': True,
                        **expense_crud.get_fuel_report(claims['id'], claims['role'], filters)}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code
