from flask import jsonify, request
from flask_jwt_extended import jwt_required, get_jwt
from . import main
from ..crud import carrier_crud, car_crud, expense_crud
from ..crud.carrier_crud import serialize_carrier, serialize_car
from ..crud.expense_crud import serialize_expense
from ..utils.errors import HaulbookError

CARRIER_FILTERS = ('type', 'is_active', 'start_date', 'end_date', 'company', 'carrier_name',
                   'trip_number', 'search', 'user_id')

@main.route('/carriers/list', methods=['GET'])
@jwt_required()
def list_carriers():
    claims = get_jwt()
    filters = {key: request.args.get(key) for key in CARRIER_FILTERS if request.args.get(key)}
    try:
        result = carrier_crud.list_carriers(claims['id'], claims['role'], filters,
                                            page=request.args.get('page', 1),
                                            limit=request.args.get('limit'))
        return jsonify({'success': True, **result}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/carriers/add', methods=['POST'])
@jwt_required()
def add_carrier():
    claims = get_jwt()
    data = request.get_json(silent=True) or {}
    try:
        result = carrier_crud.create_carrier(data, claims['id'], claims['role'],
                                             request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, **result}), 200 if result.get('warning') else 201
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/carriers/next-trip-number', methods=['GET'])
@jwt_required()
def next_trip_number():
    claims = get_jwt()
    owner_id = claims['id']
    if claims['role'] == 'super_admin' and request.args.get('user_id'):
        owner_id = request.args.get('user_id')
    try:
        return jsonify({'success': True, 'trip_number': carrier_crud.generate_next_trip_number(owner_id)}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/carriers/<string:carrier_id>', methods=['GET'])
@jwt_required()
def get_carrier(carrier_id):
    claims = get_jwt()
    try:
        return jsonify({'success': True,
                        'carrier': carrier_crud.get_carrier(carrier_id, claims['id'], claims['role'])}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/carriers/<string:carrier_id>', methods=['PUT'])
@jwt_required()
def update_carrier(carrier_id):
    claims = get_jwt()
    data = request.get_json(silent=True) or {}
    try:
        carrier = carrier_crud.update_carrier(carrier_id, data, claims['id'], claims['role'],
                                              request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'carrier': serialize_carrier(carrier)}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/carriers/<string:carrier_id>', methods=['DELETE'])
@jwt_required()
def delete_carrier(carrier_id):
    claims = get_jwt()
    try:
        carrier_crud.delete_carrier(carrier_id, claims['id'], claims['role'],
                                    request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'message': 'Carrier deleted successfully'}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/carriers/<string:carrier_id>/toggle-active', methods=['POST'])
@jwt_required()
def toggle_carrier(carrier_id):
    claims = get_jwt()
    try:
        is_active = carrier_crud.toggle_carrier_active(carrier_id, claims['id'], claims['role'],
                                                       request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'is_active': is_active}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/carriers/<string:carrier_id>/sync-cars-date', methods=['POST'])
@jwt_required()
def sync_cars_date(carrier_id):
    claims = get_jwt()
    try:
        result = carrier_crud.sync_cars_date(carrier_id, claims['id'], claims['role'],
                                             request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, **result}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/carriers/<string:carrier_id>/cars', methods=['GET'])
@jwt_required()
def list_cars(carrier_id):
    claims = get_jwt()
    try:
        return jsonify({'success': True,
                        'cars': car_crud.get_cars_by_carrier(carrier_id, claims['id'], claims['role'])}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/carriers/<string:carrier_id>/cars', methods=['POST'])
@jwt_required()
def add_car(carrier_id):
    claims = get_jwt()
    data = request.get_json(silent=True) or {}
    try:
        car = car_crud.create_car(carrier_id, data, claims['id'], claims['role'],
                                  request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'car': serialize_car(car)}), 201
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/carriers/<string:carrier_id>/cars/bulk', methods=['POST'])
@jwt_required()
def add_cars_bulk(carrier_id):
    claims = get_jwt()
    data = request.get_json(silent=True) or {}
    try:
        cars = car_crud.create_multiple_cars(carrier_id, data.get('cars') or [], claims['id'], claims['role'],
                                             request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'cars': [serialize_car(c) for c in cars],
                        'message': f'{len(cars)} cars added successfully'}), 201
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/cars/<string:car_id>', methods=['DELETE'])
@jwt_required()
def delete_car(car_id):
    claims = get_jwt()
    try:
        car_crud.delete_car(car_id, claims['id'], claims['role'],
                            request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'message': 'Car deleted successfully'}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/carriers/<string:carrier_id>/expenses', methods=['GET'])
@jwt_required()
def list_carrier_expenses(carrier_id):
    claims = get_jwt()
    try:
        result = expense_crud.get_carrier_expenses(carrier_id, claims['id'], claims['role'])
        return jsonify({'success': True, **result}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/carriers/<string:carrier_id>/expenses', methods=['POST'])
@jwt_required()
def add_carrier_expense(carrier_id):
    claims = get_jwt()
    data = request.get_json(silent=True) or {}
    try:
        expense = expense_crud.create_carrier_expense(carrier_id, data, claims['id'], claims['role'],
                                                      request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'expense': serialize_expense(expense)}), 201
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/carriers/<string:carrier_id>/expenses/<string:expense_id>', methods=['PUT'])
@jwt_required()
def update_carrier_expense(carrier_id, expense_id):
    claims = get_jwt()
    data = request.get_json(silent=True) or {}
    try:
        expense = expense_crud.update_carrier_expense(carrier_id, expense_id, data, claims['id'], claims['role'],
                                                      request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'expense': serialize_expense(expense)}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/carriers/<string:carrier_id>/expenses/<string:expense_id>', methods=['DELETE'])
@jwt_required()
def delete_carrier_expense(carrier_id, expense_id):
    claims = get_jwt()
    try:
        result = expense_crud.delete_carrier_expense(carrier_id, expense_id, claims['id'], claims['role'],
                                                     request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'message': 'Expense deleted successfully', **result}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code
