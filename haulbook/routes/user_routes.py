from flask import jsonify, request
from flask_jwt_extended import jwt_required, get_jwt
from . import main
from ..crud import user_crud
from ..crud.user_crud import serialize_user
from ..utils.errors import HaulbookError

@main.route('/users/list', methods=['GET'])
@jwt_required()
def list_users():
    claims = get_jwt()
    try:
        return jsonify({'success': True, 'users': user_crud.get_all_users(claims['role'])}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/users/add', methods=['POST'])
@jwt_required()
def add_user():
    claims = get_jwt()
    data = request.get_json(silent=True) or {}
    try:
        user = user_crud.create_user(data, claims['role'], claims['id'],
                                     request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'user': serialize_user(user)}), 201
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@main.route('/users/<string:user_id>', methods=['DELETE'])
@jwt_required()
def deactivate_user(user_id):
    claims = get_jwt()
    try:
        user_crud.deactivate_user(user_id, claims['role'], claims['id'],
                                  request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'message': 'User deactivated successfully'}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code
