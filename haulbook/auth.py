from flask import Blueprint, request, jsonify
from flask_jwt_extended import create_access_token, jwt_required, get_jwt_identity
from haulbook import jwt
from haulbook.models import User
from haulbook.crud import user_crud
from haulbook.utils.errors import HaulbookError, to_uuid
import logging

logger = logging.getLogger(__name__)

auth = Blueprint('auth', __name__)

@auth.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    username = (data.get('username') or '').strip().lower()
    password = data.get('password') or ''
    if not username or not password:
        return jsonify({'success': False, 'error': 'Username and password are required'}), 400

    user = User.query.filter_by(username=username).first()
    if user and user.is_active is not False and user.check_password(password):
        access_token = create_access_token(
            identity=str(user.id),
            additional_claims={
                "id": str(user.id),
                "username": user.username,
                "role": user.role
            }
        )
        logger.info(f"User {user.username} logged in")
        return jsonify({
            'success': True,
            'token': access_token,
            'user': {'id': str(user.id), 'username': user.username, 'role': user.role}
        }), 200

    logger.warning(f"Failed login attempt for {username} from {request.remote_addr}")
    return jsonify({'success': False, 'error': 'Invalid credentials'}), 401

@auth.route('/logout', methods=['POST'])
@jwt_required()
def logout():
    # Tokens are stateless; the client discards its copy
    return jsonify({'success': True, 'message': 'Successfully logged out'}), 200

@auth.route('/me', methods=['GET'])
@jwt_required()
def me():
    user = user_crud.get_user_by_id(get_jwt_identity())
    return jsonify({'success': True, 'user': user}), 200

@auth.route('/change-password', methods=['POST'])
@jwt_required()
def change_password():
    data = request.get_json(silent=True) or {}
    try:
        user_crud.change_password(get_jwt_identity(), data.get('current_password'), data.get('new_password'),
                                  request.remote_addr, request.headers.get('User-Agent'))
        return jsonify({'success': True, 'message': 'Password changed successfully'}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code

@jwt.token_in_blocklist_loader
def check_if_token_revoked(jwt_header, jwt_payload):
    # Deactivated users lose access immediately, not when their token expires
    user = User.query.get(to_uuid(jwt_payload['sub'], 'user_id'))
    return user is None or user.is_active is False

@jwt.unauthorized_loader
def missing_token(reason):
    return jsonify({'success': False, 'error': 'Unauthorized'}), 401

@jwt.invalid_token_loader
def invalid_token(reason):
    return jsonify({'success': False, 'error': f'Invalid token: {reason}'}), 401

@jwt.expired_token_loader
def expired_token(jwt_header, jwt_payload):
    return jsonify({'success': False, 'error': 'Session expired, please log in again'}), 401

@jwt.revoked_token_loader
def revoked_token(jwt_header, jwt_payload):
    return jsonify({'success': False, 'error': 'Session is no longer valid'}), 401
