from flask import jsonify
from flask_jwt_extended import jwt_required, get_jwt
from . import main
from ..crud import dashboard_crud
from ..utils.errors import HaulbookError

@main.route('/dashboard', methods=['GET'])
@jwt_required()
def get_dashboard():
    claims = get_jwt()
    try:
        return jsonify({'success': True,
                        **dashboard_crud.get_dashboard_summary(claims['id'], claims['role'])}), 200
    except HaulbookError as e:
        return jsonify(e.to_dict()), e.status_code
