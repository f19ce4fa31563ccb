from flask import jsonify, request
from flask_jwt_extended import jwt_required, get_jwt
from . import main
from ..crud import log_crud

@main.route('/logs/list', methods=['GET'])
@jwt_required()
def list_logs():
    claims = get_jwt()

    # Column filters
    filters = {k.replace('filter_', ''): v for k, v in request.args.items()
               if k.startswith('filter_') and v}

    try:
        items, pagination = log_crud.get_all_logs_paginated(
            user_id=claims['id'],
            user_role=claims['role'],
            page=request.args.get('page', 1),
            limit=request.args.get('limit'),
            sort_by=request.args.get('sort_by', 'created_at'),
            sort_dir=request.args.get('sort_dir', 'desc'),
            q=request.args.get('q', ''),
            filters=filters,
        )
        return jsonify({'success': True, 'logs': items, 'pagination': pagination}), 200
    except Exception as e:
        return jsonify({'success': False, 'error': 'Failed to fetch logs', 'message': str(e)}), 500
