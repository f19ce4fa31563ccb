from haulbook.models import DetailedLog, User
from haulbook.utils.errors import to_uuid
from haulbook.utils.pagination import normalize_page, build_pagination
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import or_, desc, asc
import logging

logger = logging.getLogger(__name__)

SORTABLE_COLUMNS = ('created_at', 'action', 'table_name')


def serialize_log(log):
    return {
        'id': str(log.id),
        'user_id': str(log.user_id) if log.user_id else None,
        'user_name': log.user.username if log.user else "Unknown",
        'action': log.action,
        'table_name': log.table_name,
        'record_id': str(log.record_id),
        'old_values': log.old_values,
        'new_values': log.new_values,
        'ip_address': log.ip_address,
        'user_agent': log.user_agent,
        'created_at': log.created_at.isoformat() if log.created_at else None
    }


def get_all_logs_paginated(user_id, user_role, page=1, limit=None, sort_by='created_at', sort_dir='desc',
                           q=None, filters=None):
    """Audit trail; super admins see everything, other users only their own actions"""
    try:
        filters = filters or {}
        page, limit = normalize_page(page, limit)

        query = DetailedLog.query
        if user_role != 'super_admin':
            query = query.filter(DetailedLog.user_id == to_uuid(user_id, 'user_id'))

        if q:
            search_term = f"%{q}%"
            query = query.outerjoin(User, DetailedLog.user_id == User.id).filter(
                or_(
                    User.username.ilike(search_term),
                    DetailedLog.action.ilike(search_term),
                    DetailedLog.table_name.ilike(search_term),
                    DetailedLog.ip_address.ilike(search_term)
                )
            )

        if filters.get('action'):
            query = query.filter(DetailedLog.action == filters['action'])
        if filters.get('table_name'):
            query = query.filter(DetailedLog.table_name == filters['table_name'])

        total = query.count()

        sort_column = getattr(DetailedLog, sort_by if sort_by in SORTABLE_COLUMNS else 'created_at')
        if (sort_dir or 'desc').lower() == 'desc':
            query = query.order_by(desc(sort_column))
        else:
            query = query.order_by(asc(sort_column))

        logs = query.offset((page - 1) * limit).limit(limit).all()
        return [serialize_log(log) for log in logs], build_pagination(page, limit, total)

    except SQLAlchemyError as e:
        logger.error(f"Database error: {str(e)}")
        raise
