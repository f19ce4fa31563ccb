import math
from flask import current_app, has_app_context
from haulbook.config import Config

def normalize_page(page, limit):
    """Coerce page/limit query values to positive ints, falling back to the configured size"""
    default_size = Config.DEFAULT_PAGE_SIZE
    max_size = Config.MAX_PAGE_SIZE
    if has_app_context():
        default_size = current_app.config.get('DEFAULT_PAGE_SIZE', default_size)
        max_size = current_app.config.get('MAX_PAGE_SIZE', max_size)
    try:
        page = int(page)
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        limit = default_size
    page = max(page, 1)
    limit = min(max(limit, 1), max_size)
    return page, limit

def build_pagination(page, limit, total):
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        'page': page,
        'limit': limit,
        'total': total,
        'total_pages': total_pages,
        'has_next_page': page < total_pages,
        'has_prev_page': page > 1,
    }
