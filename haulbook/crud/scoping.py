from haulbook.utils.errors import NotFoundError, ForbiddenError, to_uuid

def apply_owner_scope(query, model, user_id, user_role):
    """Non super-admins only ever see their own rows"""
    if user_role != 'super_admin':
        query = query.filter(model.user_id == to_uuid(user_id, 'user_id'))
    return query

def get_owned(model, record_id, user_id, user_role, label, for_write=False):
    """
    Fetch one row by id and check the caller may touch it.

    A foreign row reads as missing; writing to it is refused outright.
    """
    record = model.query.get(to_uuid(record_id, f"{label.lower()} id"))
    if not record:
        raise NotFoundError(f"{label} not found")
    if user_role != 'super_admin' and record.user_id != to_uuid(user_id, 'user_id'):
        if for_write:
            raise ForbiddenError(f"Unauthorized to modify this {label.lower()}")
        raise NotFoundError(f"{label} not found")
    return record

def resolve_target_user(data, user_id, user_role):
    """Super-admins may act for another user through data['user_id']"""
    if user_role == 'super_admin' and data.get('user_id'):
        return to_uuid(data['user_id'], 'user_id')
    return to_uuid(user_id, 'user_id')
