from haulbook import db
from haulbook.models import User
from haulbook.utils.logging_utils import log_action
from haulbook.utils.errors import (HaulbookError, ValidationError, DuplicateKeyError, NotFoundError,
                                   require_super_admin, to_uuid)
from sqlalchemy.exc import SQLAlchemyError
import logging

logger = logging.getLogger(__name__)

ROLES = ('super_admin', 'user')
MIN_PASSWORD_LENGTH = 6

class UserError(HaulbookError):
    """Custom exception for user management"""
    pass

def serialize_user(user):
    return {
        'id': str(user.id),
        'username': user.username,
        'role': user.role,
        'address': user.address or '',
        'is_active': user.is_active is not False,
        'created_at': user.created_at.isoformat() if user.created_at else None,
    }

def get_user_by_id(user_id):
    user = User.query.get(to_uuid(user_id, 'user_id'))
    return serialize_user(user) if user else None

def get_all_users(user_role):
    require_super_admin(user_role, "Only super admins can view users")
    users = User.query.order_by(User.created_at.desc()).all()
    return [serialize_user(u) for u in users]

def create_user(data, user_role, current_user_id, ip_address, user_agent):
    try:
        require_super_admin(user_role, "Only super admins can create users")
        username = (data.get('username') or '').strip().lower()
        password = data.get('password') or ''
        role = data.get('role') or 'user'

        if not username or not password:
            raise ValidationError("Username and password are required")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if role not in ROLES:
            raise ValidationError(f"Invalid role: {role}")
        if User.query.filter_by(username=username).first():
            raise DuplicateKeyError("Username already exists")

        user = User(username=username, role=role, address=(data.get('address') or '').strip(), is_active=True)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()

        log_action(current_user_id, 'CREATE', 'users', user.id, None, serialize_user(user),
                   ip_address, user_agent)
        return user
    except HaulbookError:
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        logger.error(f"Database error creating user: {str(e)}")
        db.session.rollback()
        raise UserError("Failed to create user")

def deactivate_user(user_id, user_role, current_user_id, ip_address, user_agent):
    """Users own every business record, so removal only revokes login"""
    try:
        require_super_admin(user_role, "Only super admins can remove users")
        user = User.query.get(to_uuid(user_id, 'user_id'))
        if not user:
            raise NotFoundError("User not found")
        if user.id == to_uuid(current_user_id, 'user_id'):
            raise ValidationError("You cannot deactivate your own account")

        user.is_active = False
        db.session.commit()

        log_action(current_user_id, 'UPDATE', 'users', user.id, {'is_active': True}, {'is_active': False},
                   ip_address, user_agent)
        return user
    except HaulbookError:
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        logger.error(f"Database error deactivating user: {str(e)}")
        db.session.rollback()
        raise UserError("Failed to deactivate user")

def change_password(user_id, current_password, new_password, ip_address, user_agent):
    """
    Change user's password after verifying current password.

    Args:
        user_id: UUID of the user
        current_password: Current password for verification
        new_password: New password to set
        ip_address: Request IP
        user_agent: Request user agent
    """
    try:
        user = User.query.get(to_uuid(user_id, 'user_id'))
        if not user:
            raise NotFoundError("User not found")
        if not user.check_password(current_password or ''):
            raise ValidationError("Current password is incorrect")
        if len(new_password or '') < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"New password must be at least {MIN_PASSWORD_LENGTH} characters")

        user.set_password(new_password)
        db.session.commit()

        log_action(user_id, 'UPDATE', 'users', user.id, {'action': 'password_change'},
                   {'action': 'password_changed'}, ip_address, user_agent)
        logger.info(f"Password changed successfully for user {user_id}")
        return True
    except HaulbookError:
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        logger.error(f"Database error changing password: {str(e)}")
        db.session.rollback()
        raise UserError("Failed to change password")
