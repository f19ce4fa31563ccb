import uuid


class HaulbookError(Exception):
    """Base for every error reported back to API callers"""
    status_code = 400

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {'success': False, 'error': self.message}


class UnauthorizedError(HaulbookError):
    status_code = 401


class ForbiddenError(HaulbookError):
    status_code = 403


class NotFoundError(HaulbookError):
    status_code = 404


class ValidationError(HaulbookError):
    status_code = 400


class DuplicateKeyError(ValidationError):
    status_code = 409


def to_uuid(value, field='id'):
    """Coerce an id coming from a URL, token claim or payload into a UUID"""
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise ValidationError(f"Invalid {field}: {value}")


def require_super_admin(user_role, message="Access denied: super admin required"):
    if user_role != 'super_admin':
        raise ForbiddenError(message)
