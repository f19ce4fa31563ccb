import pytest
from flask_jwt_extended import create_access_token

from haulbook import create_app, db
from haulbook.config import TestingConfig
from haulbook.models import User


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _make_user(username, role):
    user = User(username=username, role=role, is_active=True)
    user.set_password('secret123')
    db.session.add(user)
    return user


@pytest.fixture
def users(app):
    """Ids (as strings) of a super admin and two ordinary users"""
    admin = _make_user('admin', 'super_admin')
    alice = _make_user('alice', 'user')
    bob = _make_user('bob', 'user')
    db.session.commit()
    return {'admin': str(admin.id), 'alice': str(alice.id), 'bob': str(bob.id)}


@pytest.fixture
def auth_headers(app, users):
    """Authorization headers per seeded user, keyed like `users`"""
    roles = {'admin': 'super_admin', 'alice': 'user', 'bob': 'user'}
    headers = {}
    for name, user_id in users.items():
        token = create_access_token(
            identity=user_id,
            additional_claims={'id': user_id, 'username': name, 'role': roles[name]}
        )
        headers[name] = {'Authorization': f'Bearer {token}'}
    return headers
