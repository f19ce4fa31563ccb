from haulbook import db
from haulbook.models import User
from haulbook.utils.errors import to_uuid


def test_login_returns_token(client, users):
    response = client.post('/auth/login', json={'username': 'Alice', 'password': 'secret123'})
    assert response.status_code == 200
    body = response.get_json()
    assert body['success'] is True
    assert body['user']['role'] == 'user'

    me = client.get('/auth/me', headers={'Authorization': f"Bearer {body['token']}"})
    assert me.status_code == 200
    assert me.get_json()['user']['username'] == 'alice'


def test_login_with_wrong_password(client, users):
    response = client.post('/auth/login', json={'username': 'alice', 'password': 'nope'})
    assert response.status_code == 401
    assert response.get_json() == {'success': False, 'error': 'Invalid credentials'}


def test_missing_token_is_json_401(client):
    response = client.get('/carriers/list')
    assert response.status_code == 401
    assert response.get_json()['success'] is False


def test_deactivated_user_token_is_refused(client, users, auth_headers):
    user = db.session.get(User, to_uuid(users['bob']))
    user.is_active = False
    db.session.commit()

    response = client.get('/carriers/list', headers=auth_headers['bob'])
    assert response.status_code == 401


def test_carrier_flow_over_http(client, auth_headers):
    alice = auth_headers['alice']
    created = client.post('/carriers/add', json={'date': '2024-03-10'}, headers=alice)
    assert created.status_code == 201
    carrier = created.get_json()['carrier']
    assert carrier['trip_number'] == 'TRIP-001'

    car = client.post(f"/carriers/{carrier['id']}/cars", headers=alice, json={
        'stock_no': 'S-9', 'name': 'Patrol', 'chassis': 'CH-9', 'amount': 800, 'company_name': 'acme'
    })
    assert car.status_code == 201

    listing = client.get('/carriers/list?company=ACME', headers=alice).get_json()
    assert listing['pagination']['total'] == 1
    assert listing['carriers'][0]['total_amount'] == 800.0

    next_number = client.get('/carriers/next-trip-number', headers=alice).get_json()
    assert next_number['trip_number'] == 'TRIP-002'


def test_foreign_carrier_is_404(client, auth_headers):
    carrier = client.post('/carriers/add', json={}, headers=auth_headers['alice']).get_json()['carrier']

    response = client.get(f"/carriers/{carrier['id']}", headers=auth_headers['bob'])
    assert response.status_code == 404
    assert response.get_json()['success'] is False

    response = client.get(f"/carriers/{carrier['id']}", headers=auth_headers['admin'])
    assert response.status_code == 200


def test_malformed_id_is_rejected(client, auth_headers):
    response = client.get('/carriers/not-a-uuid', headers=auth_headers['alice'])
    assert response.status_code == 400


def test_user_management_is_admin_only(client, auth_headers):
    new_user = {'username': 'Carol', 'password': 'secret123', 'role': 'user'}

    response = client.post('/users/add', json=new_user, headers=auth_headers['alice'])
    assert response.status_code == 403

    response = client.post('/users/add', json=new_user, headers=auth_headers['admin'])
    assert response.status_code == 201
    assert response.get_json()['user']['username'] == 'carol'

    response = client.post('/users/add', json=new_user, headers=auth_headers['admin'])
    assert response.status_code == 409

    login = client.post('/auth/login', json={'username': 'carol', 'password': 'secret123'})
    assert login.status_code == 200


def test_change_password(client, auth_headers):
    response = client.post('/auth/change-password', headers=auth_headers['alice'],
                           json={'current_password': 'wrong', 'new_password': 'another1'})
    assert response.status_code in (400, 401)

    response = client.post('/auth/change-password', headers=auth_headers['alice'],
                           json={'current_password': 'secret123', 'new_password': 'another1'})
    assert response.status_code == 200

    login = client.post('/auth/login', json={'username': 'alice', 'password': 'another1'})
    assert login.status_code == 200
