import pytest


ACCOUNT = {
    'title': 'Operating Account',
    'slug': 'Operating',
    'initial_balance': 1000,
    'currency': 'AED',
    'currency_symbol': 'AED',
}


@pytest.fixture
def account(client, auth_headers):
    response = client.post('/accounts/add', json=ACCOUNT, headers=auth_headers['admin'])
    assert response.status_code == 201
    return response.get_json()['account']


def post_txn(client, headers, account_id, **data):
    data.setdefault('details', 'ledger entry')
    return client.post('/transactions/add', json={'account_id': account_id, **data}, headers=headers)


def test_accounting_requires_super_admin(client, auth_headers):
    response = client.get('/accounts/list', headers=auth_headers['alice'])
    assert response.status_code == 403
    body = response.get_json()
    assert body['success'] is False
    assert body['error']

    response = client.post('/accounts/add', json=ACCOUNT, headers=auth_headers['alice'])
    assert response.status_code == 403


def test_account_created_with_lowercase_slug(account, client, auth_headers):
    assert account['slug'] == 'operating'
    assert account['current_balance'] == 1000.0

    by_slug = client.get('/accounts/operating', headers=auth_headers['admin'])
    assert by_slug.status_code == 200
    assert by_slug.get_json()['account']['id'] == account['id']


def test_duplicate_slug_conflicts(account, client, auth_headers):
    response = client.post('/accounts/add', json={**ACCOUNT, 'title': 'Another'}, headers=auth_headers['admin'])
    assert response.status_code == 409
    assert response.get_json()['success'] is False


def test_missing_account_fields(client, auth_headers):
    response = client.post('/accounts/add', json={'title': 'No slug'}, headers=auth_headers['admin'])
    assert response.status_code == 400
    assert response.get_json()['error'] == 'All fields are required'


def test_transactions_move_current_balance(account, client, auth_headers):
    admin = auth_headers['admin']
    assert post_txn(client, admin, account['id'], type='credit', amount=250).status_code == 201
    assert post_txn(client, admin, account['id'], type='debit', amount=100).status_code == 201

    current = client.get(f"/accounts/{account['id']}", headers=admin).get_json()['account']
    assert current['current_balance'] == 1150.0


def test_transfer_requires_destination(account, client, auth_headers):
    response = post_txn(client, auth_headers['admin'], account['id'], type='debit', amount=50,
                        debit_type='transfer')
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Destination is required for transfers'

    response = post_txn(client, auth_headers['admin'], account['id'], type='debit', amount=50,
                        debit_type='transfer', destination='Petty cash')
    assert response.status_code == 201
    assert response.get_json()['transaction']['destination'] == 'Petty cash'


def test_zero_amount_rejected(account, client, auth_headers):
    response = post_txn(client, auth_headers['admin'], account['id'], type='credit', amount=0)
    assert response.status_code == 400


def test_statement_over_period(account, client, auth_headers):
    admin = auth_headers['admin']
    post_txn(client, admin, account['id'], type='credit', amount=500, transaction_date='2024-01-01T12:00:00Z')
    post_txn(client, admin, account['id'], type='debit', amount=200, transaction_date='2024-01-10T12:00:00Z')
    post_txn(client, admin, account['id'], type='credit', amount=100, transaction_date='2024-02-01T12:00:00Z')

    response = client.get('/accounts/operating/statement?start_date=2024-01-01&end_date=2024-01-31',
                          headers=admin)
    assert response.status_code == 200
    body = response.get_json()

    assert body['summary'] == {
        'opening_balance': 1000.0,
        'closing_balance': 1300.0,
        'total_credit': 500.0,
        'total_debit': 200.0,
        'transaction_count': 2,
    }
    # Newest first
    assert [t['running_balance'] for t in body['transactions']] == [1300.0, 1500.0]


def test_transactions_listing_filters_by_type(account, client, auth_headers):
    admin = auth_headers['admin']
    post_txn(client, admin, account['id'], type='credit', amount=10)
    post_txn(client, admin, account['id'], type='debit', amount=4)

    response = client.get('/transactions/list?type=debit&account_slug=operating', headers=admin)
    assert response.status_code == 200
    rows = response.get_json()['transactions']
    assert len(rows) == 1
    assert rows[0]['debit'] == 4.0
