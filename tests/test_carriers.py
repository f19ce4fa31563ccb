from decimal import Decimal

import pytest

from haulbook import db
from haulbook.models import Carrier
from haulbook.crud import carrier_crud, car_crud, expense_crud
from haulbook.crud.car_crud import CarError
from haulbook.utils.errors import DuplicateKeyError, ForbiddenError, NotFoundError, ValidationError


def new_trip(user_id, role='user', **data):
    data.setdefault('date', '2024-03-10')
    return carrier_crud.create_carrier(data, user_id, role, '127.0.0.1', 'pytest')['carrier']


def add_car(carrier_id, user_id, company, amount, date='2024-03-10', role='user'):
    return car_crud.create_car(carrier_id, {
        'stock_no': f'STK-{company}-{amount}', 'name': 'Corolla', 'chassis': 'CH123',
        'amount': amount, 'company_name': company, 'date': date,
    }, user_id, role, '127.0.0.1', 'pytest')


def test_trip_numbers_are_generated_per_user(users):
    first = new_trip(users['alice'])
    second = new_trip(users['alice'])
    other = new_trip(users['bob'])

    assert first['trip_number'] == 'TRIP-001'
    assert second['trip_number'] == 'TRIP-002'
    assert other['trip_number'] == 'TRIP-001'
    assert carrier_crud.generate_next_trip_number(users['alice']) == 'TRIP-003'


def test_duplicate_trip_number_rejected(users):
    new_trip(users['alice'], trip_number='trip-050')
    with pytest.raises(DuplicateKeyError):
        new_trip(users['alice'], trip_number='TRIP-050')


def test_same_trip_number_is_scoped_to_owner(users):
    alice_trip = new_trip(users['alice'], trip_number='TRIP-007')
    bob_trip = new_trip(users['bob'], trip_number='TRIP-007')
    add_car(alice_trip['id'], users['alice'], 'ACME', 100)
    add_car(bob_trip['id'], users['bob'], 'ACME', 900)

    listing = carrier_crud.list_carriers(users['alice'], 'user', {'trip_number': 'TRIP-007'})
    assert [c['id'] for c in listing['carriers']] == [alice_trip['id']]
    assert listing['carriers'][0]['total_amount'] == 100.0

    everything = carrier_crud.list_carriers(users['admin'], 'super_admin', {'trip_number': 'TRIP-007'})
    assert everything['pagination']['total'] == 2


def test_unmatched_company_short_circuits(users):
    trip = new_trip(users['alice'])
    add_car(trip['id'], users['alice'], 'ACME', 100)

    listing = carrier_crud.list_carriers(users['alice'], 'user', {'company': 'NOBODY'})
    assert listing['carriers'] == []
    assert listing['pagination']['total'] == 0
    assert listing['totals']['total_cars'] == 0


def test_company_filter_keeps_only_matching_cars(users):
    trip = new_trip(users['alice'])
    empty_trip = new_trip(users['alice'])
    add_car(trip['id'], users['alice'], 'ACME', 1500)
    add_car(trip['id'], users['alice'], 'OTHER', 700)

    listing = carrier_crud.list_carriers(users['alice'], 'user', {'company': 'acme'})
    assert [c['id'] for c in listing['carriers']] == [trip['id']]
    carrier = listing['carriers'][0]
    assert carrier['car_count'] == 1
    assert carrier['total_amount'] == 1500.0
    assert listing['totals']['total_cars'] == 1

    unfiltered = carrier_crud.list_carriers(users['alice'], 'user', {})
    assert {c['id'] for c in unfiltered['carriers']} == {trip['id'], empty_trip['id']}


def test_car_date_range_filter(users):
    trip = new_trip(users['alice'], date='2024-03-01')
    add_car(trip['id'], users['alice'], 'ACME', 100, date='2024-03-05')
    add_car(trip['id'], users['alice'], 'ACME', 200, date='2024-04-05')

    listing = carrier_crud.list_carriers(users['alice'], 'user', {'start_date': '2024-04-01'})
    assert listing['carriers'][0]['car_count'] == 1
    assert listing['carriers'][0]['total_amount'] == 200.0


def test_missing_active_flag_counts_as_active(users):
    trip = new_trip(users['alice'])
    carrier = Carrier.query.first()
    carrier.is_active = None
    db.session.commit()

    active = carrier_crud.list_carriers(users['alice'], 'user', {'is_active': 'true'})
    inactive = carrier_crud.list_carriers(users['alice'], 'user', {'is_active': 'false'})
    assert len(active['carriers']) == 1
    assert active['carriers'][0]['is_active'] is True
    assert inactive['carriers'] == []

    assert carrier_crud.toggle_carrier_active(trip['id'], users['alice'], 'user', None, None) is False
    inactive = carrier_crud.list_carriers(users['alice'], 'user', {'is_active': 'false'})
    assert len(inactive['carriers']) == 1


def test_profit_is_amount_minus_expenses(users):
    trip = new_trip(users['alice'])
    add_car(trip['id'], users['alice'], 'ACME', '1500.10')
    add_car(trip['id'], users['alice'], 'ACME', '2499.95')
    expense_crud.create_carrier_expense(trip['id'], {'category': 'taxes', 'amount': '300.05'},
                                        users['alice'], 'user', None, None)

    carrier = carrier_crud.get_carrier(trip['id'], users['alice'], 'user')
    assert Decimal(str(carrier['total_amount'])) == Decimal('4000.05')
    assert Decimal(str(carrier['total_expense'])) == Decimal('300.05')
    assert Decimal(str(carrier['profit'])) == Decimal('3700.00')


def test_pagination_and_count_agree(users):
    for _ in range(5):
        new_trip(users['alice'])

    first = carrier_crud.list_carriers(users['alice'], 'user', {}, page=1, limit=2)
    last = carrier_crud.list_carriers(users['alice'], 'user', {}, page=3, limit=2)

    assert first['pagination']['total'] == 5
    assert first['pagination']['total_pages'] == 3
    assert first['pagination']['has_next_page'] is True
    assert len(first['carriers']) == 2
    assert len(last['carriers']) == 1
    assert last['pagination']['has_prev_page'] is True
    assert first['totals']['total_trips'] == 5


def test_foreign_carrier_reads_as_missing_and_writes_are_refused(users):
    trip = new_trip(users['alice'])
    with pytest.raises(NotFoundError):
        carrier_crud.get_carrier(trip['id'], users['bob'], 'user')
    with pytest.raises(ForbiddenError):
        carrier_crud.update_carrier(trip['id'], {'notes': 'mine now'}, users['bob'], 'user', None, None)


def test_only_super_admin_deletes_carriers(users):
    trip = new_trip(users['alice'])
    add_car(trip['id'], users['alice'], 'ACME', 100)

    with pytest.raises(ForbiddenError):
        carrier_crud.delete_carrier(trip['id'], users['alice'], 'user', None, None)

    carrier_crud.delete_carrier(trip['id'], users['admin'], 'super_admin', None, None)
    assert Carrier.query.count() == 0


def test_bulk_cars_are_all_or_nothing(users):
    trip = new_trip(users['alice'])
    rows = [
        {'stock_no': '1', 'name': 'A', 'chassis': 'X1', 'company_name': 'acme', 'amount': 10},
        {'stock_no': '2', 'name': 'B', 'chassis': '', 'company_name': 'acme', 'amount': 20},
    ]
    with pytest.raises(CarError) as exc:
        car_crud.create_multiple_cars(trip['id'], rows, users['alice'], 'user', None, None)
    assert 'Car 2' in str(exc.value)
    assert car_crud.get_cars_by_carrier(trip['id'], users['alice'], 'user') == []

    rows[1]['chassis'] = 'X2'
    cars = car_crud.create_multiple_cars(trip['id'], rows, users['alice'], 'user', None, None)
    assert [c.company_name for c in cars] == ['ACME', 'ACME']


def test_cars_only_on_trip_carriers(users):
    company = carrier_crud.create_carrier({'type': 'company', 'name': 'acme'}, users['alice'], 'user',
                                          None, None)['carrier']
    assert company['name'] == 'ACME'
    with pytest.raises(ValidationError):
        add_car(company['id'], users['alice'], 'ACME', 100)


def walk_pages(user_id, filters, limit=1):
    seen = []
    page = 1
    while True:
        listing = carrier_crud.list_carriers(user_id, 'user', filters, page=page, limit=limit)
        seen.extend(c['id'] for c in listing['carriers'])
        if not listing['pagination']['has_next_page']:
            return seen, listing['pagination']
        page += 1


def test_company_filter_pagination_counts_each_trip_once(users):
    acme_trips = []
    for day in range(1, 6):
        trip = new_trip(users['alice'], date=f'2024-03-0{day}')
        if day <= 3:
            add_car(trip['id'], users['alice'], 'ACME', 100 * day)
            add_car(trip['id'], users['alice'], 'ACME', 100 * day + 1)
            acme_trips.append(trip['id'])
        else:
            add_car(trip['id'], users['alice'], 'OTHER', 50)

    seen, pagination = walk_pages(users['alice'], {'company': 'ACME'})
    assert pagination['total'] == 3
    assert pagination['total_pages'] == 3
    assert len(seen) == len(set(seen)) == pagination['total']
    assert set(seen) == set(acme_trips)


def test_date_filter_pagination_counts_each_trip_once(users):
    april_trips = []
    for day in range(1, 6):
        trip = new_trip(users['alice'], date=f'2024-03-0{day}')
        car_date = '2024-04-10' if day % 2 else '2024-03-10'
        add_car(trip['id'], users['alice'], 'ACME', 100, date=car_date)
        add_car(trip['id'], users['alice'], 'OTHER', 200, date=car_date)
        if day % 2:
            april_trips.append(trip['id'])

    seen, pagination = walk_pages(users['alice'], {'start_date': '2024-04-01', 'end_date': '2024-04-30'})
    assert pagination['total'] == 3
    assert len(seen) == len(set(seen)) == pagination['total']
    assert set(seen) == set(april_trips)


def test_owner_username_only_in_admin_listing(users):
    new_trip(users['alice'])

    admin_listing = carrier_crud.list_carriers(users['admin'], 'super_admin', {})
    assert admin_listing['carriers'][0]['user']['username'] == 'alice'

    own_listing = carrier_crud.list_carriers(users['alice'], 'user', {})
    assert 'user' not in own_listing['carriers'][0]


def test_sync_cars_date_copies_trip_date(users):
    trip = new_trip(users['alice'], date='2024-06-15')
    add_car(trip['id'], users['alice'], 'ACME', 100, date='2024-06-01')
    add_car(trip['id'], users['alice'], 'ACME', 200, date='2024-06-20')

    with pytest.raises(ForbiddenError):
        carrier_crud.sync_cars_date(trip['id'], users['bob'], 'user', None, None)

    result = carrier_crud.sync_cars_date(trip['id'], users['alice'], 'user', None, None)
    assert result['cars_updated'] == 2
    carrier = Carrier.query.first()
    assert {car.date for car in carrier.cars} == {carrier.date}

    again = carrier_crud.sync_cars_date(trip['id'], users['alice'], 'user', None, None)
    assert again['cars_updated'] == 0
