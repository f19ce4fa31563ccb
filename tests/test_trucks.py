import pytest

from haulbook.models import Expense
from haulbook.crud import carrier_crud, expense_crud, truck_crud
from haulbook.crud.expense_crud import ExpenseError
from haulbook.utils.errors import ValidationError


def make_truck(user_id, **data):
    data.setdefault('name', 'Volvo FH')
    data.setdefault('number', 'abc-123')
    return truck_crud.create_truck(data, user_id, 'user', None, None)


def test_trip_distance_raises_maintenance_warning(users):
    truck = make_truck(users['alice'], current_meter_reading=400, last_maintenance_km=0)
    assert truck.number == 'ABC-123'
    assert truck.maintenance_warning is None

    result = carrier_crud.create_carrier({'truck_id': str(truck.id), 'trip_distance': 250},
                                         users['alice'], 'user', None, None)
    assert 'maintenance_warning' in result
    assert result['maintenance_warning'].startswith('Maintenance due soon!')

    carrier_crud.create_carrier({'truck_id': str(truck.id), 'trip_distance': 500},
                                users['alice'], 'user', None, None)
    serialized = truck_crud.get_truck(truck.id, users['alice'], 'user')
    assert serialized['current_meter_reading'] == 1150.0
    assert serialized['maintenance']['status'] == 'overdue'


def test_maintenance_expense_resets_interval(users):
    truck = make_truck(users['alice'], current_meter_reading=1300, last_maintenance_km=0)
    assert truck.maintenance_warning.startswith('Maintenance overdue!')

    expense_crud.create_truck_expense(truck.id, {'category': 'maintenance', 'amount': 900,
                                                 'meter_reading': 1300},
                                      users['alice'], 'user', None, None)
    serialized = truck_crud.get_truck(truck.id, users['alice'], 'user')
    assert serialized['last_maintenance_km'] == 1300.0
    assert serialized['maintenance']['next_maintenance_km'] == 2300.0
    assert serialized['maintenance_warning'] is None


def test_trip_fuel_is_mirrored_on_truck(users):
    truck = make_truck(users['alice'])
    trip = carrier_crud.create_carrier({'truck_id': str(truck.id)}, users['alice'], 'user',
                                       None, None)['carrier']

    fuel = expense_crud.create_carrier_expense(trip['id'], {'category': 'fuel', 'liters': 100,
                                                            'price_per_liter': '2.5'},
                                               users['alice'], 'user', None, None)
    assert float(fuel.amount) == 250.0

    truck_expenses = expense_crud.get_truck_expenses(truck.id, users['alice'], 'user')
    assert len(truck_expenses['expenses']) == 1
    mirror = truck_expenses['expenses'][0]
    assert mirror['synced_from_expense_id'] == str(fuel.id)
    assert truck_expenses['totals']['by_category']['fuel'] == 250.0

    with pytest.raises(ValidationError):
        expense_crud.delete_truck_expense(truck.id, mirror['id'], users['alice'], 'user', None, None)

    expense_crud.delete_carrier_expense(trip['id'], fuel.id, users['alice'], 'user', None, None)
    assert Expense.query.count() == 0


def test_expense_category_rules(users):
    truck = make_truck(users['alice'])
    trip = carrier_crud.create_carrier({}, users['alice'], 'user', None, None)['carrier']

    with pytest.raises(ExpenseError):
        expense_crud.create_truck_expense(truck.id, {'category': 'taxes', 'amount': 10},
                                          users['alice'], 'user', None, None)
    with pytest.raises(ExpenseError):
        expense_crud.create_carrier_expense(trip['id'], {'category': 'driver_rent', 'amount': 10},
                                            users['alice'], 'user', None, None)
    with pytest.raises(ExpenseError):
        expense_crud.create_carrier_expense(trip['id'], {'category': 'fuel'},
                                            users['alice'], 'user', None, None)


def test_driver_rent_uses_owner_drivers(users):
    trip = carrier_crud.create_carrier({}, users['alice'], 'user', None, None)['carrier']
    driver = truck_crud.create_driver({'name': 'Imran'}, users['alice'], 'user', None, None)
    other = truck_crud.create_driver({'name': 'Sam'}, users['bob'], 'user', None, None)

    expense = expense_crud.create_carrier_expense(trip['id'], {'category': 'driver_rent', 'amount': 75,
                                                               'driver_id': str(driver.id)},
                                                  users['alice'], 'user', None, None)
    assert expense_crud.serialize_expense(expense)['driver']['name'] == 'Imran'

    with pytest.raises(ValidationError):
        expense_crud.create_carrier_expense(trip['id'], {'category': 'driver_rent', 'amount': 75,
                                                         'driver_id': str(other.id)},
                                            users['alice'], 'user', None, None)


def test_truck_with_trips_cannot_be_deleted(users):
    truck = make_truck(users['alice'])
    carrier_crud.create_carrier({'truck_id': str(truck.id)}, users['alice'], 'user', None, None)

    with pytest.raises(ValidationError):
        truck_crud.delete_truck(truck.id, users['alice'], 'user', None, None)
