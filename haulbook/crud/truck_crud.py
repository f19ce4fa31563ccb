from haulbook import db
from haulbook.models import Truck, Driver, Carrier, Expense
from haulbook.crud.scoping import apply_owner_scope, get_owned, resolve_target_user
from haulbook.services.carrier_query import parse_active_filter, active_condition, contains_ci
from haulbook.services.maintenance import maintenance_status, maintenance_warning, DEFAULT_INTERVAL_KM
from haulbook.utils.logging_utils import log_action
from haulbook.utils.errors import HaulbookError, ValidationError, DuplicateKeyError, to_uuid
from haulbook.utils.date_utils import utc_now
from haulbook.utils.money import to_decimal, as_float
from haulbook.utils.pagination import normalize_page, build_pagination
from sqlalchemy import or_, func
import logging

logger = logging.getLogger(__name__)

class TruckError(HaulbookError):
    """Custom exception for truck and driver operations"""
    pass

def serialize_driver(driver):
    return {
        'id': str(driver.id),
        'user_id': str(driver.user_id),
        'name': driver.name,
        'phone': driver.phone,
        'license_number': driver.license_number,
        'email': driver.email,
        'address': driver.address,
    }

def serialize_truck(truck, include_user=False):
    result = {
        'id': str(truck.id),
        'user_id': str(truck.user_id),
        'name': truck.name,
        'number': truck.number,
        'current_meter_reading': float(truck.current_meter_reading or 0),
        'maintenance_interval': float(truck.maintenance_interval or DEFAULT_INTERVAL_KM),
        'last_maintenance_km': float(truck.last_maintenance_km or 0),
        'last_maintenance_date': truck.last_maintenance_date.isoformat() if truck.last_maintenance_date else None,
        'maintenance_warning': truck.maintenance_warning,
        'maintenance': maintenance_status(
            truck.current_meter_reading, truck.last_maintenance_km, truck.maintenance_interval
        ),
        'is_active': truck.is_active is not False,
        'drivers': [serialize_driver(d) for d in truck.drivers],
        'created_at': truck.created_at.isoformat() if truck.created_at else None,
    }
    if include_user and truck.user:
        result['user'] = {'id': str(truck.user.id), 'username': truck.user.username, 'role': truck.user.role}
    return result

def _resolve_drivers(driver_ids, owner_id, user_role):
    drivers = []
    for driver_id in driver_ids or []:
        driver = Driver.query.get(to_uuid(driver_id, 'driver id'))
        if not driver:
            raise ValidationError(f"Driver {driver_id} not found")
        if user_role != 'super_admin' and driver.user_id != owner_id:
            raise ValidationError("Selected driver does not belong to this user")
        drivers.append(driver)
    return drivers

def refresh_maintenance_warning(truck):
    """Store (or clear) the warning for the truck's current reading; caller commits"""
    status = maintenance_status(truck.current_meter_reading, truck.last_maintenance_km,
                                truck.maintenance_interval)
    truck.maintenance_warning = maintenance_warning(status)
    if status['status'] != 'ok':
        logger.warning(f"Truck {truck.name} ({truck.number}): {truck.maintenance_warning}")
    return status

def record_trip_distance(truck, distance):
    """Advance the meter by a trip's distance; caller commits"""
    truck.current_meter_reading = to_decimal(truck.current_meter_reading) + to_decimal(distance)
    return refresh_maintenance_warning(truck)

def record_maintenance(truck, meter_reading, maintenance_date):
    """A maintenance service resets the interval from the serviced reading; caller commits"""
    km = to_decimal(meter_reading, None)
    if km is None:
        km = to_decimal(truck.current_meter_reading)
    truck.last_maintenance_km = km
    truck.last_maintenance_date = maintenance_date or utc_now()
    truck.current_meter_reading = km
    return refresh_maintenance_warning(truck)

def get_all_trucks(user_id, user_role, filters=None):
    filters = filters or {}
    try:
        query = Truck.query
        if user_role == 'super_admin' and filters.get('user_id'):
            query = query.filter(Truck.user_id == to_uuid(filters['user_id'], 'user_id'))
        else:
            query = apply_owner_scope(query, Truck, user_id, user_role)

        state = parse_active_filter(filters.get('is_active'))
        if state:
            query = query.filter(active_condition(Truck.is_active, state))

        search = (filters.get('search') or '').strip()
        if search:
            query = query.filter(or_(contains_ci(Truck.name, search), contains_ci(Truck.number, search)))

        trucks = query.order_by(Truck.name.asc()).all()
        return [serialize_truck(t, include_user=user_role == 'super_admin') for t in trucks]
    except HaulbookError:
        raise
    except ValueError as e:
        raise TruckError(str(e))
    except Exception as e:
        logger.error(f"Error getting trucks: {str(e)}")
        raise TruckError("Failed to retrieve trucks")

def get_truck(truck_id, user_id, user_role):
    truck = get_owned(Truck, truck_id, user_id, user_role, 'Truck')
    return serialize_truck(truck, include_user=user_role == 'super_admin')

def create_truck(data, user_id, user_role, ip_address, user_agent):
    try:
        owner_id = resolve_target_user(data, user_id, user_role)
        name = (data.get('name') or '').strip()
        number = (data.get('number') or '').strip().upper()
        if not name or not number:
            raise ValueError("Truck name and number are required")

        current = to_decimal(data.get('current_meter_reading'))
        truck = Truck(
            user_id=owner_id,
            name=name,
            number=number,
            current_meter_reading=current,
            maintenance_interval=to_decimal(data.get('maintenance_interval'), None) or DEFAULT_INTERVAL_KM,
            last_maintenance_km=to_decimal(data.get('last_maintenance_km'), current),
            is_active=True
        )
        truck.drivers = _resolve_drivers(data.get('drivers'), owner_id, user_role)
        refresh_maintenance_warning(truck)

        db.session.add(truck)
        db.session.commit()

        log_action(user_id, 'CREATE', 'trucks', truck.id, None, serialize_truck(truck),
                   ip_address, user_agent)
        return truck
    except HaulbookError:
        db.session.rollback()
        raise
    except ValueError as e:
        db.session.rollback()
        logger.error(f"Validation error: {str(e)}")
        raise TruckError(str(e))
    except Exception as e:
        logger.error(f"Error creating truck: {str(e)}")
        db.session.rollback()
        raise TruckError("Failed to create truck")

def update_truck(truck_id, data, user_id, user_role, ip_address, user_agent):
    try:
        truck = get_owned(Truck, truck_id, user_id, user_role, 'Truck', for_write=True)
        old_values = serialize_truck(truck)

        if 'name' in data:
            truck.name = (data['name'] or '').strip() or truck.name
        if 'number' in data:
            truck.number = (data['number'] or '').strip().upper() or truck.number
        if 'current_meter_reading' in data:
            truck.current_meter_reading = to_decimal(data['current_meter_reading'])
        if 'maintenance_interval' in data:
            truck.maintenance_interval = to_decimal(data['maintenance_interval'], None) or DEFAULT_INTERVAL_KM
        if 'last_maintenance_km' in data:
            truck.last_maintenance_km = to_decimal(data['last_maintenance_km'])
        if 'is_active' in data:
            truck.is_active = bool(data['is_active'])
        if 'drivers' in data:
            truck.drivers = _resolve_drivers(data['drivers'], truck.user_id, user_role)
        refresh_maintenance_warning(truck)

        db.session.commit()

        log_action(user_id, 'UPDATE', 'trucks', truck.id, old_values, data, ip_address, user_agent)
        return truck
    except HaulbookError:
        db.session.rollback()
        raise
    except ValueError as e:
        db.session.rollback()
        raise TruckError(str(e))
    except Exception as e:
        logger.error(f"Error updating truck {truck_id}: {str(e)}")
        db.session.rollback()
        raise TruckError("Failed to update truck")

def delete_truck(truck_id, user_id, user_role, ip_address, user_agent):
    try:
        truck = get_owned(Truck, truck_id, user_id, user_role, 'Truck', for_write=True)
        if Carrier.query.filter_by(truck_id=truck.id).count():
            raise ValidationError("Truck is linked to carrier trips and cannot be deleted")

        old_values = serialize_truck(truck)
        record_id = truck.id
        for expense in list(truck.expenses):
            db.session.delete(expense)
        db.session.delete(truck)
        db.session.commit()

        log_action(user_id, 'DELETE', 'trucks', record_id, old_values, None, ip_address, user_agent)
        return True
    except HaulbookError:
        db.session.rollback()
        raise
    except Exception as e:
        logger.error(f"Error deleting truck {truck_id}: {str(e)}")
        db.session.rollback()
        raise TruckError("Failed to delete truck")

def get_drivers(user_id, user_role):
    query = apply_owner_scope(Driver.query, Driver, user_id, user_role)
    return [serialize_driver(d) for d in query.order_by(Driver.name.asc()).all()]

def get_driver(driver_id, user_id, user_role):
    driver = get_owned(Driver, driver_id, user_id, user_role, 'Driver')
    result = serialize_driver(driver)
    if user_role == 'super_admin' and driver.user:
        result['user'] = {'id': str(driver.user.id), 'username': driver.user.username, 'role': driver.user.role}
    result['trucks'] = [{'id': str(t.id), 'name': t.name, 'number': t.number} for t in driver.trucks]
    return result

def _check_driver_name(name, owner_id, exclude_id=None):
    query = Driver.query.filter(Driver.user_id == owner_id, Driver.name == name)
    if exclude_id:
        query = query.filter(Driver.id != exclude_id)
    if query.first():
        raise DuplicateKeyError(f'Driver "{name}" already exists for this user. Please use a different name.')

def create_driver(data, user_id, user_role, ip_address, user_agent):
    try:
        name = (data.get('name') or '').strip()
        if not name:
            raise ValueError("Driver name is required")
        owner_id = resolve_target_user(data, user_id, user_role)
        _check_driver_name(name, owner_id)

        driver = Driver(
            user_id=owner_id,
            name=name,
            phone=(data.get('phone') or '').strip() or None,
            license_number=(data.get('license_number') or '').strip() or None,
            email=(data.get('email') or '').strip() or None,
            address=(data.get('address') or '').strip() or None
        )
        db.session.add(driver)
        db.session.commit()

        log_action(user_id, 'CREATE', 'drivers', driver.id, None, serialize_driver(driver),
                   ip_address, user_agent)
        return driver
    except HaulbookError:
        db.session.rollback()
        raise
    except ValueError as e:
        db.session.rollback()
        raise TruckError(str(e))
    except Exception as e:
        logger.error(f"Error creating driver: {str(e)}")
        db.session.rollback()
        raise TruckError("Failed to create driver")

def update_driver(driver_id, data, user_id, user_role, ip_address, user_agent):
    try:
        driver = get_owned(Driver, driver_id, user_id, user_role, 'Driver', for_write=True)
        name = (data.get('name') or '').strip()
        if not name:
            raise ValueError("Driver name is required")
        if name != driver.name:
            _check_driver_name(name, driver.user_id, exclude_id=driver.id)

        old_values = serialize_driver(driver)
        driver.name = name
        driver.phone = (data.get('phone') or '').strip() or None
        driver.email = (data.get('email') or '').strip() or None
        driver.license_number = (data.get('license_number') or '').strip() or None
        driver.address = (data.get('address') or '').strip() or None
        db.session.commit()

        log_action(user_id, 'UPDATE', 'drivers', driver.id, old_values, serialize_driver(driver),
                   ip_address, user_agent)
        return driver
    except HaulbookError:
        db.session.rollback()
        raise
    except ValueError as e:
        db.session.rollback()
        raise TruckError(str(e))
    except Exception as e:
        logger.error(f"Error updating driver {driver_id}: {str(e)}")
        db.session.rollback()
        raise TruckError("Failed to update driver")

def delete_driver(driver_id, user_id, user_role, ip_address, user_agent):
    """
    Delete a driver who is not assigned to any truck.

    Rent expenses already paid to the driver stay on their trips, detached from the driver.
    """
    try:
        driver = get_owned(Driver, driver_id, user_id, user_role, 'Driver', for_write=True)
        truck_count = len(driver.trucks)
        if truck_count:
            raise ValidationError(
                f"Cannot delete driver. This driver is assigned to {truck_count} truck(s). "
                "Please remove the driver from trucks first."
            )

        old_values = serialize_driver(driver)
        record_id = driver.id
        Expense.query.filter_by(driver_id=driver.id).update({'driver_id': None}, synchronize_session='fetch')
        db.session.delete(driver)
        db.session.commit()

        log_action(user_id, 'DELETE', 'drivers', record_id, old_values, None, ip_address, user_agent)
        return True
    except HaulbookError:
        db.session.rollback()
        raise
    except Exception as e:
        logger.error(f"Error deleting driver {driver_id}: {str(e)}")
        db.session.rollback()
        raise TruckError("Failed to delete driver")

def get_driver_rent_payments(driver_id, user_id, user_role, page=1, limit=None):
    """Paginated driver_rent expenses paid to one driver, newest first, with the trip each belongs to"""
    driver = get_owned(Driver, driver_id, user_id, user_role, 'Driver')
    try:
        page, limit = normalize_page(page, limit)
        query = Expense.query.filter(Expense.category == 'driver_rent', Expense.driver_id == driver.id)

        total = query.count()
        total_amount = query.with_entities(func.coalesce(func.sum(Expense.amount), 0)).scalar()
        expenses = query.order_by(Expense.date.desc(), Expense.created_at.desc()) \
            .offset((page - 1) * limit).limit(limit).all()

        payments = []
        for expense in expenses:
            carrier = expense.carrier
            payments.append({
                'id': str(expense.id),
                'amount': as_float(expense.amount),
                'date': expense.date.isoformat() if expense.date else None,
                'details': expense.details or '',
                'driver': {'id': str(driver.id), 'name': driver.name},
                'trip': {
                    'id': str(carrier.id),
                    'trip_number': carrier.trip_number or carrier.name or 'N/A',
                    'date': carrier.date.isoformat() if carrier.date else None,
                    'truck_name': carrier.truck.name if carrier.truck else '',
                    'truck_number': carrier.truck.number if carrier.truck else '',
                } if carrier else None,
            })

        return {
            'driver': serialize_driver(driver),
            'payments': payments,
            'pagination': build_pagination(page, limit, total),
            'total_amount': as_float(to_decimal(total_amount)),
        }
    except HaulbookError:
        raise
    except Exception as e:
        logger.error(f"Error getting rent payments for driver {driver_id}: {str(e)}")
        raise TruckError("Failed to get driver rent payments")
