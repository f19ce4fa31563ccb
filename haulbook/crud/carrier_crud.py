from haulbook import db
from haulbook.models import Carrier, Car, Truck, Expense
from haulbook.crud.scoping import get_owned, resolve_target_user
from haulbook.crud.truck_crud import record_trip_distance
from haulbook.crud.expense_crud import recompute_carrier_total_expense
from haulbook.services.carrier_query import (
    normalize_criteria, build_carrier_filter, build_car_filter, car_match_conditions
)
from haulbook.services.numbering import next_trip_number
from haulbook.utils.logging_utils import log_action
from haulbook.utils.errors import (
    HaulbookError, ValidationError, DuplicateKeyError, require_super_admin, to_uuid
)
from haulbook.utils.date_utils import parse_datetime, utc_now
from haulbook.utils.money import to_decimal, as_float, ZERO
from haulbook.utils.pagination import normalize_page, build_pagination
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
import logging

logger = logging.getLogger(__name__)

class CarrierError(HaulbookError):
    """Custom exception for carrier operations"""
    pass

def serialize_car(car):
    return {
        'id': str(car.id),
        'carrier_id': str(car.carrier_id),
        'user_id': str(car.user_id),
        'stock_no': car.stock_no,
        'name': car.name,
        'chassis': car.chassis,
        'amount': as_float(car.amount),
        'company_name': car.company_name or '',
        'date': car.date.isoformat() if car.date else None,
        'created_at': car.created_at.isoformat() if car.created_at else None,
    }

def serialize_carrier(carrier, cars=None, include_user=False):
    """
    Carrier record plus the figures derived from the cars passed in.

    total_amount, car_count and profit always come from `cars`; nothing cached on the
    carrier row is trusted for them.
    """
    cars = cars if cars is not None else list(carrier.cars)
    total_amount = sum((to_decimal(c.amount) for c in cars), ZERO)
    total_expense = to_decimal(carrier.total_expense)

    result = {
        'id': str(carrier.id),
        'type': carrier.type,
        'trip_number': carrier.trip_number,
        'name': carrier.name,
        'date': carrier.date.isoformat() if carrier.date else None,
        'user_id': str(carrier.user_id),
        'total_expense': as_float(total_expense),
        'is_active': carrier.is_active is not False,
        'truck_id': str(carrier.truck_id) if carrier.truck_id else None,
        'truck': {
            'id': str(carrier.truck.id),
            'name': carrier.truck.name,
            'number': carrier.truck.number,
            'drivers': [{'id': str(d.id), 'name': d.name} for d in carrier.truck.drivers],
        } if carrier.truck else None,
        'distance': float(carrier.distance) if carrier.distance is not None else None,
        'meter_reading_at_trip': float(carrier.meter_reading_at_trip) if carrier.meter_reading_at_trip is not None else None,
        'carrier_name': carrier.carrier_name or '',
        'driver_name': carrier.driver_name or '',
        'details': carrier.details or '',
        'notes': carrier.notes or '',
        'created_at': carrier.created_at.isoformat() if carrier.created_at else None,
        'updated_at': carrier.updated_at.isoformat() if carrier.updated_at else None,
        'cars': [serialize_car(c) for c in cars],
        'car_count': len(cars),
        'total_amount': as_float(total_amount),
        'profit': as_float(total_amount - total_expense),
    }
    if include_user and carrier.user:
        result['user'] = {'username': carrier.user.username, 'role': carrier.user.role}
    return result

def _empty_listing(page, limit):
    return {
        'carriers': [],
        'pagination': build_pagination(page, limit, 0),
        'totals': {
            'total_cars': 0,
            'total_amount': 0.0,
            'total_expenses': 0.0,
            'total_profit': 0.0,
            'total_trips': 0,
        },
    }

def list_carriers(user_id, user_role, filters=None, page=1, limit=10):
    """
    Paginated carrier listing with per-carrier car aggregates.

    Logic:
    - Without car-level filters (company, start_date, end_date) carriers match on their own
      fields and come back with all of their cars, including carriers with none
    - With a car-level filter only carriers owning at least one matching car (among the
      carriers the caller can see) qualify, and each carrier carries just those cars
    - A car-level filter matching nothing returns an empty page straight away
    - Ordered by date desc then created_at desc; total and totals use the same predicate
    """
    try:
        page, limit = normalize_page(page, limit)
        criteria = normalize_criteria(filters)

        if criteria['has_car_filter']:
            matching = db.session.query(Car.carrier_id) \
                .filter(*build_car_filter(user_id, user_role, criteria)) \
                .distinct().limit(1).all()
            if not matching:
                return _empty_listing(page, limit)

        conditions = build_carrier_filter(user_id, user_role, criteria)
        base = Carrier.query.filter(*conditions)

        total = base.count()
        carriers = base.order_by(Carrier.date.desc(), Carrier.created_at.desc()) \
            .offset((page - 1) * limit).limit(limit).all()

        car_conditions = car_match_conditions(criteria)
        cars_by_carrier = {c.id: [] for c in carriers}
        if carriers:
            cars = Car.query.filter(Car.carrier_id.in_(list(cars_by_carrier)), *car_conditions) \
                .order_by(Car.date.asc(), Car.created_at.asc()).all()
            for car in cars:
                cars_by_carrier[car.carrier_id].append(car)

        include_user = user_role == 'super_admin'
        items = [serialize_carrier(c, cars_by_carrier[c.id], include_user) for c in carriers]

        return {
            'carriers': items,
            'pagination': build_pagination(page, limit, total),
            'totals': _listing_totals(conditions, car_conditions),
        }
    except HaulbookError:
        raise
    except ValueError as e:
        logger.error(f"Validation error: {str(e)}")
        raise CarrierError(str(e))
    except Exception as e:
        logger.error(f"Error listing carriers: {str(e)}")
        raise CarrierError("Failed to retrieve carriers")

def _listing_totals(conditions, car_conditions):
    """Totals over every matching carrier, not just the current page"""
    car_stats = select(
        Car.carrier_id.label('carrier_id'),
        func.count(Car.id).label('car_count'),
        func.sum(Car.amount).label('amount'),
    )
    if car_conditions:
        car_stats = car_stats.where(*car_conditions)
    car_stats = car_stats.group_by(Car.carrier_id).subquery()

    row = db.session.query(
        func.count(Carrier.id),
        func.sum(car_stats.c.car_count),
        func.sum(car_stats.c.amount),
        func.sum(func.coalesce(Carrier.total_expense, 0)),
    ).select_from(Carrier) \
        .outerjoin(car_stats, car_stats.c.carrier_id == Carrier.id) \
        .filter(*conditions).one()

    total_trips, total_cars, total_amount, total_expenses = row
    total_amount = to_decimal(total_amount)
    total_expenses = to_decimal(total_expenses)
    return {
        'total_cars': int(total_cars or 0),
        'total_amount': as_float(total_amount),
        'total_expenses': as_float(total_expenses),
        'total_profit': as_float(total_amount - total_expenses),
        'total_trips': int(total_trips or 0),
    }

def get_carrier(carrier_id, user_id, user_role):
    carrier = get_owned(Carrier, carrier_id, user_id, user_role, 'Carrier')
    cars = Car.query.filter_by(carrier_id=carrier.id).order_by(Car.date.asc(), Car.created_at.asc()).all()
    return serialize_carrier(carrier, cars, include_user=user_role == 'super_admin')

def get_trip_by_number(trip_number, user_id, user_role):
    query = Carrier.query.filter(Carrier.type == 'trip',
                                 Carrier.trip_number == trip_number.strip().upper())
    if user_role != 'super_admin':
        query = query.filter(Carrier.user_id == to_uuid(user_id, 'user_id'))
    carrier = query.first()
    if not carrier:
        return None
    return serialize_carrier(carrier, include_user=user_role == 'super_admin')

def generate_next_trip_number(owner_id):
    rows = db.session.query(Carrier.trip_number).filter(
        Carrier.type == 'trip',
        Carrier.user_id == to_uuid(owner_id, 'user_id'),
        Carrier.trip_number.isnot(None)
    ).all()
    return next_trip_number(r[0] for r in rows)

def _find_existing(carrier_type, owner_id, trip_number, name):
    if carrier_type == 'trip':
        return Carrier.query.filter_by(type='trip', trip_number=trip_number, user_id=owner_id).first()
    return Carrier.query.filter_by(type='company', name=name, user_id=owner_id).first()

def create_carrier(data, user_id, user_role, ip_address, user_agent):
    """
    Create a trip or company carrier.

    Returns a dict with the carrier, a message and, when an insert race hit the unique
    index, a warning alongside the carrier that already existed.
    """
    try:
        carrier_type = data.get('type') or 'trip'
        if carrier_type not in ('trip', 'company'):
            raise ValueError("Carrier type must be trip or company")

        owner_id = resolve_target_user(data, user_id, user_role)
        trip_number = (data.get('trip_number') or '').strip().upper() or None
        name = (data.get('name') or '').strip().upper() or None

        if carrier_type == 'trip':
            if not trip_number:
                trip_number = generate_next_trip_number(owner_id)
            if _find_existing('trip', owner_id, trip_number, None):
                raise DuplicateKeyError(
                    f'Trip number "{trip_number}" already exists for this user. Please use a different trip number.'
                )
            name = None
        else:
            if not name:
                raise ValueError("Company name is required for company-type carriers")
            if _find_existing('company', owner_id, None, name):
                raise DuplicateKeyError(
                    f'Company name "{name}" already exists for this user. Please use a different name.'
                )
            trip_number = None

        truck = None
        if data.get('truck_id'):
            truck = Truck.query.get(to_uuid(data['truck_id'], 'truck id'))
            if not truck:
                raise ValidationError("Selected truck not found")
            if user_role != 'super_admin' and truck.user_id != owner_id:
                raise ValidationError("Selected truck does not belong to this user")

        trip_distance = to_decimal(data.get('trip_distance'))

        carrier = Carrier(
            type=carrier_type,
            trip_number=trip_number,
            name=name,
            user_id=owner_id,
            date=parse_datetime(data.get('date')) or utc_now(),
            total_expense=to_decimal(data.get('total_expense')),
            truck_id=truck.id if truck else None,
            distance=trip_distance if trip_distance > ZERO else None,
            meter_reading_at_trip=truck.current_meter_reading if truck else None,
            carrier_name=(data.get('carrier_name') or '').strip(),
            driver_name=(data.get('driver_name') or '').strip(),
            details=(data.get('details') or '').strip(),
            notes=(data.get('notes') or '').strip(),
            is_active=True
        )
        db.session.add(carrier)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            existing = _find_existing(carrier_type, owner_id, trip_number, name)
            if existing:
                logger.info(f"Carrier {trip_number or name} already exists, returning existing record")
                return {
                    'carrier': serialize_carrier(existing),
                    'message': 'Carrier trip already exists' if carrier_type == 'trip' else 'Company already exists',
                    'warning': ('Trip number already exists - using existing trip' if carrier_type == 'trip'
                                else 'Company name already exists - using existing company'),
                }
            raise

        maintenance = None
        if truck and trip_distance > ZERO:
            maintenance = record_trip_distance(truck, trip_distance)

        db.session.commit()

        log_action(user_id, 'CREATE', 'carriers', carrier.id, None, data, ip_address, user_agent)

        result = {
            'carrier': serialize_carrier(carrier, []),
            'message': 'Carrier trip created successfully' if carrier_type == 'trip' else 'Company created successfully',
        }
        if maintenance and maintenance['status'] != 'ok':
            result['maintenance_warning'] = truck.maintenance_warning
        return result
    except HaulbookError:
        db.session.rollback()
        raise
    except ValueError as e:
        db.session.rollback()
        logger.error(f"Validation error: {str(e)}")
        raise CarrierError(str(e))
    except Exception as e:
        logger.error(f"Error creating carrier: {str(e)}")
        db.session.rollback()
        raise CarrierError("Failed to create carrier")

def update_carrier(carrier_id, data, user_id, user_role, ip_address, user_agent):
    try:
        carrier = get_owned(Carrier, carrier_id, user_id, user_role, 'Carrier', for_write=True)
        old_values = serialize_carrier(carrier)

        for field in ('carrier_name', 'driver_name', 'details', 'notes'):
            if field in data:
                setattr(carrier, field, (data[field] or '').strip())
        if data.get('date'):
            carrier.date = parse_datetime(data['date'])

        if 'truck_id' in data:
            truck = None
            if data['truck_id']:
                truck = Truck.query.get(to_uuid(data['truck_id'], 'truck id'))
                if not truck:
                    raise ValidationError("Selected truck not found")
                if user_role != 'super_admin' and truck.user_id != carrier.user_id:
                    raise ValidationError("Selected truck does not belong to this user")
            carrier.truck_id = truck.id if truck else None

        if 'trip_distance' in data:
            distance = to_decimal(data['trip_distance'])
            carrier.distance = distance if distance > ZERO else None

        recompute_carrier_total_expense(carrier)
        db.session.commit()

        log_action(user_id, 'UPDATE', 'carriers', carrier.id, old_values, data, ip_address, user_agent)
        return carrier
    except HaulbookError:
        db.session.rollback()
        raise
    except ValueError as e:
        db.session.rollback()
        raise CarrierError(str(e))
    except Exception as e:
        logger.error(f"Error updating carrier {carrier_id}: {str(e)}")
        db.session.rollback()
        raise CarrierError("Failed to update carrier")

def toggle_carrier_active(carrier_id, user_id, user_role, ip_address, user_agent):
    try:
        carrier = get_owned(Carrier, carrier_id, user_id, user_role, 'Carrier', for_write=True)
        # NULL predates the flag and reads as active
        was_active = carrier.is_active is not False
        carrier.is_active = not was_active
        db.session.commit()

        log_action(user_id, 'UPDATE', 'carriers', carrier.id, {'is_active': was_active},
                   {'is_active': carrier.is_active}, ip_address, user_agent)
        return carrier.is_active
    except HaulbookError:
        raise
    except Exception as e:
        logger.error(f"Error toggling carrier {carrier_id}: {str(e)}")
        db.session.rollback()
        raise CarrierError("Failed to update carrier status")

def sync_cars_date(carrier_id, user_id, user_role, ip_address, user_agent):
    """Copy the trip date onto every car of the carrier; returns how many cars changed"""
    try:
        carrier = get_owned(Carrier, carrier_id, user_id, user_role, 'Carrier', for_write=True)
        trip_date = carrier.date or utc_now()

        updated = Car.query.filter(Car.carrier_id == carrier.id, Car.date != trip_date) \
            .update({'date': trip_date}, synchronize_session='fetch')
        db.session.commit()

        log_action(user_id, 'UPDATE', 'cars', carrier.id, None,
                   {'carrier_id': carrier.id, 'date': trip_date, 'cars_updated': updated},
                   ip_address, user_agent)
        logger.info(f"Synced date of {updated} cars on carrier {carrier.id}")
        return {
            'cars_updated': updated,
            'trip_date': trip_date.isoformat(),
            'message': f"Updated {updated} cars with trip date",
        }
    except HaulbookError:
        raise
    except Exception as e:
        logger.error(f"Error syncing car dates for carrier {carrier_id}: {str(e)}")
        db.session.rollback()
        raise CarrierError("Failed to sync cars date")

def delete_carrier(carrier_id, user_id, user_role, ip_address, user_agent):
    require_super_admin(user_role, "Only super admin can delete carriers")
    try:
        carrier = get_owned(Carrier, carrier_id, user_id, user_role, 'Carrier', for_write=True)
        old_values = serialize_carrier(carrier)
        record_id = carrier.id

        expense_ids = [e.id for e in carrier.expenses]
        if expense_ids:
            Expense.query.filter(Expense.synced_from_expense_id.in_(expense_ids)) \
                .delete(synchronize_session=False)
        db.session.delete(carrier)
        db.session.commit()

        log_action(user_id, 'DELETE', 'carriers', record_id, old_values, None, ip_address, user_agent)
        return True
    except HaulbookError:
        raise
    except Exception as e:
        logger.error(f"Error deleting carrier {carrier_id}: {str(e)}")
        db.session.rollback()
        raise CarrierError("Failed to delete carrier")
