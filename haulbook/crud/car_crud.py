from haulbook import db
from haulbook.models import Car, Carrier
from haulbook.crud.scoping import get_owned
from haulbook.crud.carrier_crud import serialize_car
from haulbook.utils.logging_utils import log_action
from haulbook.utils.errors import HaulbookError, ValidationError, NotFoundError, ForbiddenError, to_uuid
from haulbook.utils.date_utils import parse_datetime
from haulbook.utils.money import to_decimal, ZERO
import logging

logger = logging.getLogger(__name__)

REQUIRED_CAR_FIELDS = ('stock_no', 'name', 'chassis', 'company_name')

class CarError(HaulbookError):
    """Custom exception for car operations"""
    pass

def _trip_carrier(carrier_id, user_id, user_role, for_write=False):
    carrier = get_owned(Carrier, carrier_id, user_id, user_role, 'Carrier', for_write=for_write)
    # Untyped legacy carriers were all trips
    if carrier.type == 'company':
        raise ValidationError("Cars can only be added to trip carriers")
    return carrier

def _build_car(data, carrier):
    for field in REQUIRED_CAR_FIELDS:
        if not str(data.get(field) or '').strip():
            raise ValueError(f"Missing required field: {field}")

    amount = to_decimal(data.get('amount'))
    if amount < ZERO:
        raise ValueError("Amount cannot be negative")

    return Car(
        carrier_id=carrier.id,
        user_id=carrier.user_id,
        stock_no=str(data['stock_no']).strip(),
        name=str(data['name']).strip(),
        chassis=str(data['chassis']).strip(),
        amount=amount,
        company_name=str(data['company_name']).strip().upper(),
        date=parse_datetime(data.get('date')) or carrier.date
    )

def get_cars_by_carrier(carrier_id, user_id, user_role):
    carrier = get_owned(Carrier, carrier_id, user_id, user_role, 'Carrier')
    cars = Car.query.filter_by(carrier_id=carrier.id).order_by(Car.date.asc(), Car.created_at.asc()).all()
    return [serialize_car(c) for c in cars]

def create_car(carrier_id, data, user_id, user_role, ip_address, user_agent):
    try:
        carrier = _trip_carrier(carrier_id, user_id, user_role, for_write=True)
        car = _build_car(data, carrier)
        db.session.add(car)
        db.session.commit()

        log_action(user_id, 'CREATE', 'cars', car.id, None, serialize_car(car), ip_address, user_agent)
        return car
    except HaulbookError:
        db.session.rollback()
        raise
    except ValueError as e:
        db.session.rollback()
        logger.error(f"Validation error: {str(e)}")
        raise CarError(str(e))
    except Exception as e:
        logger.error(f"Error creating car: {str(e)}")
        db.session.rollback()
        raise CarError("Failed to create car")

def create_multiple_cars(carrier_id, cars_data, user_id, user_role, ip_address, user_agent):
    """Insert a batch of cars under one trip; nothing is saved if any row is invalid"""
    try:
        if not cars_data:
            raise ValueError("No cars provided")
        carrier = _trip_carrier(carrier_id, user_id, user_role, for_write=True)

        cars = []
        for index, data in enumerate(cars_data, start=1):
            try:
                cars.append(_build_car(data, carrier))
            except ValueError as e:
                raise ValueError(f"Car {index}: {e}")

        db.session.add_all(cars)
        db.session.commit()

        for car in cars:
            log_action(user_id, 'CREATE', 'cars', car.id, None, serialize_car(car), ip_address, user_agent)

        logger.info(f"Added {len(cars)} cars to carrier {carrier.id}")
        return cars
    except HaulbookError:
        db.session.rollback()
        raise
    except ValueError as e:
        db.session.rollback()
        raise CarError(str(e))
    except Exception as e:
        logger.error(f"Error creating cars in bulk: {str(e)}")
        db.session.rollback()
        raise CarError("Failed to create cars")

def delete_car(car_id, user_id, user_role, ip_address, user_agent):
    try:
        car = Car.query.get(to_uuid(car_id, 'car id'))
        if not car:
            raise NotFoundError("Car not found")
        # Cars inherit their scope from the parent carrier
        if user_role != 'super_admin' and car.carrier.user_id != to_uuid(user_id, 'user_id'):
            raise ForbiddenError("Unauthorized to modify this car")

        old_values = serialize_car(car)
        record_id = car.id
        db.session.delete(car)
        db.session.commit()

        log_action(user_id, 'DELETE', 'cars', record_id, old_values, None, ip_address, user_agent)
        return True
    except HaulbookError:
        raise
    except Exception as e:
        logger.error(f"Error deleting car {car_id}: {str(e)}")
        db.session.rollback()
        raise CarError("Failed to delete car")
