from haulbook import db
from haulbook.models import Expense, Carrier, Truck, Driver
from haulbook.crud.scoping import apply_owner_scope, get_owned
from haulbook.crud.truck_crud import record_maintenance
from haulbook.utils.logging_utils import log_action
from haulbook.utils.errors import HaulbookError, NotFoundError, ValidationError, to_uuid
from haulbook.utils.date_utils import parse_date, parse_datetime, day_bounds, utc_now
from haulbook.utils.money import to_decimal, as_float, quantize, ZERO
from sqlalchemy import func
import logging

logger = logging.getLogger(__name__)

TRIP_CATEGORIES = ('fuel', 'driver_rent', 'taxes', 'tool_taxes', 'on_road', 'others')
TRUCK_CATEGORIES = ('maintenance', 'fuel', 'tyre', 'others')

class ExpenseError(HaulbookError):
    """Custom exception for expense operations"""
    pass

def serialize_expense(expense):
    return {
        'id': str(expense.id),
        'carrier_id': str(expense.carrier_id) if expense.carrier_id else None,
        'truck_id': str(expense.truck_id) if expense.truck_id else None,
        'category': expense.category,
        'amount': as_float(expense.amount),
        'details': expense.details or '',
        'date': expense.date.isoformat() if expense.date else None,
        'liters': float(expense.liters) if expense.liters is not None else None,
        'price_per_liter': float(expense.price_per_liter) if expense.price_per_liter is not None else None,
        'meter_reading': float(expense.meter_reading) if expense.meter_reading is not None else None,
        'driver': {'id': str(expense.driver.id), 'name': expense.driver.name} if expense.driver else None,
        'synced_from_expense_id': str(expense.synced_from_expense_id) if expense.synced_from_expense_id else None,
        'created_at': expense.created_at.isoformat() if expense.created_at else None,
    }

def expense_amount(category, data):
    """
    Fuel is priced from liters x price_per_liter when both are given; every other
    category needs an explicit amount.
    """
    liters = to_decimal(data.get('liters'), None)
    price = to_decimal(data.get('price_per_liter'), None)
    amount = to_decimal(data.get('amount'), None)

    if category == 'fuel' and liters is not None and price is not None:
        return liters * price
    if amount is None or amount == ZERO:
        if category == 'fuel':
            raise ValueError("For fuel expenses, either provide amount or both liters and price_per_liter")
        raise ValueError(f"Amount is required for {category} expenses")
    if amount < ZERO:
        raise ValueError("Amount cannot be negative")
    return amount

def recompute_carrier_total_expense(carrier):
    """Re-derive the cached total from the carrier's expense rows; caller commits"""
    db.session.flush()
    total = db.session.query(func.coalesce(func.sum(Expense.amount), 0)) \
        .filter(Expense.carrier_id == carrier.id).scalar()
    carrier.total_expense = to_decimal(total)
    return carrier.total_expense

def _expense_totals(expenses, categories):
    by_category = {c: 0.0 for c in categories}
    total = ZERO
    for expense in expenses:
        total += to_decimal(expense.amount)
        by_category[expense.category] = by_category.get(expense.category, 0.0) + as_float(expense.amount)
    return {'total': as_float(total), 'by_category': by_category}

def _resolve_driver(driver_id, owner_id, user_role):
    if not driver_id:
        return None
    driver = Driver.query.get(to_uuid(driver_id, 'driver id'))
    if not driver:
        raise ValidationError("Driver not found")
    if user_role != 'super_admin' and driver.user_id != owner_id:
        raise ValidationError("Selected driver does not belong to this user")
    return driver

def _mirror_for_truck(expense, carrier):
    return Expense(
        truck_id=carrier.truck_id,
        user_id=carrier.user_id,
        category='fuel',
        amount=expense.amount,
        details=expense.details,
        date=expense.date,
        liters=expense.liters,
        price_per_liter=expense.price_per_liter,
        synced_from_expense_id=expense.id
    )

def _synced_truck_expense(expense):
    return Expense.query.filter_by(synced_from_expense_id=expense.id).first()

def get_carrier_expenses(carrier_id, user_id, user_role):
    carrier = get_owned(Carrier, carrier_id, user_id, user_role, 'Carrier')
    expenses = Expense.query.filter_by(carrier_id=carrier.id) \
        .order_by(Expense.date.desc(), Expense.created_at.desc()).all()
    return {
        'expenses': [serialize_expense(e) for e in expenses],
        'totals': _expense_totals(expenses, TRIP_CATEGORIES),
    }

def create_carrier_expense(carrier_id, data, user_id, user_role, ip_address, user_agent):
    try:
        carrier = get_owned(Carrier, carrier_id, user_id, user_role, 'Carrier', for_write=True)

        category = data.get('category')
        if not category:
            raise ValueError("Category is required")
        if category not in TRIP_CATEGORIES:
            raise ValueError(f"Invalid category. Allowed: {', '.join(TRIP_CATEGORIES)}")
        if category == 'driver_rent' and not data.get('driver_id'):
            raise ValueError("Driver is required for driver rent expenses")

        amount = expense_amount(category, data)
        expense_date = parse_datetime(data.get('date')) or utc_now()
        is_fuel = category == 'fuel'

        expense = Expense(
            carrier_id=carrier.id,
            user_id=carrier.user_id,
            category=category,
            amount=amount,
            details=(data.get('details') or '').strip(),
            date=expense_date,
            liters=to_decimal(data.get('liters'), None) if is_fuel else None,
            price_per_liter=to_decimal(data.get('price_per_liter'), None) if is_fuel else None,
            driver=_resolve_driver(data.get('driver_id'), carrier.user_id, user_role) if category == 'driver_rent' else None
        )
        db.session.add(expense)
        db.session.flush()

        # Fuel bought on a trip also counts against the truck that ran it
        if is_fuel and carrier.truck_id:
            db.session.add(_mirror_for_truck(expense, carrier))

        recompute_carrier_total_expense(carrier)
        db.session.commit()

        log_action(user_id, 'CREATE', 'expenses', expense.id, None, serialize_expense(expense),
                   ip_address, user_agent)
        return expense
    except HaulbookError:
        db.session.rollback()
        raise
    except ValueError as e:
        db.session.rollback()
        logger.error(f"Validation error: {str(e)}")
        raise ExpenseError(str(e))
    except Exception as e:
        logger.error(f"Error creating expense for carrier {carrier_id}: {str(e)}")
        db.session.rollback()
        raise ExpenseError("Failed to create expense")

def update_carrier_expense(carrier_id, expense_id, data, user_id, user_role, ip_address, user_agent):
    try:
        carrier = get_owned(Carrier, carrier_id, user_id, user_role, 'Carrier', for_write=True)
        expense = Expense.query.filter_by(id=to_uuid(expense_id, 'expense id'), carrier_id=carrier.id).first()
        if not expense:
            raise NotFoundError("Expense not found")
        old_values = serialize_expense(expense)

        category = data.get('category', expense.category)
        if category not in TRIP_CATEGORIES:
            raise ValueError(f"Invalid category. Allowed: {', '.join(TRIP_CATEGORIES)}")

        merged = {
            'amount': data.get('amount', expense.amount),
            'liters': data.get('liters', expense.liters),
            'price_per_liter': data.get('price_per_liter', expense.price_per_liter),
        }
        expense.category = category
        expense.amount = expense_amount(category, merged)
        if 'details' in data:
            expense.details = (data['details'] or '').strip()
        if data.get('date'):
            expense.date = parse_datetime(data['date'])
        if category == 'fuel':
            expense.liters = to_decimal(merged['liters'], None)
            expense.price_per_liter = to_decimal(merged['price_per_liter'], None)
        else:
            expense.liters = None
            expense.price_per_liter = None
        if category == 'driver_rent' and 'driver_id' in data:
            expense.driver = _resolve_driver(data['driver_id'], carrier.user_id, user_role)

        synced = _synced_truck_expense(expense)
        if category == 'fuel' and synced:
            synced.amount = expense.amount
            synced.details = expense.details
            synced.date = expense.date
            synced.liters = expense.liters
            synced.price_per_liter = expense.price_per_liter
        elif category == 'fuel' and carrier.truck_id:
            db.session.add(_mirror_for_truck(expense, carrier))
        elif synced:
            db.session.delete(synced)

        recompute_carrier_total_expense(carrier)
        db.session.commit()

        log_action(user_id, 'UPDATE', 'expenses', expense.id, old_values, serialize_expense(expense),
                   ip_address, user_agent)
        return expense
    except HaulbookError:
        db.session.rollback()
        raise
    except ValueError as e:
        db.session.rollback()
        raise ExpenseError(str(e))
    except Exception as e:
        logger.error(f"Error updating expense {expense_id}: {str(e)}")
        db.session.rollback()
        raise ExpenseError("Failed to update expense")

def delete_carrier_expense(carrier_id, expense_id, user_id, user_role, ip_address, user_agent):
    try:
        carrier = get_owned(Carrier, carrier_id, user_id, user_role, 'Carrier', for_write=True)
        expense = Expense.query.filter_by(id=to_uuid(expense_id, 'expense id'), carrier_id=carrier.id).first()
        if not expense:
            raise NotFoundError("Expense not found")
        old_values = serialize_expense(expense)
        record_id = expense.id

        synced = _synced_truck_expense(expense)
        if synced:
            db.session.delete(synced)
        db.session.delete(expense)

        new_total = recompute_carrier_total_expense(carrier)
        db.session.commit()

        log_action(user_id, 'DELETE', 'expenses', record_id, old_values, None, ip_address, user_agent)
        return {'total_expense': as_float(new_total)}
    except HaulbookError:
        db.session.rollback()
        raise
    except Exception as e:
        logger.error(f"Error deleting expense {expense_id}: {str(e)}")
        db.session.rollback()
        raise ExpenseError("Failed to delete expense")

def get_truck_expenses(truck_id, user_id, user_role):
    truck = get_owned(Truck, truck_id, user_id, user_role, 'Truck')
    expenses = Expense.query.filter_by(truck_id=truck.id) \
        .order_by(Expense.date.desc(), Expense.created_at.desc()).all()
    return {
        'expenses': [serialize_expense(e) for e in expenses],
        'totals': _expense_totals(expenses, TRUCK_CATEGORIES),
    }

def create_truck_expense(truck_id, data, user_id, user_role, ip_address, user_agent):
    try:
        truck = get_owned(Truck, truck_id, user_id, user_role, 'Truck', for_write=True)

        category = data.get('category')
        if category not in TRUCK_CATEGORIES:
            raise ValueError(f"Invalid category. Only {', '.join(TRUCK_CATEGORIES)} are allowed for trucks.")

        amount = expense_amount(category, data)
        expense_date = parse_datetime(data.get('date')) or utc_now()
        meter_reading = to_decimal(data.get('meter_reading'), None)

        expense = Expense(
            truck_id=truck.id,
            user_id=truck.user_id,
            category=category,
            amount=amount,
            details=(data.get('details') or '').strip(),
            date=expense_date,
            liters=to_decimal(data.get('liters'), None) if category == 'fuel' else None,
            price_per_liter=to_decimal(data.get('price_per_liter'), None) if category == 'fuel' else None,
            meter_reading=meter_reading if category in ('maintenance', 'tyre') else None
        )
        db.session.add(expense)

        if category == 'maintenance':
            record_maintenance(truck, meter_reading, expense_date)

        db.session.commit()

        log_action(user_id, 'CREATE', 'expenses', expense.id, None, serialize_expense(expense),
                   ip_address, user_agent)
        return expense
    except HaulbookError:
        db.session.rollback()
        raise
    except ValueError as e:
        db.session.rollback()
        logger.error(f"Validation error: {str(e)}")
        raise ExpenseError(str(e))
    except Exception as e:
        logger.error(f"Error creating expense for truck {truck_id}: {str(e)}")
        db.session.rollback()
        raise ExpenseError("Failed to create expense")

def delete_truck_expense(truck_id, expense_id, user_id, user_role, ip_address, user_agent):
    try:
        truck = get_owned(Truck, truck_id, user_id, user_role, 'Truck', for_write=True)
        expense = Expense.query.filter_by(id=to_uuid(expense_id, 'expense id'), truck_id=truck.id).first()
        if not expense:
            raise NotFoundError("Expense not found")
        if expense.synced_from_expense_id:
            raise ValidationError("This expense mirrors a trip fuel expense; delete it from the trip instead")

        old_values = serialize_expense(expense)
        record_id = expense.id
        db.session.delete(expense)
        db.session.commit()

        log_action(user_id, 'DELETE', 'expenses', record_id, old_values, None, ip_address, user_agent)
        return True
    except HaulbookError:
        db.session.rollback()
        raise
    except Exception as e:
        logger.error(f"Error deleting truck expense {expense_id}: {str(e)}")
        db.session.rollback()
        raise ExpenseError("Failed to delete expense")

def get_fuel_report(user_id, user_role, filters=None):
    """
    Fuel liters and spend per truck, plus an overall total.

    Filters: start_date/end_date (inclusive local days), truck_ids, and user_id for
    a super admin narrowing to one owner. Trip fuel is counted through its truck mirror.
    """
    filters = filters or {}
    try:
        truck_query = Truck.query
        if user_role == 'super_admin' and filters.get('user_id'):
            truck_query = truck_query.filter(Truck.user_id == to_uuid(filters['user_id'], 'user_id'))
        else:
            truck_query = apply_owner_scope(truck_query, Truck, user_id, user_role)
        trucks = truck_query.order_by(Truck.name.asc()).all()

        allowed = {t.id for t in trucks}
        requested = {to_uuid(t, 'truck id') for t in filters.get('truck_ids') or []}
        if requested:
            allowed &= requested

        if not allowed:
            selected = []
        else:
            query = Expense.query.filter(Expense.category == 'fuel', Expense.truck_id.in_(list(allowed)))
            start, end = day_bounds(parse_date(filters.get('start_date')), parse_date(filters.get('end_date')))
            if start:
                query = query.filter(Expense.date >= start)
            if end:
                query = query.filter(Expense.date <= end)
            selected = query.order_by(Expense.date.desc(), Expense.created_at.desc()).all()

        by_truck = {}
        overall_liters, overall_amount = ZERO, ZERO
        for expense in selected:
            key = str(expense.truck_id)
            entry = by_truck.setdefault(key, {
                'truck': {'id': key, 'name': expense.truck.name, 'number': expense.truck.number},
                'expenses': [], 'liters': ZERO, 'amount': ZERO,
            })
            entry['expenses'].append(serialize_expense(expense))
            entry['liters'] += to_decimal(expense.liters)
            entry['amount'] += to_decimal(expense.amount)
            overall_liters += to_decimal(expense.liters)
            overall_amount += to_decimal(expense.amount)

        for entry in by_truck.values():
            liters, amount = entry.pop('liters'), entry.pop('amount')
            entry['total_liters'] = float(liters)
            entry['total_amount'] = as_float(amount)
            entry['expense_count'] = len(entry['expenses'])
            entry['avg_price_per_liter'] = as_float(quantize(amount / liters)) if liters else None

        return {
            'by_truck': by_truck,
            'overall': {
                'total_liters': float(overall_liters),
                'total_amount': as_float(overall_amount),
                'expense_count': len(selected),
            },
            'trucks': [{'id': str(t.id), 'name': t.name, 'number': t.number} for t in trucks],
        }
    except HaulbookError:
        raise
    except ValueError as e:
        raise ValidationError(str(e))
    except Exception as e:
        logger.error(f"Error building fuel report: {str(e)}")
        raise ExpenseError("Failed to build fuel report")
