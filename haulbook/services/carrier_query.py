"""
Filter building for the carrier listing.

The paginated list, the count and the totals all take their WHERE clause from
build_carrier_filter, so the three can never disagree about which carriers match.
"""
import logging
from urllib.parse import unquote_plus
from sqlalchemy import select, or_, func, true, false
from haulbook.models import Carrier, Car
from haulbook.utils.date_utils import parse_date, day_bounds
from haulbook.utils.errors import to_uuid

logger = logging.getLogger(__name__)

ACTIVE = 'active'
INACTIVE = 'inactive'

def parse_active_filter(value):
    """
    Map the is_active query value onto ACTIVE / INACTIVE / None (no filter).

    Rows created before the flag existed hold NULL; they are matched by ACTIVE.
    """
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        return ACTIVE if value else INACTIVE
    text = str(value).strip().lower()
    if text in ('true', '1', 'active', 'yes'):
        return ACTIVE
    if text in ('false', '0', 'inactive', 'no'):
        return INACTIVE
    raise ValueError(f"Invalid is_active value: {value}")

def active_condition(column, state):
    if state == ACTIVE:
        return or_(column == true(), column.is_(None))
    return column == false()

def contains_ci(column, term):
    return func.lower(column).contains(term.lower(), autoescape=True)

def normalize_criteria(filters):
    """Parse raw query parameters into the criteria dict the builders expect"""
    filters = filters or {}

    company = filters.get('company') or ''
    company = unquote_plus(str(company)).strip()

    trip_numbers = []
    raw_trips = (filters.get('trip_number') or '').strip()
    if raw_trips:
        trip_numbers = [t.strip() for t in raw_trips.split(',') if t.strip()]

    carrier_type = filters.get('type') or None
    if carrier_type and carrier_type not in ('trip', 'company'):
        raise ValueError(f"Invalid carrier type: {carrier_type}")

    criteria = {
        'type': carrier_type,
        'active': parse_active_filter(filters.get('is_active')),
        'start_date': parse_date(filters.get('start_date')),
        'end_date': parse_date(filters.get('end_date')),
        'company': company or None,
        'carrier_name': (filters.get('carrier_name') or '').strip() or None,
        'trip_numbers': trip_numbers,
        'search': (filters.get('search') or '').strip() or None,
        'owner_id': to_uuid(filters.get('user_id'), 'user_id') if filters.get('user_id') else None,
    }
    criteria['has_car_filter'] = bool(
        criteria['company'] or criteria['start_date'] or criteria['end_date']
    )
    return criteria

def ownership_conditions(user_id, user_role, criteria):
    """Whose carriers are visible: everybody's for super_admin (optionally one owner), else the caller's"""
    if user_role == 'super_admin':
        if criteria.get('owner_id'):
            return [Carrier.user_id == criteria['owner_id']]
        return []
    return [Carrier.user_id == to_uuid(user_id, 'user_id')]

def car_match_conditions(criteria):
    """Car-level predicates: exact company name (any case) and the car date range"""
    conditions = []
    if criteria.get('company'):
        conditions.append(func.upper(Car.company_name) == criteria['company'].upper())
    start, end = day_bounds(criteria.get('start_date'), criteria.get('end_date'))
    if start is not None:
        conditions.append(Car.date >= start)
    if end is not None:
        conditions.append(Car.date <= end)
    return conditions

def build_car_filter(user_id, user_role, criteria):
    """Car predicates restricted to cars whose carrier the caller is allowed to see"""
    conditions = car_match_conditions(criteria)
    owner = ownership_conditions(user_id, user_role, criteria)
    if owner:
        conditions.append(Car.carrier_id.in_(select(Carrier.id).where(*owner)))
    return conditions

def build_carrier_filter(user_id, user_role, criteria):
    """
    Every carrier-level predicate for a listing request.

    When a car-level filter is present the carriers are restricted to the parents of the
    matching cars; otherwise carriers match regardless of how many cars they have.
    """
    conditions = list(ownership_conditions(user_id, user_role, criteria))

    if criteria.get('type'):
        conditions.append(Carrier.type == criteria['type'])

    if criteria.get('active'):
        conditions.append(active_condition(Carrier.is_active, criteria['active']))

    if criteria.get('carrier_name'):
        conditions.append(contains_ci(Carrier.carrier_name, criteria['carrier_name']))

    trip_numbers = criteria.get('trip_numbers') or []
    if trip_numbers:
        conditions.append(or_(*[contains_ci(Carrier.trip_number, tn) for tn in trip_numbers]))

    if criteria.get('search'):
        term = criteria['search']
        conditions.append(or_(
            contains_ci(Carrier.trip_number, term),
            contains_ci(Carrier.carrier_name, term),
            contains_ci(Carrier.driver_name, term),
            contains_ci(Carrier.details, term),
            contains_ci(Carrier.notes, term),
        ))

    # The carrier's own date only narrows when the range is closed on both ends
    if criteria.get('start_date') and criteria.get('end_date'):
        start, end = day_bounds(criteria['start_date'], criteria['end_date'])
        conditions.append(Carrier.date >= start)
        conditions.append(Carrier.date <= end)

    if criteria.get('has_car_filter'):
        car_conditions = build_car_filter(user_id, user_role, criteria)
        conditions.append(Carrier.id.in_(select(Car.carrier_id).where(*car_conditions)))

    return conditions
