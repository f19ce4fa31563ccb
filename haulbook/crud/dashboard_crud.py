from haulbook import db
from haulbook.models import Carrier, Car, Account
from haulbook.crud.scoping import apply_owner_scope
from haulbook.services.carrier_query import ACTIVE, INACTIVE, active_condition
from haulbook.utils.errors import HaulbookError
from haulbook.utils.money import to_decimal, as_float
from sqlalchemy import func, select
import logging

logger = logging.getLogger(__name__)

RECENT_TRIPS = 5

class DashboardError(HaulbookError):
    """Custom exception for dashboard queries"""
    pass

def get_dashboard_summary(user_id, user_role):
    """
    Headline counts for the caller's trips.

    A trip whose active flag is NULL counts as active. Cars and their amounts are
    counted through the carriers the caller can see.
    """
    try:
        carriers = apply_owner_scope(Carrier.query, Carrier, user_id, user_role)
        visible_ids = apply_owner_scope(select(Carrier.id), Carrier, user_id, user_role)

        total_trips = carriers.count()
        active_trips = carriers.filter(active_condition(Carrier.is_active, ACTIVE)).count()
        inactive_trips = carriers.filter(active_condition(Carrier.is_active, INACTIVE)).count()

        total_cars, total_amount = db.session.query(
            func.count(Car.id), func.coalesce(func.sum(Car.amount), 0)
        ).filter(Car.carrier_id.in_(visible_ids)).one()

        recent = carriers.order_by(Carrier.date.desc(), Carrier.created_at.desc()).limit(RECENT_TRIPS).all()
        recent_trips = []
        for carrier in recent:
            amount = sum((to_decimal(c.amount) for c in carrier.cars), to_decimal(0))
            recent_trips.append({
                'id': str(carrier.id),
                'trip_number': carrier.trip_number,
                'name': carrier.name,
                'type': carrier.type,
                'date': carrier.date.isoformat() if carrier.date else None,
                'car_count': len(carrier.cars),
                'total_amount': as_float(amount),
            })

        return {
            'stats': {
                'total_trips': total_trips,
                'active_trips': active_trips,
                'inactive_trips': inactive_trips,
                'total_cars': total_cars,
                'total_amount': as_float(to_decimal(total_amount)),
                'total_accounts': Account.query.count() if user_role == 'super_admin' else 0,
            },
            'recent_trips': recent_trips,
        }
    except HaulbookError:
        raise
    except Exception as e:
        logger.error(f"Error building dashboard for user {user_id}: {str(e)}")
        raise DashboardError("Failed to load dashboard")
