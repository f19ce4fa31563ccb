from flask import Blueprint

main = Blueprint('main', __name__)

from . import user_routes
from . import account_routes
from . import carrier_routes
from . import truck_routes
from . import company_routes
from . import invoice_routes
from . import log_routes
from . import dashboard_routes
