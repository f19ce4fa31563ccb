from haulbook.utils.money import to_decimal

DEFAULT_INTERVAL_KM = 1000
DUE_SOON_KM = 500

def maintenance_status(current_meter_reading, last_maintenance_km, maintenance_interval):
    """
    Where a truck stands against its service interval.

    nextMaintenance = last service km + interval; remaining = next - current.
    overdue when remaining <= 0, due_soon when remaining <= 500, ok otherwise.
    """
    current = to_decimal(current_meter_reading)
    interval = to_decimal(maintenance_interval, None) or to_decimal(DEFAULT_INTERVAL_KM)
    next_km = to_decimal(last_maintenance_km) + interval
    remaining = next_km - current

    if remaining <= 0:
        status = 'overdue'
    elif remaining <= DUE_SOON_KM:
        status = 'due_soon'
    else:
        status = 'ok'

    return {
        'next_maintenance_km': float(next_km),
        'kms_remaining': float(remaining),
        'status': status,
    }

def maintenance_warning(status):
    if status['status'] == 'overdue':
        return (f"Maintenance overdue! Next required at {status['next_maintenance_km']:g}km, "
                f"{abs(status['kms_remaining']):g}km past due")
    if status['status'] == 'due_soon':
        return (f"Maintenance due soon! {status['kms_remaining']:g}km remaining until "
                f"{status['next_maintenance_km']:g}km")
    return None
