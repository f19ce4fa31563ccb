from haulbook import db
from haulbook.models import DetailedLog
from datetime import datetime, date
from decimal import Decimal
import uuid

def _json_safe(value):
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(v) for v in value]
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value

def log_action(user_id, action, table_name, record_id, old_values, new_values, ip_address, user_agent):
    log = DetailedLog(
        user_id=uuid.UUID(str(user_id)) if user_id else None,
        action=action,
        table_name=table_name,
        record_id=uuid.UUID(str(record_id)),
        old_values=_json_safe(old_values) if old_values is not None else None,
        new_values=_json_safe(new_values) if new_values is not None else None,
        ip_address=ip_address,
        user_agent=user_agent
    )
    db.session.add(log)
    db.session.commit()
