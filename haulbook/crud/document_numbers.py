import time
import logging
from haulbook import db
from haulbook.services.numbering import daily_prefix, next_sequence, format_sequence
from haulbook.utils.date_utils import local_day_stamp

logger = logging.getLogger(__name__)

def issue_daily_number(column, kind, max_retries=10):
    """
    Next free KIND-YYYYMMDD-NNN for the unique column, based on today's local date.

    Tries up to max_retries sequences past the highest one issued today, then
    falls back to a timestamp suffix.
    """
    prefix = daily_prefix(kind, local_day_stamp())
    issued = [number for (number,) in db.session.query(column).filter(column.like(f"{prefix}%")).all()]
    base = next_sequence(prefix, issued)

    for attempt in range(max_retries):
        number = format_sequence(prefix, base + attempt)
        if not db.session.query(column).filter(column == number).first():
            return number

    logger.warning(f"No free {kind} sequence after {max_retries} attempts, using timestamp suffix")
    return f"{prefix}{int(time.time() * 1000) % 1000000:06d}"
