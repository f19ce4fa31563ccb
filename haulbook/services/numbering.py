import re

TRAILING_DIGITS = re.compile(r'(\d+)$')

def next_trip_number(existing_numbers):
    """TRIP-NNN, one past the largest trailing number in use"""
    highest = 0
    for number in existing_numbers:
        if not number:
            continue
        match = TRAILING_DIGITS.search(number)
        if match:
            highest = max(highest, int(match.group(1)))
    return f"TRIP-{highest + 1:03d}"

def daily_prefix(kind, day_stamp):
    """e.g. daily_prefix('INV', '20240131') -> 'INV-20240131-'"""
    return f"{kind}-{day_stamp}-"

def next_sequence(prefix, numbers):
    """Sequence to try first for a day prefix, given every number already issued under it"""
    highest = 0
    for number in numbers:
        suffix = number[len(prefix):] if number and number.startswith(prefix) else ''
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return highest + 1

def format_sequence(prefix, sequence):
    return f"{prefix}{sequence:03d}"
