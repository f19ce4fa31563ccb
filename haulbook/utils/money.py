from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

ZERO = Decimal('0')
CENT = Decimal('0.01')

def to_decimal(value, default=ZERO):
    """None and '' coalesce to the default; anything else goes through str() first"""
    if value is None or value == '':
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {value}")

def quantize(value):
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)

def as_float(value):
    """JSON representation of a money column"""
    return float(value) if value is not None else 0.0
