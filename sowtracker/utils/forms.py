"""Helpers for reading submitted form/JSON values

Dates are stored as naive UTC datetimes at midnight because BSON has no
date-only type.
"""
from datetime import datetime, date

def parse_date(value, field_name='date', required=False):
    """Parse 'YYYY-MM-DD' (or an ISO timestamp) into a midnight datetime"""
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValueError(f'{field_name} is required')
        return None
    if isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    try:
        if 'T' in text or ' ' in text:
            parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
        else:
            parsed = datetime.strptime(text, '%Y-%m-%d')
    except ValueError:
        raise ValueError(f'Invalid {field_name} format (use YYYY-MM-DD)')
    return datetime(parsed.year, parsed.month, parsed.day)

def parse_datetime(value, field_name='timestamp', required=False):
    """Parse an ISO timestamp into a naive datetime"""
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValueError(f'{field_name} is required')
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace('Z', '+00:00'))
    except ValueError:
        raise ValueError(f'Invalid {field_name} format')
    return parsed.replace(tzinfo=None)

def parse_float(value, field_name='value', required=False):
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValueError(f'{field_name} is required')
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f'{field_name} must be a number')

def parse_int(value, field_name='value', required=False):
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValueError(f'{field_name} is required')
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        raise ValueError(f'{field_name} must be a whole number')

def clean_str(value):
    """Strip strings and turn blanks into None"""
    if value is None:
        return None
    value = str(value).strip()
    return value or None

def parse_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')

def require_choice(value, choices, field_name):
    if value not in choices:
        raise ValueError(f'{field_name} must be one of: {", ".join(choices)}')
    return value
