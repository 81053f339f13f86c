"""CSV export helpers

Converts lists of records into CSV text and builds download responses.
"""
from datetime import datetime
from flask import Response
from sowtracker.utils.forms import parse_datetime

def escape_csv_value(value):
    """Escape a single value for CSV output

    None becomes an empty string; values containing a comma, newline or
    double quote are wrapped in quotes with embedded quotes doubled.
    """
    if value is None:
        return ''
    string_value = str(value)
    if ',' in string_value or '\n' in string_value or '"' in string_value:
        string_value = '"' + string_value.replace('"', '""') + '"'
    return string_value

def convert_to_csv(rows, headers=None):
    """Convert a list of dicts to CSV text

    Args:
        rows: List of dicts
        headers: Optional column order (defaults to the first row's keys)
    """
    if not rows:
        return ''

    csv_headers = headers or list(rows[0].keys())
    header_row = ','.join(escape_csv_value(header) for header in csv_headers)
    data_rows = [
        ','.join(escape_csv_value(row.get(header)) for header in csv_headers)
        for row in rows
    ]
    return '\n'.join([header_row] + data_rows)

def _coerce_datetime(value):
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return parse_datetime(value)
    except ValueError:
        return None

def format_date_for_csv(value):
    """MM/DD/YYYY, blank when empty or unparseable"""
    parsed = _coerce_datetime(value)
    return parsed.strftime('%m/%d/%Y') if parsed else ''

def format_datetime_for_csv(value):
    """MM/DD/YYYY, HH:MM AM/PM, blank when empty or unparseable"""
    parsed = _coerce_datetime(value)
    return parsed.strftime('%m/%d/%Y, %I:%M %p') if parsed else ''

def csv_response(rows, filename, headers=None):
    """Build a CSV attachment response"""
    csv_text = convert_to_csv(rows, headers)
    return Response(
        csv_text,
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename="{filename}.csv"'}
    )
