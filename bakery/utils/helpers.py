"""
Shared helpers for route handlers: money/date parsing, pagination and CSV export.
"""
import csv
import io
from datetime import datetime, date, time
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from flask import request, Response

TWO_PLACES = Decimal('0.01')


def to_decimal(value, default='0'):
    """Convert request input to Decimal, raising ValueError on garbage"""
    if value is None or value == '':
        return Decimal(default)
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f'Invalid numeric value: {value}')


def money(value):
    """Round to cents"""
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_float(value):
    return float(value) if value is not None else None


def iso(value):
    return value.isoformat() if value else None


def parse_date(value, field='date'):
    """Parse YYYY-MM-DD (or a full ISO timestamp) into a date"""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value)[:10], '%Y-%m-%d').date()
    except ValueError:
        raise ValueError(f'{field} must be in YYYY-MM-DD format')


def parse_datetime(value, field='datetime'):
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', ''))
    except ValueError:
        raise ValueError(f'{field} must be an ISO 8601 timestamp')


def parse_time(value, field='time'):
    """Parse HH:MM or HH:MM:SS into a time"""
    if value is None or value == '':
        return None
    if isinstance(value, time):
        return value
    for fmt in ('%H:%M:%S', '%H:%M'):
        try:
            return datetime.strptime(str(value), fmt).time()
        except ValueError:
            continue
    raise ValueError(f'{field} must be in HH:MM format')


def parse_bool(value):
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def get_pagination_args(default_limit=20, max_limit=100):
    """Read page/limit from the query string"""
    limit = int(request.args.get('limit', default_limit))
    page = int(request.args.get('page', 1))
    if limit < 1 or page < 1:
        raise ValueError('page and limit must be positive integers')
    return page, min(limit, max_limit)


def paginate(query, page, limit):
    """Apply limit/offset and return (items, pagination dict)"""
    total = query.count()
    items = query.limit(limit).offset((page - 1) * limit).all()
    return items, {
        'total': total,
        'page': page,
        'limit': limit,
        'pages': (total + limit - 1) // limit
    }


def csv_response(rows, fieldnames, filename):
    """Build a CSV download from a list of dicts"""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=fieldnames, extrasaction='ignore')
    writer.writeheader()
    for row in rows:
        writer.writerow(row)

    return Response(
        buffer.getvalue(),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={filename}'}
    )
