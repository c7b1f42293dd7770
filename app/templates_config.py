"""
Shared Jinja2 templates configuration with custom filters.
All route modules should import templates from here.
"""
from pathlib import Path
from datetime import date, datetime
from fastapi.templating import Jinja2Templates

from app.roles import get_nav_items

BASE_DIR = Path(__file__).resolve().parent
templates = Jinja2Templates(directory=BASE_DIR / "templates")

# CSS class per status value, shared by every status badge
STATUS_CLASSES = {
    'UPCOMING': 'badge-info',
    'ONGOING': 'badge-success',
    'COMPLETED': 'badge-muted',
    'PENDING': 'badge-warning',
    'ACCEPTED': 'badge-success',
    'REJECTED': 'badge-danger',
    'PROCESSED': 'badge-info',
    'INVOICED': 'badge-success',
    'PAID': 'badge-success',
    'OVERDUE': 'badge-danger',
    'UNREAD': 'badge-warning',
    'READ': 'badge-muted',
}


# Custom Jinja2 filters for PostgreSQL datetime compatibility
def format_date(value, format_str='%Y-%m-%d'):
    """Format a date/datetime object or string to date string."""
    if value is None:
        return '-'
    if isinstance(value, str):
        return value[:10] if len(value) >= 10 else value
    if isinstance(value, (datetime, date)):
        return value.strftime(format_str)
    return str(value)[:10] if len(str(value)) >= 10 else str(value)


def format_datetime(value, format_str='%Y-%m-%d %H:%M'):
    """Format a datetime object or string to datetime string."""
    if value is None:
        return '-'
    if isinstance(value, str):
        return value[:16] if len(value) >= 16 else value
    if isinstance(value, datetime):
        return value.strftime(format_str)
    return str(value)[:16] if len(str(value)) >= 16 else str(value)


def format_amount(value):
    """Format a monetary amount with thousands separators."""
    if value is None or value == '':
        return '-'
    try:
        return f"{float(value):,.2f}"
    except (TypeError, ValueError):
        return str(value)


def status_class(value):
    """Badge CSS class for a status value."""
    return STATUS_CLASSES.get(str(value or '').upper(), 'badge-muted')


# Register custom filters
templates.env.filters['format_date'] = format_date
templates.env.filters['format_datetime'] = format_datetime
templates.env.filters['format_amount'] = format_amount
templates.env.filters['status_class'] = status_class
templates.env.globals['nav_items'] = get_nav_items
