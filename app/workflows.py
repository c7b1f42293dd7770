"""
Status workflows for batches, trainer assignments, purchase orders and invoices.

Everything here is pure: functions take plain values (or record dicts) and
either return the next state or raise a ``WorkflowError``. Route handlers call
these before writing anything to the database, so the rules live in one place.

Batch schedule status is derived from dates on every read and never stored.
The schedule window is closed on both ends:

    now <  window_open                  -> UPCOMING
    window_open <= now <= window_close  -> ONGOING
    now >  window_close                 -> COMPLETED

``window_open`` is start_date at start_time (midnight when no time is set) and
``window_close`` is end_date at end_time (the last instant of the day when no
time is set).
"""
from datetime import date, datetime, time
from typing import Optional
from urllib.parse import urlparse

from app.config import TRAINING_MODES

# Schedule status (derived)
STATUS_UPCOMING = 'UPCOMING'
STATUS_ONGOING = 'ONGOING'
STATUS_COMPLETED = 'COMPLETED'

# Assignment status (stored on the batch)
ASSIGNMENT_PENDING = 'PENDING'
ASSIGNMENT_ACCEPTED = 'ACCEPTED'
ASSIGNMENT_REJECTED = 'REJECTED'
ASSIGNMENT_COMPLETED = 'COMPLETED'

ASSIGNMENT_TRANSITIONS = {
    ASSIGNMENT_PENDING: {ASSIGNMENT_ACCEPTED, ASSIGNMENT_REJECTED},
    ASSIGNMENT_ACCEPTED: {ASSIGNMENT_COMPLETED},
    ASSIGNMENT_REJECTED: set(),
    ASSIGNMENT_COMPLETED: set(),
}

# Purchase orders
PO_PENDING = 'PENDING'
PO_PROCESSED = 'PROCESSED'
PO_INVOICED = 'INVOICED'

PO_TRANSITIONS = {
    PO_PENDING: {PO_PROCESSED},
    PO_PROCESSED: {PO_INVOICED},
    PO_INVOICED: set(),
}

# Invoices
INVOICE_PENDING = 'PENDING'
INVOICE_PAID = 'PAID'
INVOICE_OVERDUE = 'OVERDUE'

INVOICE_TRANSITIONS = {
    INVOICE_PENDING: {INVOICE_PAID, INVOICE_OVERDUE},
    INVOICE_OVERDUE: {INVOICE_PAID},
    INVOICE_PAID: set(),
}

# Which location fields each training mode keeps
MODE_LOCATION_FIELDS = {
    'ONLINE': {'meeting_link'},
    'OFFLINE': {'venue'},
    'HYBRID': {'meeting_link', 'venue', 'hybrid_details'},
}
LOCATION_FIELDS = ('meeting_link', 'venue', 'hybrid_details')

MIN_BATCH_NAME_LENGTH = 3


class WorkflowError(Exception):
    """Base class for business-rule failures."""
    status_code = 400

    def __init__(self, message: str, field: str = None, details: dict = None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details


class ValidationError(WorkflowError):
    """Missing or malformed input."""
    status_code = 400


class InvalidTransition(WorkflowError):
    """A status change that the workflow does not allow."""
    status_code = 409


class NotFound(WorkflowError):
    """Referenced record does not exist."""
    status_code = 404


class PermissionDenied(WorkflowError):
    """Caller's role or identity may not perform the action."""
    status_code = 403


# ── Parsing helpers ──────────────────────────────────────────────────

def parse_date(value, field: str = 'date') -> date:
    """Accept a date, datetime or ISO string (YYYY-MM-DD...)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not str(value).strip():
        raise ValidationError(f"Missing required field: {field}", field)
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise ValidationError(f"Invalid date for {field}: {value}", field)


def parse_time(value, field: str = 'time') -> Optional[time]:
    """Accept a time or an HH:MM[:SS] string; blank means no time."""
    if value is None:
        return None
    if isinstance(value, time):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return time.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"Invalid time for {field}: {value}", field)


# ── Batch schedule status ────────────────────────────────────────────

def schedule_window(start_date, end_date, start_time=None, end_time=None) -> tuple:
    """Return the (open, close) datetimes of a batch schedule."""
    opens = datetime.combine(parse_date(start_date, 'start_date'),
                             parse_time(start_time, 'start_time') or time.min)
    closes = datetime.combine(parse_date(end_date, 'end_date'),
                              parse_time(end_time, 'end_time') or time.max)
    return opens, closes


def derive_batch_status(start_date, end_date, now: datetime = None,
                        start_time=None, end_time=None) -> str:
    """Derive UPCOMING / ONGOING / COMPLETED from the schedule and ``now``."""
    if now is None:
        now = datetime.now()
    elif not isinstance(now, datetime):
        now = datetime.combine(now, time.min)

    opens, closes = schedule_window(start_date, end_date, start_time, end_time)
    if now < opens:
        return STATUS_UPCOMING
    if now > closes:
        return STATUS_COMPLETED
    return STATUS_ONGOING


def batch_status(batch: dict, now: datetime = None) -> str:
    """Derive the schedule status of a batch record."""
    return derive_batch_status(
        batch['start_date'], batch['end_date'], now,
        batch.get('start_time'), batch.get('end_time'),
    )


def filter_batches_by_status(batches: list, status: str, now: datetime = None) -> list:
    """Keep only batches whose derived status matches; ALL or blank keeps everything."""
    if not status or status.upper() == 'ALL':
        return list(batches)
    status = status.upper()
    return [b for b in batches if batch_status(b, now) == status]


# ── Batch validation ─────────────────────────────────────────────────

def clean_location_fields(training_mode: str, meeting_link=None, venue=None,
                          hybrid_details=None) -> dict:
    """Keep only the location fields the training mode allows."""
    mode = (training_mode or '').upper()
    if mode not in TRAINING_MODES:
        raise ValidationError(f"Invalid training mode: {training_mode}", 'training_mode')

    allowed = MODE_LOCATION_FIELDS[mode]
    values = {'meeting_link': meeting_link, 'venue': venue, 'hybrid_details': hybrid_details}
    cleaned = {}
    for name in LOCATION_FIELDS:
        value = (values[name] or '').strip() if isinstance(values[name], str) else values[name]
        cleaned[name] = value if (name in allowed and value) else None

    if cleaned['meeting_link'] and not _is_http_url(cleaned['meeting_link']):
        raise ValidationError("Meeting link must be an http(s) URL", 'meeting_link')
    return cleaned


def validate_trainees(trainees) -> list:
    """Normalise a trainee roster: names required, blank rows dropped."""
    roster = []
    for index, trainee in enumerate(trainees or [], start=1):
        name = (trainee.get('name') or '').strip()
        email = (trainee.get('email') or '').strip() or None
        if not name and not email:
            continue
        if not name:
            raise ValidationError(f"Trainee {index} is missing a name", 'trainees')
        if email and '@' not in email:
            raise ValidationError(f"Trainee {name} has an invalid email", 'trainees')
        roster.append({'name': name, 'email': email})
    return roster


def validate_batch(data: dict) -> dict:
    """
    Validate and normalise batch input.
    Returns a dict ready to be written to the batches table.
    """
    for field in ('batch_name', 'start_date', 'end_date', 'training_mode'):
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"Missing required field: {field}", field)

    batch_name = data['batch_name'].strip()
    if len(batch_name) < MIN_BATCH_NAME_LENGTH:
        raise ValidationError(
            f"Batch name must be at least {MIN_BATCH_NAME_LENGTH} characters", 'batch_name'
        )

    start = parse_date(data['start_date'], 'start_date')
    end = parse_date(data['end_date'], 'end_date')
    if end < start:
        raise ValidationError("End date cannot be before start date", 'end_date')

    start_time = parse_time(data.get('start_time'), 'start_time')
    end_time = parse_time(data.get('end_time'), 'end_time')
    if start == end and start_time and end_time and end_time < start_time:
        raise ValidationError("End time cannot be before start time", 'end_time')

    mode = data['training_mode'].strip().upper()
    cleaned = {
        'batch_name': batch_name,
        'description': (data.get('description') or '').strip() or None,
        'training_mode': mode,
        'start_date': start.isoformat(),
        'end_date': end.isoformat(),
        'start_time': start_time.strftime('%H:%M') if start_time else None,
        'end_time': end_time.strftime('%H:%M') if end_time else None,
    }
    cleaned.update(clean_location_fields(
        mode, data.get('meeting_link'), data.get('venue'), data.get('hybrid_details')
    ))
    cleaned['trainees'] = validate_trainees(data.get('trainees'))
    return cleaned


# ── Assignment workflow ──────────────────────────────────────────────

def attach_trainer(batch: dict, trainer_id: Optional[str]) -> Optional[str]:
    """
    Return the assignment status after (re)attaching ``trainer_id`` to a batch.
    Attaching always restarts at PENDING; detaching clears the status.
    """
    if batch.get('assignment_status') == ASSIGNMENT_COMPLETED:
        raise InvalidTransition("Cannot reassign a completed training")
    if not trainer_id:
        return None
    return ASSIGNMENT_PENDING


def transition_assignment(current: Optional[str], target: str) -> str:
    """Validate an assignment status change and return the new status."""
    if current is None:
        raise InvalidTransition("Batch has no trainer assigned")
    if target not in ASSIGNMENT_TRANSITIONS.get(current, set()):
        raise InvalidTransition(f"Cannot move assignment from {current} to {target}")
    return target


def respond_to_assignment(batch: dict, trainer_id: str, accept: bool, reason: str = None) -> str:
    """
    Trainer accepts or rejects their assignment.
    Only the attached trainer may respond; a rejection needs a reason.
    """
    if batch.get('trainer_id') != trainer_id:
        raise PermissionDenied("This batch is not assigned to you")
    if accept:
        return transition_assignment(batch.get('assignment_status'), ASSIGNMENT_ACCEPTED)
    if not reason or not reason.strip():
        raise ValidationError("Please provide a reason for declining", 'reason')
    return transition_assignment(batch.get('assignment_status'), ASSIGNMENT_REJECTED)


# ── Purchase orders and invoices ─────────────────────────────────────

def validate_purchase_order(po_number: str, client_name: str, amount) -> dict:
    """Validate purchase order input. New purchase orders are always PENDING."""
    po_number = (po_number or '').strip()
    client_name = (client_name or '').strip()
    if not po_number:
        raise ValidationError("Missing required field: po_number", 'po_number')
    if not client_name:
        raise ValidationError("Missing required field: client_name", 'client_name')
    try:
        amount = float(amount)
    except (TypeError, ValueError):
        raise ValidationError("Amount must be a number", 'amount')
    if amount <= 0:
        raise ValidationError("Amount must be greater than zero", 'amount')
    return {
        'po_number': po_number,
        'client_name': client_name,
        'amount': round(amount, 2),
        'status': PO_PENDING,
    }


def transition_purchase_order(current: str, target: str) -> str:
    """Validate a purchase order status change and return the new status."""
    if target not in PO_TRANSITIONS.get(current, set()):
        raise InvalidTransition(f"Cannot move purchase order from {current} to {target}")
    return target


def ensure_invoiceable(purchase_order: Optional[dict]) -> None:
    """An invoice may only be generated from a PROCESSED purchase order."""
    if not purchase_order:
        raise NotFound("Purchase order not found")
    status = purchase_order['status']
    if status == PO_INVOICED:
        raise InvalidTransition(
            f"Purchase order {purchase_order['po_number']} has already been invoiced"
        )
    if status != PO_PROCESSED:
        raise InvalidTransition(
            f"Purchase order {purchase_order['po_number']} must be processed before invoicing"
        )


def transition_invoice(current: str, target: str) -> str:
    """Validate an invoice status change and return the new status."""
    if target not in INVOICE_TRANSITIONS.get(current, set()):
        raise InvalidTransition(f"Cannot move invoice from {current} to {target}")
    return target


# ── Materials ────────────────────────────────────────────────────────

def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


def validate_material(title: str, file_url: str, description: str = None) -> dict:
    """Validate a material link; the file type is taken from the URL extension."""
    title = (title or '').strip()
    file_url = (file_url or '').strip()
    if not title:
        raise ValidationError("Missing required field: title", 'title')
    if not file_url:
        raise ValidationError("Missing required field: file_url", 'file_url')
    if not _is_http_url(file_url):
        raise ValidationError("Material link must be an http(s) URL", 'file_url')

    path = urlparse(file_url).path
    extension = path.rsplit('.', 1)[-1].upper() if '.' in path.rsplit('/', 1)[-1] else 'LINK'
    return {
        'title': title,
        'description': (description or '').strip() or None,
        'file_url': file_url,
        'file_type': extension,
    }
