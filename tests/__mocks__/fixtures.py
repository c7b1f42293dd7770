"""
Shared test fixtures -- mock data for unit and integration tests.
"""
import datetime


# ── User fixtures ────────────────────────────────────────────────────

def make_user(
    user_id="USR-000000000001",
    name="Test User",
    email="test@example.com",
    role="OPERATIONS",
    permissions=None,
):
    """Build a user dict as returned by validate_session()."""
    from app.roles import ROLE_PERMISSIONS, ROLE_NAMES
    return {
        "user_id": user_id,
        "name": name,
        "email": email,
        "role": role,
        "role_display": ROLE_NAMES.get(role, role),
        "permissions": permissions if permissions is not None else list(ROLE_PERMISSIONS.get(role, [])),
    }


ADMIN_USER = make_user(user_id="ADMIN", name="System Administrator",
                       email="admin@example.com", role="ADMIN")
OPS_USER = make_user(user_id="USR-OPS000000001", name="Ops User",
                     email="ops@example.com", role="OPERATIONS")
TRAINER_USER = make_user(user_id="USR-TRN000000001", name="Trainer User",
                         email="trainer@example.com", role="TRAINER")
ACCOUNTS_USER = make_user(user_id="USR-ACC000000001", name="Accounts User",
                          email="accounts@example.com", role="ACCOUNTS")
TRAINEE_USER = make_user(user_id="USR-TRE000000001", name="Trainee User",
                         email="trainee@example.com", role="TRAINEE")


# ── Batch fixtures ───────────────────────────────────────────────────

def make_batch(
    batch_id=1,
    batch_name="Python Basics",
    training_mode="ONLINE",
    start_date=None,
    end_date=None,
    start_time=None,
    end_time=None,
    trainer_id=None,
    assignment_status=None,
    meeting_link="https://meet.example.com/abc",
):
    today = datetime.date.today()
    return {
        "id": batch_id,
        "batch_name": batch_name,
        "training_mode": training_mode,
        "start_date": (start_date or today).isoformat() if not isinstance(start_date, str) else start_date,
        "end_date": (end_date or today).isoformat() if not isinstance(end_date, str) else end_date,
        "start_time": start_time,
        "end_time": end_time,
        "meeting_link": meeting_link,
        "venue": None,
        "hybrid_details": None,
        "trainer_id": trainer_id,
        "assignment_status": assignment_status,
    }


def batch_input(**overrides):
    """Form/API style batch input accepted by validate_batch()."""
    data = {
        "batch_name": "Python Basics",
        "description": "Intro course",
        "training_mode": "ONLINE",
        "start_date": "2025-03-01",
        "end_date": "2025-03-05",
        "start_time": "09:00",
        "end_time": "17:00",
        "meeting_link": "https://meet.example.com/abc",
        "venue": "",
        "hybrid_details": "",
        "trainees": [{"name": "Asha", "email": "asha@example.org"}],
    }
    data.update(overrides)
    return data


# ── Purchasing fixtures ──────────────────────────────────────────────

def make_po(po_id=1, po_number="PO-001", client_name="Acme", amount=1000.0, status="PENDING", batch_id=None):
    return {
        "id": po_id,
        "po_number": po_number,
        "client_name": client_name,
        "amount": amount,
        "status": status,
        "batch_id": batch_id,
    }
