"""
Authentication utilities: password hashing, session management, and user registration.
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

import bcrypt
from itsdangerous import BadData, URLSafeTimedSerializer

from app.config import SECRET_KEY, SESSION_MAX_AGE
from app.database import get_db, generate_user_id, log_activity
from app.roles import (
    ROLE_TRAINER, ROLE_OPERATIONS, ROLE_ACCOUNTS, REGISTRABLE_ROLES,
    get_role_display_name, get_user_permissions,
)
from app.workflows import ValidationError, WorkflowError

logger = logging.getLogger(__name__)

MIN_NAME_LENGTH = 2
MIN_PASSWORD_LENGTH = 6


class DuplicateEmail(WorkflowError):
    """A user with this email already exists."""
    status_code = 409


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    password_bytes = password.encode('utf-8')
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password_bytes, salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except (ValueError, TypeError):
        return False


def generate_session_id() -> str:
    """Generate a unique session ID."""
    return secrets.token_urlsafe(32)


def create_session(user_id: str) -> str:
    """Create a new session for a user and return the session ID."""
    session_id = generate_session_id()
    expires_at = datetime.now() + timedelta(seconds=SESSION_MAX_AGE)

    with get_db() as conn:
        cursor = conn.cursor()
        # One live session per user
        cursor.execute("DELETE FROM sessions WHERE user_id = ?", (user_id,))
        cursor.execute(
            """INSERT INTO sessions (session_id, user_id, expires_at)
               VALUES (?, ?, ?)""",
            (session_id, user_id, expires_at.isoformat(sep=' '))
        )

    return session_id


def validate_session(session_id: str) -> Optional[dict]:
    """
    Validate a session ID and return user info if valid.
    Returns None if session is invalid or expired.
    """
    if not session_id:
        return None

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            """SELECT s.user_id, s.expires_at, u.name, u.email, u.role
               FROM sessions s
               JOIN users u ON s.user_id = u.user_id
               WHERE s.session_id = ? AND u.is_active = 1""",
            (session_id,)
        )
        row = cursor.fetchone()

        if not row:
            return None

        # PostgreSQL returns datetime objects, SQLite returns strings
        expires_at = row['expires_at']
        if isinstance(expires_at, str):
            expires_at = datetime.fromisoformat(expires_at)
        if datetime.now() > expires_at:
            cursor.execute("DELETE FROM sessions WHERE session_id = ?", (session_id,))
            return None

        user_data = {
            'user_id': row['user_id'],
            'name': row['name'],
            'email': row['email'],
            'role': row['role'],
        }
        user_data['role_display'] = get_role_display_name(row['role'])
        user_data['permissions'] = get_user_permissions(user_data)

        return user_data


def delete_session(session_id: str) -> None:
    """Delete a session (logout)."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM sessions WHERE session_id = ?", (session_id,))


def authenticate_user(email: str, password: str) -> Optional[dict]:
    """
    Authenticate a user by email and password.
    Returns user info if successful, None otherwise.
    """
    if not email or not password:
        return None

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            """SELECT user_id, name, email, password_hash, role, is_active
               FROM users WHERE email = ?""",
            (email.lower().strip(),)
        )
        row = cursor.fetchone()

    if not row or not row['is_active']:
        return None

    if not verify_password(password, row['password_hash']):
        return None

    return {
        'user_id': row['user_id'],
        'name': row['name'],
        'email': row['email'],
        'role': row['role'],
    }


def validate_registration(name: str, email: str, password: str, role: str,
                          specialization: str = None, department: str = None) -> dict:
    """Check registration input and return the normalised values."""
    name = (name or '').strip()
    email = (email or '').lower().strip()
    role = (role or '').upper().strip()
    errors = {}

    if len(name) < MIN_NAME_LENGTH:
        errors['name'] = f"Name must be at least {MIN_NAME_LENGTH} characters"
    if '@' not in email or email.startswith('@') or email.endswith('@'):
        errors['email'] = "Invalid email address"
    if len(password or '') < MIN_PASSWORD_LENGTH:
        errors['password'] = f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    if role not in REGISTRABLE_ROLES:
        errors['role'] = "Invalid user role"
    elif role == ROLE_TRAINER and not (specialization or '').strip():
        errors['specialization'] = "Specialization is required for trainers"
    elif role in (ROLE_OPERATIONS, ROLE_ACCOUNTS) and not (department or '').strip():
        errors['department'] = f"Department is required for {role.lower()} staff"

    if errors:
        field, message = next(iter(errors.items()))
        raise ValidationError(message, field, details=errors)

    return {
        'name': name,
        'email': email,
        'password': password,
        'role': role,
        'specialization': (specialization or '').strip() or None,
        'department': (department or '').strip() or None,
    }


def register_user(name: str, email: str, password: str, role: str,
                  specialization: str = None, department: str = None,
                  created_by: str = None) -> dict:
    """
    Create a user together with its role profile in one transaction.
    Raises ValidationError on bad input and DuplicateEmail when the email is taken.
    """
    data = validate_registration(name, email, password, role, specialization, department)
    user_id = generate_user_id()

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT user_id FROM users WHERE email = ?", (data['email'],))
        if cursor.fetchone():
            raise DuplicateEmail("User with this email already exists", 'email')

        cursor.execute("""
            INSERT INTO users (user_id, name, email, password_hash, role, is_active)
            VALUES (?, ?, ?, ?, ?, 1)
        """, (user_id, data['name'], data['email'], hash_password(data['password']), data['role']))

        if data['role'] == ROLE_TRAINER:
            cursor.execute("""
                INSERT INTO trainer_profiles (user_id, specialization, availability)
                VALUES (?, ?, 1)
            """, (user_id, data['specialization']))
        elif data['role'] == ROLE_OPERATIONS:
            cursor.execute("""
                INSERT INTO operations_profiles (user_id, department) VALUES (?, ?)
            """, (user_id, data['department']))
        elif data['role'] == ROLE_ACCOUNTS:
            cursor.execute("""
                INSERT INTO accounts_profiles (user_id, department) VALUES (?, ?)
            """, (user_id, data['department']))

        log_activity(cursor, created_by or user_id, 'CREATE', 'user', user_id,
                     f"Registered {data['role']} account")

        cursor.execute("SELECT created_at FROM users WHERE user_id = ?", (user_id,))
        created_at = cursor.fetchone()['created_at']

    logger.info("Registered %s user %s", data['role'], user_id)
    return {
        'id': user_id,
        'name': data['name'],
        'email': data['email'],
        'role': data['role'],
        'specialization': data['specialization'],
        'department': data['department'],
        'created_at': str(created_at),
    }


def get_serializer():
    """Get the URL-safe serializer for session cookies."""
    return URLSafeTimedSerializer(SECRET_KEY)


def serialize_session(session_id: str) -> str:
    """Serialize session ID for cookie storage."""
    return get_serializer().dumps(session_id)


def deserialize_session(token: str) -> Optional[str]:
    """Deserialize session ID from cookie."""
    try:
        return get_serializer().loads(token, max_age=SESSION_MAX_AGE)
    except BadData:
        return None
