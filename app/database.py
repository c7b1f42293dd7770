"""
Database connection and session management.
Supports both SQLite (local development) and PostgreSQL (production).
"""
import logging
import secrets
import sqlite3
from contextlib import contextmanager
from datetime import date

import bcrypt

from app.config import (
    DATABASE_PATH, DATABASE_URL, USE_POSTGRES,
    DEFAULT_ADMIN_EMAIL, DEFAULT_ADMIN_PASSWORD,
)

# PostgreSQL support
if USE_POSTGRES:
    import psycopg2
    from psycopg2.extras import RealDictCursor

logger = logging.getLogger(__name__)


class DictRow:
    """Wrapper to make psycopg2 results behave like sqlite3.Row"""
    def __init__(self, data):
        self._data = data
        self._keys = list(data.keys()) if data else []

    def __getitem__(self, key):
        if isinstance(key, int):
            return self._data[self._keys[key]]
        return self._data[key]

    def __iter__(self):
        return iter(self._data.values())

    def keys(self):
        return self._keys


def get_db_connection():
    """Create a database connection with row factory."""
    if USE_POSTGRES:
        return psycopg2.connect(DATABASE_URL)
    conn = sqlite3.connect(str(DATABASE_PATH))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


class PostgresCursorWrapper:
    """Wrapper to make PostgreSQL cursor behave like SQLite cursor"""
    def __init__(self, cursor):
        self._cursor = cursor

    def execute(self, query, params=None):
        # SQLite placeholders and DDL translated for PostgreSQL
        query = query.replace('?', '%s')
        query = query.replace('INTEGER PRIMARY KEY AUTOINCREMENT', 'SERIAL PRIMARY KEY')
        if query.strip().upper().startswith('PRAGMA'):
            return self
        if params:
            self._cursor.execute(query, params)
        else:
            self._cursor.execute(query)
        return self

    def fetchone(self):
        row = self._cursor.fetchone()
        return DictRow(row) if row else None

    def fetchall(self):
        rows = self._cursor.fetchall()
        return [DictRow(row) for row in rows]

    @property
    def lastrowid(self):
        self._cursor.execute("SELECT lastval()")
        return self._cursor.fetchone()['lastval']

    @property
    def rowcount(self):
        return self._cursor.rowcount


class PostgresConnection:
    """Connection facade exposing the sqlite3 connection API used by the routes."""
    def __init__(self, conn, cursor):
        self._conn = conn
        self._cursor = PostgresCursorWrapper(cursor)

    def cursor(self):
        return self._cursor

    def execute(self, *args, **kwargs):
        return self._cursor.execute(*args, **kwargs)

    def commit(self):
        return self._conn.commit()

    def rollback(self):
        return self._conn.rollback()


@contextmanager
def get_db():
    """Context manager for database connections."""
    conn = get_db_connection()
    try:
        if USE_POSTGRES:
            yield PostgresConnection(conn, conn.cursor(cursor_factory=RealDictCursor))
        else:
            yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def rows_to_dicts(rows) -> list:
    """Convert fetched rows into plain dicts for templates and JSON."""
    return [dict(zip(row.keys(), row)) for row in rows]


def row_to_dict(row):
    """Convert a single fetched row into a dict, passing None through."""
    if row is None:
        return None
    return dict(zip(row.keys(), row))


def generate_user_id() -> str:
    """Generate an opaque user identifier: USR-XXXXXXXXXXXX"""
    return f"USR-{secrets.token_hex(6).upper()}"


def generate_invoice_number(cursor=None) -> str:
    """Generate the next free invoice number: INV-YYYY-NNN"""
    prefix = f"INV-{date.today().year}"

    def _next(cur):
        cur.execute("""
            SELECT COUNT(*) + 1 as next_num FROM invoices
            WHERE invoice_number LIKE ?
        """, (f"{prefix}-%",))
        next_num = cur.fetchone()['next_num']
        while True:
            candidate = f"{prefix}-{next_num:03d}"
            cur.execute("SELECT id FROM invoices WHERE invoice_number = ?", (candidate,))
            if not cur.fetchone():
                return candidate
            next_num += 1

    if cursor is not None:
        return _next(cursor)
    with get_db() as conn:
        return _next(conn.cursor())


def init_database():
    """Initialize the database with all required tables."""
    with get_db() as conn:
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT UNIQUE NOT NULL,
                name TEXT NOT NULL,
                email TEXT UNIQUE NOT NULL,
                password_hash TEXT NOT NULL,
                role TEXT NOT NULL CHECK(role IN ('ADMIN', 'OPERATIONS', 'TRAINER', 'ACCOUNTS', 'TRAINEE')),
                is_active INTEGER DEFAULT 1,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # Role-specific profiles
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS trainer_profiles (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT UNIQUE NOT NULL,
                specialization TEXT NOT NULL,
                availability INTEGER DEFAULT 1,
                bio TEXT,
                phone TEXT,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (user_id) REFERENCES users(user_id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS operations_profiles (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT UNIQUE NOT NULL,
                department TEXT NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(user_id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS accounts_profiles (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT UNIQUE NOT NULL,
                department TEXT NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(user_id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS sessions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT UNIQUE NOT NULL,
                user_id TEXT NOT NULL,
                expires_at TIMESTAMP NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (user_id) REFERENCES users(user_id) ON DELETE CASCADE
            )
        """)

        # Batches: schedule status is derived from dates and never stored
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS batches (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                batch_name TEXT NOT NULL,
                description TEXT,
                training_mode TEXT NOT NULL CHECK(training_mode IN ('ONLINE', 'OFFLINE', 'HYBRID')),
                start_date DATE NOT NULL,
                end_date DATE NOT NULL,
                start_time TEXT,
                end_time TEXT,
                meeting_link TEXT,
                venue TEXT,
                hybrid_details TEXT,

                -- Trainer assignment
                trainer_id TEXT,
                assignment_status TEXT CHECK(assignment_status IN ('PENDING', 'ACCEPTED', 'REJECTED', 'COMPLETED')),
                decline_reason TEXT,
                assignment_updated_at TIMESTAMP,

                created_by TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (trainer_id) REFERENCES users(user_id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS trainees (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                batch_id INTEGER NOT NULL,
                name TEXT NOT NULL,
                email TEXT,
                FOREIGN KEY (batch_id) REFERENCES batches(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS purchase_orders (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                po_number TEXT UNIQUE NOT NULL,
                client_name TEXT NOT NULL,
                amount REAL NOT NULL,
                document_path TEXT,
                document_name TEXT,
                batch_id INTEGER,
                status TEXT DEFAULT 'PENDING' CHECK(status IN ('PENDING', 'PROCESSED', 'INVOICED')),
                uploaded_by TEXT,
                uploaded_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                processed_by TEXT,
                processed_at TIMESTAMP,
                FOREIGN KEY (batch_id) REFERENCES batches(id) ON DELETE SET NULL
            )
        """)

        # One invoice per purchase order
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS invoices (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                invoice_number TEXT UNIQUE NOT NULL,
                purchase_order_id INTEGER UNIQUE NOT NULL,
                amount REAL NOT NULL,
                status TEXT DEFAULT 'PENDING' CHECK(status IN ('PENDING', 'PAID', 'OVERDUE')),
                notes TEXT,
                generated_by TEXT,
                generated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (purchase_order_id) REFERENCES purchase_orders(id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS notifications (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                batch_id INTEGER,
                batch_name TEXT,
                trainer_id TEXT,
                trainer_name TEXT,
                message TEXT NOT NULL,
                type TEXT NOT NULL CHECK(type IN ('TRAINING_DECLINED', 'PURCHASE_ORDER_NEEDED', 'SYSTEM')),
                status TEXT DEFAULT 'UNREAD' CHECK(status IN ('UNREAD', 'READ')),
                action_url TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS materials (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                batch_id INTEGER NOT NULL,
                title TEXT NOT NULL,
                description TEXT,
                file_url TEXT NOT NULL,
                file_type TEXT,
                uploaded_by TEXT,
                uploaded_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (batch_id) REFERENCES batches(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS attendance (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                batch_id INTEGER NOT NULL,
                trainee_id INTEGER NOT NULL,
                attendance_date DATE NOT NULL,
                present INTEGER DEFAULT 0,
                marked_by TEXT,
                marked_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(batch_id, trainee_id, attendance_date),
                FOREIGN KEY (batch_id) REFERENCES batches(id) ON DELETE CASCADE,
                FOREIGN KEY (trainee_id) REFERENCES trainees(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS activity_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                actor_id TEXT,
                action TEXT NOT NULL,
                entity_type TEXT NOT NULL,
                entity_id TEXT,
                remarks TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_batches_trainer ON batches(trainer_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_notifications_batch ON notifications(batch_id, type, status)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_po_batch ON purchase_orders(batch_id)")

        # Seed the administrator account
        cursor.execute("SELECT user_id FROM users WHERE role = 'ADMIN'")
        if not cursor.fetchone():
            password_hash = bcrypt.hashpw(
                DEFAULT_ADMIN_PASSWORD.encode('utf-8'), bcrypt.gensalt()
            ).decode('utf-8')
            cursor.execute("""
                INSERT INTO users (user_id, name, email, password_hash, role, is_active)
                VALUES ('ADMIN', 'System Administrator', ?, ?, 'ADMIN', 1)
            """, (DEFAULT_ADMIN_EMAIL.lower(), password_hash))
            logger.info("Seeded default administrator %s", DEFAULT_ADMIN_EMAIL)

    logger.info("Database initialized (%s)", "PostgreSQL" if USE_POSTGRES else "SQLite")


def log_activity(cursor, actor_id, action: str, entity_type: str, entity_id, remarks: str = None):
    """Append a row to the activity log using the caller's transaction."""
    cursor.execute("""
        INSERT INTO activity_log (actor_id, action, entity_type, entity_id, remarks)
        VALUES (?, ?, ?, ?, ?)
    """, (actor_id, action, entity_type, str(entity_id) if entity_id is not None else None, remarks))


def reset_database():
    """Drop all tables and reinitialize (for development only)."""
    if USE_POSTGRES:
        raise RuntimeError("reset_database only supports the local SQLite database")
    if DATABASE_PATH.exists():
        DATABASE_PATH.unlink()
    init_database()
    logger.info("Database reset complete")
