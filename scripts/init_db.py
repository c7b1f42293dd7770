"""
Database initialization script.
Creates tables, the default administrator and a small set of demo data:
one account per role, a few batches, purchase orders and an invoice.
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import date, timedelta

from app.database import get_db, USE_POSTGRES

DEMO_PASSWORD = "Demo@123"

DEMO_USERS = [
    # name, email, role, specialization, department
    ("Priya Operations", "ops@example.com", "OPERATIONS", None, "Training Delivery"),
    ("Arjun Accounts", "accounts@example.com", "ACCOUNTS", None, "Finance"),
    ("Meera Trainer", "trainer@example.com", "TRAINER", "Data Analytics", None),
    ("Rahul Trainer", "trainer2@example.com", "TRAINER", "Cloud Fundamentals", None),
    ("Sana Trainee", "trainee@example.com", "TRAINEE", None, None),
]


def init_database():
    """Initialize the database with tables, demo users and sample data."""
    print("=" * 60, flush=True)
    print("TMS Portal - Database Initialization", flush=True)
    print(f"Database: {'PostgreSQL' if USE_POSTGRES else 'SQLite'}", flush=True)
    print("=" * 60, flush=True)

    print("\nStep 1: Creating database tables...")
    print("-" * 40)
    if USE_POSTGRES:
        from app.database import init_database as create_tables
        create_tables()
    else:
        from app.database import reset_database
        reset_database()

    print("\nStep 2: Creating demo users...")
    print("-" * 40)
    users = create_demo_users()

    print("\nStep 3: Generating sample batches and purchase orders...")
    print("-" * 40)
    if users:
        generate_sample_data(users)
    else:
        print("  Demo users already existed, skipping sample data.")

    print("\n" + "=" * 60)
    print("DATABASE INITIALIZATION COMPLETE!")
    print(f"Demo accounts use the password: {DEMO_PASSWORD}")
    print("=" * 60)


def create_demo_users() -> dict:
    """Register one account per role. Returns {email: user} for the ones created."""
    from app.auth import register_user, DuplicateEmail

    created = {}
    for name, email, role, specialization, department in DEMO_USERS:
        try:
            user = register_user(name, email, DEMO_PASSWORD, role,
                                 specialization=specialization, department=department,
                                 created_by='ADMIN')
        except DuplicateEmail:
            print(f"  {email} already exists")
            continue
        created[email] = user
        print(f"  {role:<11} {email}")
    return created


def generate_sample_data(users: dict):
    """Batches in each schedule state, a trainer response, and the purchasing chain."""
    from app.services import batches, purchasing

    today = date.today()
    trainer = users.get("trainer@example.com")
    second_trainer = users.get("trainer2@example.com")

    ongoing = batches.create_batch({
        'batch_name': 'Data Analytics Foundations',
        'description': 'Spreadsheets, SQL and dashboards for analysts.',
        'training_mode': 'ONLINE',
        'start_date': (today - timedelta(days=2)).isoformat(),
        'end_date': (today + timedelta(days=5)).isoformat(),
        'start_time': '10:00',
        'end_time': '13:00',
        'meeting_link': 'https://meet.example.com/data-analytics',
        'trainer_id': trainer['id'] if trainer else None,
        'trainees': [
            {'name': 'Kavya Nair', 'email': 'kavya@example.org'},
            {'name': 'Rohan Das', 'email': 'rohan@example.org'},
            {'name': 'Ishita Rao', 'email': None},
        ],
    }, 'ADMIN')
    print(f"  Batch: {ongoing['batch_name']} ({ongoing['status']})")

    upcoming = batches.create_batch({
        'batch_name': 'Cloud Fundamentals Bootcamp',
        'training_mode': 'HYBRID',
        'start_date': (today + timedelta(days=14)).isoformat(),
        'end_date': (today + timedelta(days=18)).isoformat(),
        'meeting_link': 'https://meet.example.com/cloud',
        'venue': 'Training Room 2',
        'hybrid_details': 'Labs in person, lectures online',
        'trainer_id': second_trainer['id'] if second_trainer else None,
        'trainees': [{'name': 'Neha Gupta', 'email': 'neha@example.org'}],
    }, 'ADMIN')
    print(f"  Batch: {upcoming['batch_name']} ({upcoming['status']})")

    finished = batches.create_batch({
        'batch_name': 'Workplace Communication',
        'training_mode': 'OFFLINE',
        'start_date': (today - timedelta(days=30)).isoformat(),
        'end_date': (today - timedelta(days=28)).isoformat(),
        'venue': 'Conference Hall A',
    }, 'ADMIN')
    print(f"  Batch: {finished['batch_name']} ({finished['status']})")

    if trainer:
        batches.respond_to_assignment(ongoing['id'], {'user_id': trainer['id'], 'name': trainer['name']},
                                      accept=True)
        print(f"  {trainer['name']} accepted {ongoing['batch_name']}")

    po = purchasing.create_purchase_order('PO-1001', 'Acme Analytics Ltd', 150000,
                                          'ADMIN', batch_id=ongoing['id'])
    purchasing.process_purchase_order(po['id'], 'ADMIN')
    invoice = purchasing.generate_invoice(po['id'], 'ADMIN', notes='First instalment')
    print(f"  Purchase order {po['po_number']} -> invoice {invoice['invoice_number']}")

    pending = purchasing.create_purchase_order('PO-1002', 'Northwind Cloud Services', 82500.5,
                                               'ADMIN', batch_id=upcoming['id'])
    print(f"  Purchase order {pending['po_number']} ({pending['status']})")


def show_counts():
    with get_db() as conn:
        cursor = conn.cursor()
        for table in ('users', 'batches', 'trainees', 'purchase_orders', 'invoices', 'notifications'):
            cursor.execute(f"SELECT COUNT(*) as total FROM {table}")
            print(f"  {table:<16} {cursor.fetchone()['total']}")


if __name__ == "__main__":
    init_database()
    show_counts()
