"""
Create (or reset) an admin user for the TMS Portal.

Usage: python scripts/create_admin.py [email] [password]
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.auth import hash_password
from app.config import DEFAULT_ADMIN_EMAIL, DEFAULT_ADMIN_PASSWORD
from app.database import get_db, init_database, generate_user_id, log_activity


def create_admin_user(email: str = None, password: str = None):
    """Create an admin account, or reset the password of an existing one."""
    init_database()

    admin_email = (email or DEFAULT_ADMIN_EMAIL).lower().strip()
    admin_password = password or DEFAULT_ADMIN_PASSWORD
    admin_name = "System Administrator"

    with get_db() as conn:
        cursor = conn.cursor()

        cursor.execute("SELECT user_id, role FROM users WHERE email = ?", (admin_email,))
        existing = cursor.fetchone()
        if existing:
            if existing['role'] != 'ADMIN':
                print(f"{admin_email} belongs to a {existing['role']} account; roles are fixed at registration.")
                return
            cursor.execute("UPDATE users SET password_hash = ?, is_active = 1 WHERE user_id = ?",
                           (hash_password(admin_password), existing['user_id']))
            log_activity(cursor, existing['user_id'], 'UPDATE', 'user', existing['user_id'],
                         "Password reset from script")
            print(f"Admin user already exists: {admin_email}")
            print("Password has been reset.")
            return

        user_id = generate_user_id()
        cursor.execute("""
            INSERT INTO users (user_id, name, email, password_hash, role, is_active)
            VALUES (?, ?, ?, ?, 'ADMIN', 1)
        """, (user_id, admin_name, admin_email, hash_password(admin_password)))
        log_activity(cursor, user_id, 'CREATE', 'user', user_id, "Admin created from script")

        print("=" * 50)
        print("Admin user created successfully!")
        print("=" * 50)
        print(f"  Email: {admin_email}")
        print(f"  Password: {admin_password}")
        print(f"  User ID: {user_id}")
        print("=" * 50)
        print("IMPORTANT: Change the password after first login!")
        print("=" * 50)


if __name__ == "__main__":
    create_admin_user(*sys.argv[1:3])
