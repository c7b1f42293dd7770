"""
Role-based access control for the TMS Portal.

Roles:
1. ADMIN - System administrator (batches, notifications, user management)
2. OPERATIONS - Operations staff (batches, trainer assignment, purchase order upload)
3. TRAINER - Trainer (own batches, assignment responses, attendance, materials)
4. ACCOUNTS - Accounts staff (purchase order processing, invoices)
5. TRAINEE - Trainee (dashboard only)

A user has exactly one role, fixed at registration.
"""

# Role Constants
ROLE_ADMIN = 'ADMIN'
ROLE_OPERATIONS = 'OPERATIONS'
ROLE_TRAINER = 'TRAINER'
ROLE_ACCOUNTS = 'ACCOUNTS'
ROLE_TRAINEE = 'TRAINEE'

ALL_ROLES = [
    ROLE_ADMIN,
    ROLE_OPERATIONS,
    ROLE_TRAINER,
    ROLE_ACCOUNTS,
    ROLE_TRAINEE,
]

# Roles that can be created through registration forms
REGISTRABLE_ROLES = [ROLE_OPERATIONS, ROLE_TRAINER, ROLE_ACCOUNTS, ROLE_TRAINEE]

# Role display names
ROLE_NAMES = {
    ROLE_ADMIN: 'Administrator',
    ROLE_OPERATIONS: 'Operations',
    ROLE_TRAINER: 'Trainer',
    ROLE_ACCOUNTS: 'Accounts',
    ROLE_TRAINEE: 'Trainee',
}

# Permissions
PERM_MANAGE_BATCHES = 'manage_batches'
PERM_ASSIGN_TRAINERS = 'assign_trainers'
PERM_VIEW_TRAINERS = 'view_trainers'
PERM_VIEW_PURCHASE_ORDERS = 'view_purchase_orders'
PERM_UPLOAD_PURCHASE_ORDERS = 'upload_purchase_orders'
PERM_PROCESS_PURCHASE_ORDERS = 'process_purchase_orders'
PERM_MANAGE_INVOICES = 'manage_invoices'
PERM_VIEW_NOTIFICATIONS = 'view_notifications'
PERM_MANAGE_USERS = 'manage_users'
PERM_CREATE_USERS = 'create_users'
PERM_TRAINER_WORKSPACE = 'trainer_workspace'

# Role-Permission Mapping
ROLE_PERMISSIONS = {
    ROLE_ADMIN: [
        PERM_MANAGE_BATCHES,
        PERM_ASSIGN_TRAINERS,
        PERM_VIEW_TRAINERS,
        PERM_VIEW_PURCHASE_ORDERS,
        PERM_UPLOAD_PURCHASE_ORDERS,
        PERM_PROCESS_PURCHASE_ORDERS,
        PERM_MANAGE_INVOICES,
        PERM_VIEW_NOTIFICATIONS,
        PERM_MANAGE_USERS,
        PERM_CREATE_USERS,
    ],
    ROLE_OPERATIONS: [
        PERM_MANAGE_BATCHES,
        PERM_ASSIGN_TRAINERS,
        PERM_VIEW_TRAINERS,
        PERM_VIEW_PURCHASE_ORDERS,
        PERM_UPLOAD_PURCHASE_ORDERS,
        PERM_VIEW_NOTIFICATIONS,
        PERM_CREATE_USERS,
    ],
    ROLE_TRAINER: [
        PERM_TRAINER_WORKSPACE,
    ],
    ROLE_ACCOUNTS: [
        PERM_VIEW_PURCHASE_ORDERS,
        PERM_PROCESS_PURCHASE_ORDERS,
        PERM_MANAGE_INVOICES,
    ],
    ROLE_TRAINEE: [],
}

# Navigation entries per role: (label, href)
NAV_ITEMS = {
    ROLE_ADMIN: [
        ('Dashboard', '/dashboard'),
        ('Batches', '/batches'),
        ('Trainers', '/trainers'),
        ('Purchase Orders', '/purchase-orders'),
        ('Invoices', '/invoices'),
        ('Notifications', '/admin/notifications'),
        ('Users', '/admin/users'),
        ('Activity', '/admin/activity-log'),
    ],
    ROLE_OPERATIONS: [
        ('Dashboard', '/dashboard'),
        ('Batches', '/batches'),
        ('Trainers', '/trainers'),
        ('Purchase Orders', '/purchase-orders'),
        ('Notifications', '/admin/notifications'),
    ],
    ROLE_ACCOUNTS: [
        ('Dashboard', '/dashboard'),
        ('Purchase Orders', '/purchase-orders'),
        ('Invoices', '/invoices'),
    ],
    ROLE_TRAINER: [
        ('Dashboard', '/dashboard'),
        ('Batches', '/trainer/batches'),
        ('Assignments', '/trainer/assignments'),
        ('Students', '/trainer/students'),
        ('Materials', '/trainer/materials'),
        ('Profile', '/trainer/profile'),
    ],
    ROLE_TRAINEE: [
        ('Dashboard', '/dashboard'),
    ],
}


def get_user_role(user: dict) -> str:
    """Get the role of a user, or None for anonymous callers."""
    if not user:
        return None
    role = (user.get('role') or '').upper()
    return role if role in ALL_ROLES else None


def has_role(user: dict, allowed_roles) -> bool:
    """Check if the user's role is in an allow-list."""
    role = get_user_role(user)
    return role is not None and role in allowed_roles


def has_permission(user: dict, permission: str) -> bool:
    """Check if user has a specific permission."""
    role = get_user_role(user)
    if not role:
        return False
    return permission in ROLE_PERMISSIONS.get(role, [])


def get_user_permissions(user: dict) -> list:
    """Get all permissions for a user's role."""
    return list(ROLE_PERMISSIONS.get(get_user_role(user), []))


def is_trainer(user: dict) -> bool:
    """Check if user is a trainer."""
    return get_user_role(user) == ROLE_TRAINER


def get_role_display_name(role: str) -> str:
    """Get display name for a role."""
    return ROLE_NAMES.get(role, role)


def get_nav_items(user: dict) -> list:
    """Navigation entries for the user's role."""
    return NAV_ITEMS.get(get_user_role(user), [])
