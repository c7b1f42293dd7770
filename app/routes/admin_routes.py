"""
Admin routes: notifications (ADMIN, OPERATIONS), user management and the activity log (ADMIN).
"""
import logging
import secrets

from fastapi import APIRouter, Request, Form
from fastapi.responses import HTMLResponse, RedirectResponse

from app import notifications
from app.auth import register_user, hash_password
from app.database import get_db, rows_to_dicts, row_to_dict, log_activity
from app.dependencies import require_roles, require_permission, redirect_with_message
from app.roles import (
    ROLE_ADMIN, ROLE_NAMES, REGISTRABLE_ROLES, PERM_VIEW_NOTIFICATIONS, PERM_MANAGE_USERS,
)
from app.templates_config import templates
from app.workflows import WorkflowError

router = APIRouter()
logger = logging.getLogger(__name__)

ADMIN_ROLES = [ROLE_ADMIN]

ACTIVITY_LOG_LIMIT = 200


# ── Notifications ────────────────────────────────────────────────────

@router.get("/notifications", response_class=HTMLResponse)
async def notifications_page(request: Request, status: str = None):
    """Declined trainings and purchase order reminders."""
    user, redirect = require_permission(request, PERM_VIEW_NOTIFICATIONS)
    if redirect:
        return redirect

    return templates.TemplateResponse(request, "notifications.html", {
        "user": user,
        "notifications": notifications.list_notifications(status),
        "unread_count": notifications.count_unread(),
        "status_filter": status or 'ALL',
        "success": request.query_params.get('success'),
    })


@router.post("/notifications/{notification_id}/read")
async def mark_notification_read(request: Request, notification_id: int):
    user, redirect = require_permission(request, PERM_VIEW_NOTIFICATIONS)
    if redirect:
        return redirect

    notifications.mark_read(notification_id, user['user_id'])
    return RedirectResponse(url="/admin/notifications", status_code=302)


@router.post("/notifications/read-all")
async def mark_all_notifications_read(request: Request):
    user, redirect = require_permission(request, PERM_VIEW_NOTIFICATIONS)
    if redirect:
        return redirect

    changed = notifications.mark_all_read(user['user_id'])
    return redirect_with_message("/admin/notifications", success=f"{changed} notification(s) marked as read.")


@router.post("/notifications/{notification_id}/delete")
async def delete_notification(request: Request, notification_id: int):
    user, redirect = require_permission(request, PERM_VIEW_NOTIFICATIONS)
    if redirect:
        return redirect

    notifications.delete_notification(notification_id, user['user_id'])
    return RedirectResponse(url="/admin/notifications", status_code=302)


@router.post("/notifications/check-purchase-orders")
async def check_purchase_orders(request: Request):
    """Raise reminders for every batch that still has no purchase order."""
    user, redirect = require_permission(request, PERM_VIEW_NOTIFICATIONS)
    if redirect:
        return redirect

    created = notifications.check_batches_for_purchase_orders()
    return redirect_with_message("/admin/notifications",
                                 success=f"{created} purchase order reminder(s) raised.")


# ── Users ────────────────────────────────────────────────────────────

def fetch_users(filter_role: str = None, search: str = None) -> list:
    query = """
        SELECT u.user_id, u.name, u.email, u.role, u.is_active, u.created_at,
               tp.specialization,
               COALESCE(op.department, ap.department) as department
        FROM users u
        LEFT JOIN trainer_profiles tp ON tp.user_id = u.user_id
        LEFT JOIN operations_profiles op ON op.user_id = u.user_id
        LEFT JOIN accounts_profiles ap ON ap.user_id = u.user_id
        WHERE 1=1
    """
    params = []
    if filter_role:
        query += " AND u.role = ?"
        params.append(filter_role)
    if search:
        query += " AND (u.name LIKE ? OR u.email LIKE ?)"
        params.extend([f"%{search}%", f"%{search}%"])
    query += " ORDER BY u.role, u.name"

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(query, params)
        return rows_to_dicts(cursor.fetchall())


def render_users(request: Request, user: dict, filter_role: str = None, search: str = None,
                 reset_result: dict = None):
    return templates.TemplateResponse(request, "users.html", {
        "user": user,
        "users": fetch_users(filter_role, search),
        "roles": ROLE_NAMES,
        "filter_role": filter_role,
        "search": search,
        "reset_result": reset_result,
        "success": request.query_params.get('success'),
        "error": request.query_params.get('error'),
    })


@router.get("/users", response_class=HTMLResponse)
async def user_management_page(request: Request, filter_role: str = None, search: str = None):
    """Display user management page. Admin only."""
    user, redirect = require_permission(request, PERM_MANAGE_USERS)
    if redirect:
        return redirect
    return render_users(request, user, filter_role, search)


@router.post("/users/reset-password", response_class=HTMLResponse)
async def reset_user_password(request: Request, user_id: str = Form(...)):
    """Reset a user's password and show the new one once. Admin only."""
    user, redirect = require_permission(request, PERM_MANAGE_USERS)
    if redirect:
        return redirect

    new_password = secrets.token_urlsafe(8)

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT name FROM users WHERE user_id = ?", (user_id,))
        target = row_to_dict(cursor.fetchone())
        if not target:
            return redirect_with_message("/admin/users", error="User not found")

        cursor.execute("UPDATE users SET password_hash = ? WHERE user_id = ?",
                       (hash_password(new_password), user_id))
        cursor.execute("DELETE FROM sessions WHERE user_id = ?", (user_id,))
        log_activity(cursor, user['user_id'], 'UPDATE', 'user', user_id, "Password reset")

    logger.info("Password reset for %s by %s", user_id, user['user_id'])
    return render_users(request, user, reset_result={"name": target['name'], "password": new_password})


@router.post("/users/toggle-active")
async def toggle_user_active(request: Request, user_id: str = Form(...)):
    """Activate or deactivate an account. Deactivation ends its sessions."""
    user, redirect = require_permission(request, PERM_MANAGE_USERS)
    if redirect:
        return redirect

    if user_id == user['user_id']:
        return redirect_with_message("/admin/users", error="You cannot deactivate your own account")

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT is_active FROM users WHERE user_id = ?", (user_id,))
        target = cursor.fetchone()
        if not target:
            return redirect_with_message("/admin/users", error="User not found")

        new_state = 0 if target['is_active'] else 1
        cursor.execute("UPDATE users SET is_active = ? WHERE user_id = ?", (new_state, user_id))
        if not new_state:
            cursor.execute("DELETE FROM sessions WHERE user_id = ?", (user_id,))
        log_activity(cursor, user['user_id'], 'ACTIVATE' if new_state else 'DEACTIVATE', 'user', user_id)

    return RedirectResponse(url="/admin/users", status_code=302)


@router.get("/register", response_class=HTMLResponse)
async def register_page(request: Request):
    user, redirect = require_permission(request, PERM_MANAGE_USERS)
    if redirect:
        return redirect

    return templates.TemplateResponse(request, "register.html", {
        "user": user,
        "roles": {r: ROLE_NAMES[r] for r in REGISTRABLE_ROLES},
        "form": {},
    })


@router.post("/register", response_class=HTMLResponse)
async def register_submit(request: Request, name: str = Form(""), email: str = Form(""),
                          password: str = Form(""), role: str = Form(""),
                          specialization: str = Form(""), department: str = Form("")):
    """Create an OPERATIONS, TRAINER, ACCOUNTS or TRAINEE account. Admin only."""
    user, redirect = require_permission(request, PERM_MANAGE_USERS)
    if redirect:
        return redirect

    try:
        created = register_user(name, email, password, role, specialization, department,
                                created_by=user['user_id'])
    except WorkflowError as e:
        return templates.TemplateResponse(request, "register.html", {
            "user": user,
            "roles": {r: ROLE_NAMES[r] for r in REGISTRABLE_ROLES},
            "form": {'name': name, 'email': email, 'role': role,
                     'specialization': specialization, 'department': department},
            "error": e.message,
            "field_errors": e.details or {},
        }, status_code=400)

    return redirect_with_message("/admin/users", success=f"{created['name']} registered as {created['role']}.")


# ── Activity log ─────────────────────────────────────────────────────

@router.get("/activity-log", response_class=HTMLResponse)
async def activity_log_page(request: Request, action: str = None, entity_type: str = None,
                            actor_id: str = None):
    """Most recent activity, newest first. Admin only."""
    user, redirect = require_roles(request, ADMIN_ROLES)
    if redirect:
        return redirect

    query = """
        SELECT l.*, u.name as actor_name
        FROM activity_log l
        LEFT JOIN users u ON l.actor_id = u.user_id
        WHERE 1=1
    """
    params = []
    if action:
        query += " AND l.action = ?"
        params.append(action)
    if entity_type:
        query += " AND l.entity_type = ?"
        params.append(entity_type)
    if actor_id:
        query += " AND l.actor_id = ?"
        params.append(actor_id)
    query += " ORDER BY l.created_at DESC, l.id DESC LIMIT ?"
    params.append(ACTIVITY_LOG_LIMIT)

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(query, params)
        activities = rows_to_dicts(cursor.fetchall())
        cursor.execute("SELECT DISTINCT entity_type FROM activity_log ORDER BY entity_type")
        entity_types = [row['entity_type'] for row in cursor.fetchall()]

    return templates.TemplateResponse(request, "activity_log.html", {
        "user": user,
        "activities": activities,
        "entity_types": entity_types,
        "filter_action": action,
        "filter_entity": entity_type,
        "filter_actor": actor_id,
    })
