"""
Integration tests for admin routes -- notifications, user management, registration, activity log.
"""
import os
import re
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))
os.environ.setdefault("DATABASE_URL", "")
os.environ.setdefault("SECRET_KEY", "integration-test-secret-key")

pytestmark = pytest.mark.integration


def _notifications_for(batch_id, notification_type="PURCHASE_ORDER_NEEDED"):
    from app.notifications import list_notifications
    return [n for n in list_notifications() if n["batch_id"] == batch_id and n["type"] == notification_type]


class TestNotifications:
    def test_list(self, admin_client, create_batch):
        create_batch("Notified Batch")
        response = admin_client.get("/admin/notifications")
        assert response.status_code == 200
        assert "Purchase order needed for batch: Notified Batch" in response.text

    def test_operations_allowed(self, ops_client):
        assert ops_client.get("/admin/notifications").status_code == 200

    @pytest.mark.parametrize("fixture", ["accounts_client", "trainer_client", "trainee_client"])
    def test_other_roles_redirected(self, request, fixture):
        c = request.getfixturevalue(fixture)
        response = c.get("/admin/notifications", follow_redirects=False)
        assert response.headers["location"] == "/dashboard?error=unauthorized"

    def test_mark_read(self, ops_client, create_batch):
        batch = create_batch("Read Me Batch")
        note = _notifications_for(batch["id"])[0]
        response = ops_client.post(f"/admin/notifications/{note['id']}/read", follow_redirects=False)
        assert response.headers["location"] == "/admin/notifications"
        assert _notifications_for(batch["id"])[0]["status"] == "READ"

    def test_read_all(self, admin_client, create_batch):
        from app.notifications import count_unread

        create_batch("Read All Batch")
        assert count_unread() > 0
        response = admin_client.post("/admin/notifications/read-all", follow_redirects=False)
        assert "success=" in response.headers["location"]
        assert count_unread() == 0

    def test_delete(self, admin_client, create_batch):
        batch = create_batch("Delete Note Batch")
        note = _notifications_for(batch["id"])[0]
        admin_client.post(f"/admin/notifications/{note['id']}/delete")
        assert _notifications_for(batch["id"]) == []

    def test_check_purchase_orders_raises_new_reminder(self, admin_client, create_batch):
        batch = create_batch("Recheck Batch")
        admin_client.post("/admin/notifications/read-all")

        response = admin_client.post("/admin/notifications/check-purchase-orders", follow_redirects=False)
        assert "reminder" in response.headers["location"]
        statuses = sorted(n["status"] for n in _notifications_for(batch["id"]))
        assert statuses == ["READ", "UNREAD"]

    def test_check_skips_batches_with_purchase_order(self, admin_client, ops_client, create_batch):
        batch = create_batch("Covered Recheck Batch")
        ops_client.post("/purchase-orders", data={
            "po_number": f"PO-ADM-{batch['id']}", "client_name": "Client", "amount": "10",
            "batch_id": str(batch["id"]),
        })
        admin_client.post("/admin/notifications/read-all")
        admin_client.post("/admin/notifications/check-purchase-orders")
        assert [n["status"] for n in _notifications_for(batch["id"])] == ["READ"]


class TestUserManagement:
    def test_list(self, admin_client, users):
        response = admin_client.get("/admin/users")
        assert response.status_code == 200
        assert users["trainer"]["email"] in response.text
        assert users["accounts"]["email"] in response.text

    def test_search(self, admin_client, users):
        text = admin_client.get("/admin/users?search=Tara").text
        assert users["trainer"]["email"] in text
        assert users["ops"]["email"] not in text

    def test_filter_role(self, admin_client, users):
        text = admin_client.get("/admin/users?filter_role=ACCOUNTS").text
        assert users["accounts"]["email"] in text
        assert users["trainer"]["email"] not in text

    def test_operations_denied(self, ops_client):
        response = ops_client.get("/admin/users", follow_redirects=False)
        assert response.headers["location"] == "/dashboard?error=unauthorized"

    def test_reset_password(self, admin_client, client, login, create_user):
        target = create_user("TRAINEE")
        response = admin_client.post("/admin/users/reset-password", data={"user_id": target["id"]})
        assert response.status_code == 200
        assert f"New password for {target['name']}" in response.text
        new_password = re.search(r"<code>(.+?)</code>", response.text).group(1)

        old = client.post("/login", data={"email": target["email"], "password": target["password"]},
                          follow_redirects=False)
        assert old.status_code == 401
        login(target["email"], new_password)

    def test_reset_ends_sessions(self, admin_client, login, create_user):
        target = create_user("TRAINEE")
        c = login(target["email"])
        admin_client.post("/admin/users/reset-password", data={"user_id": target["id"]})
        response = c.get("/dashboard", follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"].startswith("/login")

    def test_reset_unknown_user(self, admin_client):
        response = admin_client.post("/admin/users/reset-password", data={"user_id": "USR-NOPE"},
                                     follow_redirects=False)
        assert "User+not+found" in response.headers["location"]

    def test_cannot_deactivate_self(self, admin_client, users):
        response = admin_client.post("/admin/users/toggle-active", data={"user_id": users["admin"]["id"]},
                                     follow_redirects=False)
        assert "error=" in response.headers["location"]

    def test_deactivate_and_reactivate(self, admin_client, client, login, create_user):
        target = create_user("TRAINER", specialization="Tableau")
        c = login(target["email"])

        admin_client.post("/admin/users/toggle-active", data={"user_id": target["id"]})
        assert c.get("/dashboard", follow_redirects=False).headers["location"].startswith("/login")
        response = client.post("/login", data={"email": target["email"], "password": target["password"]},
                               follow_redirects=False)
        assert response.status_code == 401

        admin_client.post("/admin/users/toggle-active", data={"user_id": target["id"]})
        login(target["email"])


class TestRegister:
    def test_page(self, admin_client):
        response = admin_client.get("/admin/register")
        assert response.status_code == 200
        assert 'name="specialization"' in response.text

    def test_register_trainer(self, admin_client):
        from app.services.trainers import list_trainers

        response = admin_client.post("/admin/register", data={
            "name": "Rhea Registered", "email": "rhea@tms.test", "password": "secret123",
            "role": "TRAINER", "specialization": "Power BI", "department": "",
        }, follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"].startswith("/admin/users?success=")
        assert "Power BI" in [t["specialization"] for t in list_trainers()]

    def test_duplicate_email(self, admin_client, users):
        response = admin_client.post("/admin/register", data={
            "name": "Copy Cat", "email": users["trainee"]["email"].upper(), "password": "secret123",
            "role": "TRAINEE",
        })
        assert response.status_code == 400
        assert "User with this email already exists" in response.text

    def test_trainer_needs_specialization(self, admin_client):
        response = admin_client.post("/admin/register", data={
            "name": "No Skill", "email": "noskill@tms.test", "password": "secret123", "role": "TRAINER",
        })
        assert response.status_code == 400
        assert "Specialization is required for trainers" in response.text

    def test_admin_role_not_registrable(self, admin_client):
        response = admin_client.post("/admin/register", data={
            "name": "Second Admin", "email": "admin2@tms.test", "password": "secret123", "role": "ADMIN",
        })
        assert response.status_code == 400
        assert "Invalid user role" in response.text

    def test_trainer_denied(self, trainer_client):
        response = trainer_client.get("/admin/register", follow_redirects=False)
        assert response.headers["location"] == "/dashboard?error=unauthorized"


class TestActivityLog:
    def test_lists_entries(self, admin_client, create_batch):
        batch = create_batch("Logged Batch")
        response = admin_client.get("/admin/activity-log?entity_type=batch")
        assert response.status_code == 200
        assert f"batch #{batch['id']}" in response.text
        assert "Batch created" in response.text
        assert "System Administrator" in response.text

    def test_operations_denied(self, ops_client):
        response = ops_client.get("/admin/activity-log", follow_redirects=False)
        assert response.headers["location"] == "/dashboard?error=unauthorized"
