"""
Integration tests for the JSON API -- batches, trainers, users, registration and email.
"""
import os
import smtplib
import sys
import pytest
from datetime import date, timedelta

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))
os.environ.setdefault("DATABASE_URL", "")
os.environ.setdefault("SECRET_KEY", "integration-test-secret-key")

pytestmark = pytest.mark.integration

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _batch_body(**overrides):
    start = date.today() + timedelta(days=5)
    body = {
        "batch_name": "API Batch",
        "training_mode": "OFFLINE",
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=1)).isoformat(),
        "venue": "Room 4",
        "trainees": [{"name": "Meera", "email": "meera@example.org"}],
    }
    body.update(overrides)
    return body


class TestBatchesApi:
    def test_anonymous_gets_json_401(self, client):
        response = client.get("/api/batches")
        assert response.status_code == 401
        assert response.json() == {"error": "Not authenticated"}

    def test_admin_sees_all(self, admin_client, create_batch):
        create_batch("API Unassigned Batch")
        create_batch("API Assigned Batch", trainer_key="trainer")
        names = [b["batch_name"] for b in admin_client.get("/api/batches").json()]
        assert "API Unassigned Batch" in names
        assert "API Assigned Batch" in names

    def test_trainer_sees_own(self, trainer_client, users, create_batch):
        create_batch("API Trainer Own", trainer_key="trainer")
        create_batch("API Trainer Other", trainer_key="trainer2")
        batches = trainer_client.get("/api/batches").json()
        names = [b["batch_name"] for b in batches]
        assert "API Trainer Own" in names
        assert "API Trainer Other" not in names
        assert {b["trainer_id"] for b in batches} == {users["trainer"]["id"]}

    def test_status_filter(self, admin_client, create_batch):
        create_batch("API Finished", days_from_today=-10, length=1)
        batches = admin_client.get("/api/batches?status=COMPLETED").json()
        assert "API Finished" in [b["batch_name"] for b in batches]
        assert {b["status"] for b in batches} == {"COMPLETED"}

    def test_trainee_forbidden(self, trainee_client):
        response = trainee_client.get("/api/batches")
        assert response.status_code == 403
        assert "error" in response.json()

    def test_create(self, ops_client):
        response = ops_client.post("/api/batches", json=_batch_body())
        assert response.status_code == 201
        batch = response.json()
        assert batch["batch_name"] == "API Batch"
        assert batch["status"] == "UPCOMING"
        assert batch["meeting_link"] is None
        assert batch["venue"] == "Room 4"
        assert [t["name"] for t in batch["trainees"]] == ["Meera"]

    def test_create_invalid(self, ops_client):
        response = ops_client.post("/api/batches", json=_batch_body(training_mode="CARRIER_PIGEON"))
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid training mode: CARRIER_PIGEON"

    def test_create_missing_name(self, ops_client):
        response = ops_client.post("/api/batches", json=_batch_body(batch_name=""))
        assert response.status_code == 400
        assert response.json()["error"] == "Missing required field: batch_name"

    def test_create_malformed_body(self, ops_client):
        response = ops_client.post("/api/batches", json=_batch_body(trainees="nobody"))
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid or missing field: trainees"}

    def test_trainer_cannot_create(self, trainer_client):
        response = trainer_client.post("/api/batches", json=_batch_body())
        assert response.status_code == 403

    def test_get_one(self, admin_client, create_batch):
        batch = create_batch("API Detail Batch")
        response = admin_client.get(f"/api/batches/{batch['id']}")
        assert response.status_code == 200
        assert response.json()["batch_name"] == "API Detail Batch"

    def test_get_other_trainers_batch(self, trainer2_client, create_batch):
        batch = create_batch("API Hidden Batch", trainer_key="trainer")
        response = trainer2_client.get(f"/api/batches/{batch['id']}")
        assert response.status_code == 403
        assert response.json() == {"error": "You do not have permission to view this batch"}

    def test_get_missing(self, admin_client):
        response = admin_client.get("/api/batches/999999")
        assert response.status_code == 404
        assert response.json() == {"error": "Batch not found"}


class TestTrainersApi:
    def test_list(self, ops_client, users):
        trainers = ops_client.get("/api/trainers").json()
        by_id = {t["user_id"]: t for t in trainers}
        assert by_id[users["trainer"]["id"]]["specialization"] == "Python"
        assert users["accounts"]["id"] not in by_id
        assert all(isinstance(t["availability"], bool) for t in trainers)

    def test_accounts_forbidden(self, accounts_client):
        assert accounts_client.get("/api/trainers").status_code == 403


class TestUsersApi:
    def test_create_user(self, ops_client):
        response = ops_client.post("/api/users", json={
            "name": "Api Trainee", "email": "api-trainee@tms.test", "password": "secret123", "role": "TRAINEE",
        })
        assert response.status_code == 201
        created = response.json()
        assert created["role"] == "TRAINEE"
        assert created["email"] == "api-trainee@tms.test"
        assert "password" not in created

    def test_duplicate_email(self, ops_client, users):
        response = ops_client.post("/api/users", json={
            "name": "Dup", "email": users["trainer"]["email"], "password": "secret123", "role": "TRAINEE",
        })
        assert response.status_code == 409
        assert response.json()["error"] == "User with this email already exists"

    def test_missing_fields(self, ops_client):
        response = ops_client.post("/api/users", json={"name": "Only Name"})
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Missing required fields: email, password, role"
        assert set(body["details"]) == {"email", "password", "role"}

    def test_trainee_forbidden(self, trainee_client):
        response = trainee_client.post("/api/users", json={
            "name": "Nope", "email": "nope@tms.test", "password": "secret123", "role": "TRAINEE",
        })
        assert response.status_code == 403


class TestRegisterApi:
    def test_register(self, client):
        response = client.post("/api/register", json={
            "name": "Self Registered", "email": "self@tms.test", "password": "secret123",
            "role": "TRAINER", "specialization": "Statistics",
        })
        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "User registered successfully"
        assert body["user"]["specialization"] == "Statistics"

    def test_admin_role_rejected(self, client):
        response = client.post("/api/register", json={
            "name": "Sneaky", "email": "sneaky@tms.test", "password": "secret123", "role": "ADMIN",
        })
        assert response.status_code == 400
        assert response.json()["details"]["role"] == "Invalid user role"

    def test_field_errors_listed(self, client):
        response = client.post("/api/register", json={
            "name": "X", "email": "not-an-email", "password": "123", "role": "TRAINEE",
        })
        assert response.status_code == 400
        assert set(response.json()["details"]) == {"name", "email", "password"}


class TestTestTrainerEndpoint:
    def test_disabled_by_default(self, client):
        response = client.post("/api/test-trainer", json={
            "name": "Test Trainer", "email": "tt@tms.test", "specialization": "QA",
        })
        assert response.status_code == 404

    def test_enabled(self, client, monkeypatch):
        from app import config
        from app.auth import authenticate_user

        monkeypatch.setattr(config, "ENABLE_TEST_ENDPOINTS", True)
        response = client.post("/api/test-trainer", json={
            "name": "Test Trainer", "email": "tt-enabled@tms.test", "specialization": "QA",
        })
        assert response.status_code == 201
        assert response.json()["role"] == "TRAINER"
        assert authenticate_user("tt-enabled@tms.test", config.TEST_TRAINER_DEFAULT_PASSWORD)


class TestSendEmail:
    def _post(self, c, **data):
        form = {"email": "manager@example.org", "subject": "Attendance", "message": "See attached"}
        form.update(data)
        return c.post("/api/send-email", data=form,
                      files={"file": ("attendance.xlsx", b"xlsx-bytes", XLSX)})

    def test_sends(self, trainer_client, monkeypatch):
        sent = []
        monkeypatch.setattr("app.routes.api_routes.send_email",
                            lambda *args, **kwargs: sent.append((args, kwargs)))
        response = self._post(trainer_client)
        assert response.status_code == 200
        assert response.json() == {"success": True}

        (args, kwargs), = sent
        assert args[:2] == ("manager@example.org", "Attendance")
        assert kwargs["attachment"] == b"xlsx-bytes"
        assert kwargs["filename"] == "attendance.xlsx"

    def test_missing_fields(self, trainer_client):
        response = self._post(trainer_client, subject="")
        assert response.status_code == 400
        assert response.json() == {"error": "Missing required fields"}

    def test_smtp_failure(self, trainer_client, monkeypatch):
        def fail(*args, **kwargs):
            raise smtplib.SMTPException("relay down")

        monkeypatch.setattr("app.routes.api_routes.send_email", fail)
        response = self._post(trainer_client)
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to send email"}

    def test_anonymous(self, client):
        response = self._post(client)
        assert response.status_code == 401
