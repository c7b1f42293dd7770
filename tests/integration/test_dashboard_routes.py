"""
Integration tests for the role-aware dashboard.
"""
import os
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))
os.environ.setdefault("DATABASE_URL", "")
os.environ.setdefault("SECRET_KEY", "integration-test-secret-key")

pytestmark = pytest.mark.integration


class TestDashboard:
    def test_anonymous_redirected(self, client):
        response = client.get("/dashboard", follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == "/login"

    def test_admin_sees_batch_cards(self, admin_client):
        response = admin_client.get("/dashboard")
        assert response.status_code == 200
        assert "Total batches" in response.text
        assert "Unread notifications" in response.text

    def test_operations_sees_batch_cards(self, ops_client):
        response = ops_client.get("/dashboard")
        assert response.status_code == 200
        assert "Awaiting trainer response" in response.text

    def test_trainer_sees_assignments(self, trainer_client):
        response = trainer_client.get("/dashboard")
        assert response.status_code == 200
        assert "Pending assignments" in response.text
        assert "Unread notifications" not in response.text

    def test_accounts_sees_purchasing(self, accounts_client):
        response = accounts_client.get("/dashboard")
        assert response.status_code == 200
        assert "Invoices" in response.text
        assert "Total batches" not in response.text

    def test_trainee_sees_plain_dashboard(self, trainee_client):
        response = trainee_client.get("/dashboard")
        assert response.status_code == 200
        assert "Total batches" not in response.text
        assert 'href="/batches"' not in response.text

    def test_unauthorized_banner(self, trainee_client):
        response = trainee_client.get("/dashboard?error=unauthorized")
        assert "You do not have permission to access that page." in response.text


class TestErrorPages:
    def test_unknown_page_is_404(self, admin_client):
        response = admin_client.get("/no-such-page")
        assert response.status_code == 404
        assert "Page not found" in response.text

    def test_unknown_api_path_is_json(self, client):
        response = client.get("/api/no-such-endpoint")
        assert response.status_code == 404
        assert "error" in response.json()
