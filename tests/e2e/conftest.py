"""
E2E test conftest -- uvicorn server management against a throwaway SQLite database.
"""
import os
import sys
import time
import subprocess
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

# Force SQLite for E2E tests
os.environ["DATABASE_URL"] = ""
os.environ["SECRET_KEY"] = "e2e-test-secret-key"

E2E_PORT = 8099
E2E_BASE_URL = f"http://localhost:{E2E_PORT}"
E2E_PASSWORD = "e2e_pass_123"

E2E_USERS = {
    "ops": ("E2E Operations", "ops@e2e.test", "OPERATIONS", None, "Delivery"),
    "accounts": ("E2E Accounts", "accounts@e2e.test", "ACCOUNTS", None, "Finance"),
    "trainer": ("E2E Trainer", "trainer@e2e.test", "TRAINER", "Data Analysis", None),
}


@pytest.fixture(scope="session")
def e2e_server(tmp_path_factory):
    """Start a uvicorn server for E2E tests."""
    import app.config as config
    import app.database as database_mod

    test_db_path = tmp_path_factory.mktemp("e2e") / "test_e2e_tms.db"
    config.DATABASE_PATH = test_db_path
    database_mod.DATABASE_PATH = test_db_path

    from app.database import init_database
    init_database()

    from app.auth import register_user
    for name, email, role, specialization, department in E2E_USERS.values():
        register_user(name, email, E2E_PASSWORD, role, specialization=specialization, department=department)

    # Start server on the same database file
    env = os.environ.copy()
    env["DATABASE_URL"] = ""
    env["DATABASE_PATH"] = str(test_db_path)
    proc = subprocess.Popen(
        [
            sys.executable, "-c",
            f"import uvicorn; uvicorn.run('app.main:app', host='127.0.0.1', port={E2E_PORT})",
        ],
        cwd=os.path.join(os.path.dirname(__file__), "..", ".."),
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )

    # Wait for server to start
    import urllib.request
    for _ in range(60):
        try:
            urllib.request.urlopen(f"{E2E_BASE_URL}/login", timeout=2)
            break
        except Exception:
            time.sleep(1)
    else:
        proc.kill()
        raise RuntimeError("E2E server failed to start")

    yield E2E_BASE_URL

    proc.kill()
    proc.wait()


@pytest.fixture(scope="session")
def base_url(e2e_server):
    return e2e_server


@pytest.fixture
def session_for(base_url):
    """Return a function that logs an E2E user in on a fresh requests.Session."""
    import requests
    from app import config

    def _session(key):
        if key == "admin":
            email, password = config.DEFAULT_ADMIN_EMAIL, config.DEFAULT_ADMIN_PASSWORD
        else:
            email, password = E2E_USERS[key][1], E2E_PASSWORD
        session = requests.Session()
        response = session.post(f"{base_url}/login", data={"email": email, "password": password},
                                allow_redirects=False)
        assert response.status_code == 302, f"login failed for {email}"
        return session

    return _session
