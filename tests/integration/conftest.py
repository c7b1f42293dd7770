"""
Integration test conftest -- test database setup, seeded users and logged-in TestClients.
"""
import itertools
import os
import sys
import pytest
from datetime import date, timedelta

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

# Force SQLite for integration tests
os.environ["DATABASE_URL"] = ""
os.environ["SECRET_KEY"] = "integration-test-secret-key"

from starlette.testclient import TestClient

TEST_PASSWORD = "testpass123"

_user_counter = itertools.count(1)

SEED_USERS = {
    # key: (name, email, role, specialization, department)
    "ops": ("Olivia Ops", "ops@tms.test", "OPERATIONS", None, "Delivery"),
    "accounts": ("Aman Accounts", "accounts@tms.test", "ACCOUNTS", None, "Finance"),
    "trainer": ("Tara Trainer", "trainer@tms.test", "TRAINER", "Python", None),
    "trainer2": ("Tom Trainer", "trainer2@tms.test", "TRAINER", "Excel", None),
    "trainee": ("Tina Trainee", "trainee@tms.test", "TRAINEE", None, None),
}


@pytest.fixture(scope="session")
def test_db(tmp_path_factory):
    """Initialize a fresh SQLite test database."""
    import app.config as config
    import app.database as database_mod

    base = tmp_path_factory.mktemp("tms")
    test_db_path = base / "test_tms.db"
    config.DATABASE_PATH = test_db_path
    database_mod.DATABASE_PATH = test_db_path
    config.UPLOAD_DIR = base / "uploads"

    from app.database import init_database
    init_database()

    yield test_db_path


@pytest.fixture(scope="session")
def app(test_db):
    import app.main as main_mod
    import app.config as config
    main_mod.UPLOAD_DIR = config.UPLOAD_DIR
    return main_mod.app


@pytest.fixture(scope="session")
def client(app):
    """Anonymous TestClient. Never log in with this one."""
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture(scope="session")
def users(test_db):
    """One registered account per non-admin role, plus the seeded admin."""
    from app import config
    from app.auth import register_user

    created = {}
    for key, (name, email, role, specialization, department) in SEED_USERS.items():
        user = register_user(name, email, TEST_PASSWORD, role,
                             specialization=specialization, department=department)
        user["password"] = TEST_PASSWORD
        created[key] = user
    created["admin"] = {"id": "ADMIN", "name": "System Administrator",
                        "email": config.DEFAULT_ADMIN_EMAIL.lower(),
                        "password": config.DEFAULT_ADMIN_PASSWORD, "role": "ADMIN"}
    return created


@pytest.fixture
def login(app, users):
    """Return a function that logs a user in on a fresh TestClient."""
    def _login(email, password=TEST_PASSWORD):
        c = TestClient(app, raise_server_exceptions=False)
        response = c.post("/login", data={"email": email, "password": password},
                          follow_redirects=False)
        assert response.status_code == 302, f"login failed for {email}"
        return c
    return _login


@pytest.fixture
def admin_client(login, users):
    return login(users["admin"]["email"], users["admin"]["password"])


@pytest.fixture
def ops_client(login, users):
    return login(users["ops"]["email"])


@pytest.fixture
def accounts_client(login, users):
    return login(users["accounts"]["email"])


@pytest.fixture
def trainer_client(login, users):
    return login(users["trainer"]["email"])


@pytest.fixture
def trainer2_client(login, users):
    return login(users["trainer2"]["email"])


@pytest.fixture
def trainee_client(login, users):
    return login(users["trainee"]["email"])


@pytest.fixture
def create_batch(users):
    """Create a batch through the service layer and return it."""
    from app.services import batches as batch_service

    def _create(batch_name="Integration Batch", trainer_key=None, days_from_today=0, length=3,
                trainees=None, **overrides):
        start = date.today() + timedelta(days=days_from_today)
        data = {
            "batch_name": batch_name,
            "training_mode": "ONLINE",
            "start_date": start.isoformat(),
            "end_date": (start + timedelta(days=length)).isoformat(),
            "meeting_link": "https://meet.example.com/room",
            "trainer_id": users[trainer_key]["id"] if trainer_key else None,
            "trainees": trainees if trainees is not None else [
                {"name": "Asha", "email": "asha@example.org"},
                {"name": "Ravi", "email": "ravi@example.org"},
            ],
        }
        data.update(overrides)
        return batch_service.create_batch(data, "ADMIN")

    return _create


@pytest.fixture
def create_user(test_db):
    """Register a throwaway account for tests that change or lock a user."""
    from app.auth import register_user

    def _create(role="TRAINEE", **kwargs):
        n = next(_user_counter)
        email = kwargs.pop("email", f"{role.lower()}-{n}@tms.test")
        user = register_user(kwargs.pop("name", f"Temp {role.title()} {n}"), email, TEST_PASSWORD, role,
                             **kwargs)
        user["password"] = TEST_PASSWORD
        return user

    return _create
