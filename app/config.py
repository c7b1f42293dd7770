"""
Application configuration settings.
"""
import os
from pathlib import Path

# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent

# Load .env file if it exists (for local development)
env_file = BASE_DIR / ".env"
if env_file.exists():
    with open(env_file) as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith('#') and '=' in line:
                key, value = line.split('=', 1)
                os.environ.setdefault(key.strip(), value.strip())


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Database - SQLite locally, PostgreSQL when DATABASE_URL points at one
DATABASE_URL = os.getenv("DATABASE_URL", "")
DATABASE_PATH = Path(os.getenv("DATABASE_PATH", str(BASE_DIR / "tms_portal.db")))

USE_POSTGRES = DATABASE_URL.startswith("postgres")

# Hosted Postgres often hands out postgres:// but psycopg2 needs postgresql://
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

# Security
SECRET_KEY = os.getenv("SECRET_KEY", "change-this-secret-key-in-production")
SESSION_COOKIE_NAME = "tms_session"
SESSION_MAX_AGE = 60 * 60 * 24  # 24 hours in seconds

# Seeded administrator
DEFAULT_ADMIN_EMAIL = os.getenv("DEFAULT_ADMIN_EMAIL", "admin@example.com")
DEFAULT_ADMIN_PASSWORD = os.getenv("DEFAULT_ADMIN_PASSWORD", "Admin@123")

# File paths
TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
STATIC_DIR = Path(__file__).resolve().parent / "static"
UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", str(BASE_DIR / "uploads")))

# Mail transport for attendance reports
EMAIL_HOST = os.getenv("EMAIL_HOST", "smtp.gmail.com")
EMAIL_PORT = int(os.getenv("EMAIL_PORT", "587"))
EMAIL_SECURE = _env_flag("EMAIL_SECURE")
EMAIL_USER = os.getenv("EMAIL_USER", "")
EMAIL_PASSWORD = os.getenv("EMAIL_PASSWORD", "")
EMAIL_FROM = os.getenv("EMAIL_FROM", "training@example.com")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Debug-only endpoints such as /api/test-trainer
ENABLE_TEST_ENDPOINTS = _env_flag("ENABLE_TEST_ENDPOINTS")
TEST_TRAINER_DEFAULT_PASSWORD = "password123"

# Training modes
TRAINING_MODES = ["ONLINE", "OFFLINE", "HYBRID"]

# Status options
BATCH_STATUS_OPTIONS = ["UPCOMING", "ONGOING", "COMPLETED"]
ASSIGNMENT_STATUS_OPTIONS = ["PENDING", "ACCEPTED", "REJECTED", "COMPLETED"]
PO_STATUS_OPTIONS = ["PENDING", "PROCESSED", "INVOICED"]
INVOICE_STATUS_OPTIONS = ["PENDING", "PAID", "OVERDUE"]
NOTIFICATION_TYPES = ["TRAINING_DECLINED", "PURCHASE_ORDER_NEEDED", "SYSTEM"]

# Accepted upload types for purchase order documents
PO_DOCUMENT_EXTENSIONS = [".pdf", ".png", ".jpg", ".jpeg", ".doc", ".docx"]
