"""
Unit tests for app/templates_config.py -- Jinja2 filters.
"""
import os
import sys
import pytest
from datetime import date, datetime

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))
os.environ.setdefault("DATABASE_URL", "")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from app.templates_config import templates, format_date, format_datetime, format_amount, status_class

pytestmark = pytest.mark.unit


class TestFormatDate:
    def test_none(self):
        assert format_date(None) == "-"

    def test_string_truncated(self):
        assert format_date("2025-03-01 10:00:00") == "2025-03-01"

    def test_date_object(self):
        assert format_date(date(2025, 3, 1)) == "2025-03-01"

    def test_custom_format(self):
        assert format_date(date(2025, 3, 1), "%d/%m/%Y") == "01/03/2025"


class TestFormatDatetime:
    def test_none(self):
        assert format_datetime(None) == "-"

    def test_string_truncated(self):
        assert format_datetime("2025-03-01 10:15:42") == "2025-03-01 10:15"

    def test_datetime_object(self):
        assert format_datetime(datetime(2025, 3, 1, 10, 15)) == "2025-03-01 10:15"


class TestFormatAmount:
    def test_thousands(self):
        assert format_amount(150000) == "150,000.00"

    def test_blank(self):
        assert format_amount(None) == "-"
        assert format_amount("") == "-"

    def test_not_a_number(self):
        assert format_amount("n/a") == "n/a"


class TestStatusClass:
    def test_known_status(self):
        assert status_class("REJECTED") == "badge-danger"
        assert status_class("paid") == "badge-success"

    def test_unknown_status(self):
        assert status_class("WHATEVER") == "badge-muted"
        assert status_class(None) == "badge-muted"


class TestRegistration:
    def test_filters_registered(self):
        for name in ("format_date", "format_datetime", "format_amount", "status_class"):
            assert name in templates.env.filters

    def test_nav_items_global(self):
        assert "nav_items" in templates.env.globals
