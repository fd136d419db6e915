"""Tests for logging configuration."""

import logging

from affiliate_ledger.logging_config import _add_service, configure_logging
from affiliate_ledger.settings import settings


class TestConfigureLogging:
    """Tests for configure_logging()."""

    def test_sql_quiet_without_echo(self, monkeypatch):
        """Test SQLAlchemy statements are not logged by default."""
        monkeypatch.setattr(settings, "database_echo", False)

        configure_logging()

        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
        assert logging.getLogger("uvicorn.access").level == logging.WARNING

    def test_sql_logged_with_echo(self, monkeypatch):
        """Test database_echo turns statement logging back on."""
        monkeypatch.setattr(settings, "database_echo", True)
        configure_logging()
        assert logging.getLogger("sqlalchemy.engine").level == logging.INFO

        monkeypatch.setattr(settings, "database_echo", False)
        configure_logging()

    def test_service_fields_added(self):
        event = _add_service(None, "info", {"event": "payout_created"})

        assert event["service"] == settings.app_name
        assert event["env"] == settings.env

    def test_service_fields_not_overwritten(self):
        event = _add_service(None, "info", {"event": "payout_created", "service": "worker"})
        assert event["service"] == "worker"
