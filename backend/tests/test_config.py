"""
Tests for settings validation
"""
import pytest
from pydantic import ValidationError

from auditflow.core.config import Settings

PROD_OK = dict(
    ENV="prod",
    DEBUG=False,
    SCHEDULER_BACKEND="celery",
    NOTIFIER_BACKEND="database",
    CORS_ORIGINS="https://audits.example.com",
)


class TestProdSettings:
    """ENV=prod refuses unsafe combinations"""

    def test_valid_prod_settings(self):
        settings = Settings(_env_file=None, **PROD_OK)
        assert settings.ENV == "prod"

    @pytest.mark.parametrize(
        "override, message",
        [
            ({"DEBUG": True}, "DEBUG must be false"),
            ({"SCHEDULER_BACKEND": "memory"}, "SCHEDULER_BACKEND=memory"),
            ({"NOTIFIER_BACKEND": "memory"}, "NOTIFIER_BACKEND=memory"),
            ({"CORS_ORIGINS": "http://localhost:3000"}, "localhost"),
        ],
    )
    def test_rejects_unsafe_values(self, override, message):
        with pytest.raises(ValidationError, match=message):
            Settings(_env_file=None, **{**PROD_OK, **override})

    def test_dev_allows_memory_backends(self):
        settings = Settings(_env_file=None, ENV="dev", SCHEDULER_BACKEND="memory", NOTIFIER_BACKEND="memory")
        assert settings.SCHEDULER_BACKEND == "memory"


class TestDefaults:

    def test_reminder_timing(self):
        settings = Settings(_env_file=None)
        assert settings.AUDIT_REMINDER_LEAD_HOURS == 24
        assert settings.OBSERVATION_REMINDER_CADENCE_HOURS == 24
        assert "auditor" in settings.AUDIT_MANAGER_ROLES
        assert "worker" not in settings.AUDIT_MANAGER_ROLES
