"""Tests for Settings from environment."""

import logging
import os
from pathlib import Path

import pydantic
import pytest

from expedientes.logging_config import configure_app_logging
from expedientes.settings import Settings


def test_settings_defaults():
    with _env({}):
        settings = Settings()
    assert settings.db_url is None
    assert settings.log_level == "INFO"
    assert settings.responsibility_cache_ttl_seconds == 300
    assert settings.audit_endpoint is None
    assert settings.audit_timeout_seconds == 5.0
    default_path = settings.resolved_rules_config_path()
    assert default_path.parts[-2:] == ("config", "contextual_rules.yaml")
    assert default_path.exists()


def test_settings_from_environ():
    env = {
        "EXPEDIENTES_DB_URL": "sqlite:///./expedientes.db",
        "EXPEDIENTES_RULES_CONFIG_PATH": "/etc/expedientes/rules.yaml",
        "EXPEDIENTES_LOG_LEVEL": "DEBUG",
        "EXPEDIENTES_RESPONSIBILITY_CACHE_TTL_SECONDS": "60",
        "EXPEDIENTES_AUDIT_ENDPOINT": "https://audit.local/events",
        "EXPEDIENTES_AUDIT_TIMEOUT_SECONDS": "1.5",
    }
    with _env(env):
        settings = Settings()
    assert settings.db_url == "sqlite:///./expedientes.db"
    assert settings.resolved_rules_config_path() == Path("/etc/expedientes/rules.yaml")
    assert settings.log_level == "DEBUG"
    assert settings.responsibility_cache_ttl_seconds == 60
    assert settings.audit_endpoint == "https://audit.local/events"
    assert settings.audit_timeout_seconds == 1.5


def test_settings_reject_non_numeric_ttl():
    with pytest.raises(pydantic.ValidationError):
        with _env({"EXPEDIENTES_RESPONSIBILITY_CACHE_TTL_SECONDS": "soon"}):
            Settings()


def test_configure_app_logging_sets_package_level():
    package_logger = logging.getLogger("expedientes")
    previous = package_logger.level
    try:
        configure_app_logging("warning")
        assert package_logger.level == logging.WARNING
        assert logging.getLogger("expedientes.authz.engine").getEffectiveLevel() == logging.WARNING
    finally:
        package_logger.setLevel(previous)


def _env(env: dict):
    class _Env:
        def __enter__(self):
            self._saved = os.environ.copy()
            os.environ.clear()
            os.environ.update(env)
            return self

        def __exit__(self, *args):
            os.environ.clear()
            os.environ.update(self._saved)
            return False

    return _Env()
