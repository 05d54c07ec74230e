"""
Environment-driven configuration defaults.
"""

import importlib
from unittest.mock import patch

import pytest

from ackledger.core import config


@pytest.fixture
def reload_config(monkeypatch):
    """Reload the config module against the patched environment, ignoring any local .env file."""
    def _reload():
        with patch('dotenv.load_dotenv'):
            return importlib.reload(config)

    yield _reload

    monkeypatch.undo()
    importlib.reload(config)


class TestAppEnv:

    def test_defaults_to_production(self, monkeypatch, reload_config):
        monkeypatch.delenv("APP_ENV", raising=False)

        reloaded = reload_config()

        assert reloaded.APP_ENV == "production"
        assert not reloaded.is_development()

    def test_development_is_opt_in(self, monkeypatch, reload_config):
        monkeypatch.setenv("APP_ENV", "development")

        reloaded = reload_config()

        assert reloaded.APP_ENV == "development"
        assert reloaded.is_development()

    def test_unknown_environment_reported(self, monkeypatch, reload_config):
        monkeypatch.setenv("APP_ENV", "staging")

        reloaded = reload_config()

        assert "Invalid APP_ENV: staging" in reloaded.validate_config()
