"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from currents.config import Settings


def test_defaults(monkeypatch):
    monkeypatch.delenv("CURRENTS_REMOTE_URL", raising=False)
    monkeypatch.delenv("CURRENTS_MAX_ATTEMPTS", raising=False)
    settings = Settings(_env_file=None)

    assert settings.remote_configured is False
    assert settings.max_attempts is None
    assert settings.request_timeout == 30.0


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("CURRENTS_REMOTE_URL", "http://proxy.test")
    monkeypatch.setenv("CURRENTS_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("CURRENTS_DATA_DIR", str(tmp_path))

    settings = Settings(_env_file=None)

    assert settings.remote_configured is True
    assert settings.max_attempts == 5
    assert settings.data_dir == tmp_path


def test_env_file(monkeypatch, tmp_path):
    monkeypatch.delenv("CURRENTS_AUTH_TOKEN", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("CURRENTS_AUTH_TOKEN=from-file\n")

    assert Settings(_env_file=env_file).auth_token == "from-file"


def test_max_attempts_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(max_attempts=0)
