"""Tests for the settings registry."""

import pytest

from services import settings
from shared.exceptions import SettingsError


def test_defaults_are_returned_before_init():
    assert settings.get_setting("use_remote_api") == "true"
    assert settings.get_setting("unknown_key") == ""


def test_init_and_read_all():
    settings.init_settings()
    values = settings.get_all_settings()

    assert values["remote_api_url"] == "http://localhost:3001/api"
    assert values["log_level"] == "INFO"
    assert set(settings.get_settings_by_category("remote")) == {
        "remote_api_url", "use_remote_api", "remote_timeout_seconds",
    }


def test_set_valid_values():
    assert settings.set_setting("use_remote_api", "false") == ""
    assert settings.set_setting("remote_timeout_seconds", "2.5") == ""

    assert settings.get_bool_setting("use_remote_api") is False
    assert settings.get_float_setting("remote_timeout_seconds") == 2.5


@pytest.mark.parametrize("key, value", [
    ("remote_api_url", "ftp://example.com"),
    ("use_remote_api", "maybe"),
    ("remote_timeout_seconds", "-1"),
    ("remote_timeout_seconds", "soon"),
    ("log_level", "LOUD"),
    ("log_retention_days", "a week"),
])
def test_invalid_values_are_rejected(key, value):
    before = settings.get_setting(key)

    assert settings.set_setting(key, value) != ""
    assert settings.get_setting(key) == before


def test_empty_timeout_means_none():
    assert settings.get_float_setting("remote_timeout_seconds") is None


def test_unvalidated_garbage_in_store_raises_on_float_read():
    from db.local_store import get_connection

    with get_connection() as conn:
        conn.execute("INSERT INTO settings (key, value) VALUES ('remote_timeout_seconds', 'abc')")
        conn.commit()

    with pytest.raises(SettingsError):
        settings.get_float_setting("remote_timeout_seconds")


def test_gateway_follows_settings():
    from services.persistence import PersistenceGateway

    settings.set_setting("remote_api_url", "http://store.internal:3001/api")
    settings.set_setting("remote_timeout_seconds", "4")
    gateway = PersistenceGateway.from_settings()
    assert gateway.remote.base_url == "http://store.internal:3001/api"
    assert gateway.remote.timeout == 4.0

    settings.set_setting("use_remote_api", "false")
    assert PersistenceGateway.from_settings().use_remote is False
