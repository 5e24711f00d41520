import pytest
import settings as settings_module
from settings import (
    DEFAULT_RATE_LIMIT_PER_MIN,
    DEFAULT_TIMEZONE,
    DEFAULT_WARN_HOURS,
    SettingsError,
    load_settings,
)


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    for key in (
        "TIMESHEET_TIMEZONE",
        "TIMESHEET_DEADLINE_WARN_HOURS",
        "TIMESHEET_RATE_LIMIT_PER_MIN",
        "TIMESHEET_RATE_LIMIT_BURST",
    ):
        monkeypatch.delenv(key, raising=False)


def test_defaults():
    settings = load_settings()

    assert settings.timezone == DEFAULT_TIMEZONE
    assert settings.deadline_warn_hours == DEFAULT_WARN_HOURS
    assert settings.rate_limit_per_min == DEFAULT_RATE_LIMIT_PER_MIN
    assert str(settings.zone) == "America/Denver"


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("TIMESHEET_TIMEZONE", "Europe/Berlin")
    monkeypatch.setenv("TIMESHEET_DEADLINE_WARN_HOURS", "48")
    monkeypatch.setenv("TIMESHEET_DB_URL", "sqlite:///elsewhere.db")

    settings = load_settings()

    assert settings.timezone == "Europe/Berlin"
    assert settings.deadline_warn_hours == 48
    assert settings.database_url == "sqlite:///elsewhere.db"


def test_unknown_zone_is_rejected(monkeypatch):
    monkeypatch.setenv("TIMESHEET_TIMEZONE", "Mars/Olympus_Mons")

    with pytest.raises(SettingsError):
        load_settings()


@pytest.mark.parametrize("raw", ["soon", "-3"])
def test_bad_integer_is_rejected(monkeypatch, raw):
    monkeypatch.setenv("TIMESHEET_DEADLINE_WARN_HOURS", raw)

    with pytest.raises(SettingsError) as excinfo:
        load_settings()
    assert "TIMESHEET_DEADLINE_WARN_HOURS" in str(excinfo.value)


def test_module_documents_its_environment_settings():
    assert settings_module.__doc__ is not None
    assert settings_module.__doc__.strip().startswith("Environment-driven configuration")
