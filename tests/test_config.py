"""Tests for engine settings."""
import pytest
from pydantic import ValidationError

from clinic_scheduling.config import (
    DevelopmentConfig, ProductionConfig, Settings, TestingConfig, get_config_by_env, get_settings,
)


class TestSettings:
    def test_defaults(self):
        settings = Settings(DATABASE_URL="sqlite://")

        assert settings.slot_step_minutes == 30
        assert settings.consuming_statuses == ["COMPLETED", "NO_SHOW"]
        assert settings.slot_cache_enabled is True
        assert settings.is_sqlite

    def test_consuming_statuses_from_comma_string(self):
        settings = Settings(PACKAGE_CONSUMING_STATUSES=" completed , completed")

        assert settings.consuming_statuses == ["COMPLETED"]

    def test_consuming_statuses_from_list(self):
        settings = Settings(package_consuming_statuses=["NO_SHOW", "COMPLETED"])

        assert settings.consuming_statuses == ["NO_SHOW", "COMPLETED"]

    @pytest.mark.parametrize("value", ["CANCELLED", "COMPLETED,SCHEDULED", ""])
    def test_rejects_statuses_that_cannot_consume(self, value):
        with pytest.raises(ValidationError):
            Settings(PACKAGE_CONSUMING_STATUSES=value)

    def test_consuming_statuses_from_environment(self, monkeypatch):
        monkeypatch.setenv("PACKAGE_CONSUMING_STATUSES", "COMPLETED")

        assert get_settings().consuming_statuses == ["COMPLETED"]

    def test_slot_step_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(SLOT_STEP_MINUTES=0)

    def test_database_url_must_be_supported(self):
        with pytest.raises(ValidationError):
            Settings(DATABASE_URL="mysql://localhost/clinic")

    def test_log_level_is_upper_cased(self):
        assert Settings(LOG_LEVEL="debug").log_level == "DEBUG"

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()


class TestEnvironmentConfigs:
    def test_testing_config(self):
        config = get_config_by_env("testing")

        assert isinstance(config, TestingConfig)
        assert config.database_url == "sqlite://"
        assert config.slot_cache_enabled is False

    def test_production_config_logs_json(self):
        config = get_config_by_env("PRODUCTION")

        assert isinstance(config, ProductionConfig)
        assert config.log_json is True
        assert config.is_production

    def test_development_config(self):
        assert isinstance(get_config_by_env("development"), DevelopmentConfig)

    def test_unknown_environment_falls_back_to_base_settings(self):
        assert type(get_config_by_env("staging")) is Settings
