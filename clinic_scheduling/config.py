# clinic_scheduling/config.py - Scheduling engine configuration
from dotenv import load_dotenv

load_dotenv()
from typing import List
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class Settings(BaseSettings):
    """Engine settings with validation and environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="allow",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Application
    app_name: str = "Treatment Center Scheduling Engine"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # Database
    database_url: str = Field(default="sqlite:///./clinic.db", alias="DATABASE_URL")
    database_pool_size: int = Field(default=20, alias="DATABASE_POOL_SIZE")
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    # Scheduling
    slot_step_minutes: int = Field(default=30, alias="SLOT_STEP_MINUTES")
    slot_cache_enabled: bool = Field(default=True, alias="SLOT_CACHE_ENABLED")

    # Packages: statuses that count as a used session
    package_consuming_statuses: str = Field(default="COMPLETED,NO_SHOW", alias="PACKAGE_CONSUMING_STATUSES")

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("DATABASE_URL is required")
        if not v.startswith(("postgresql://", "postgresql+psycopg2://", "sqlite://")):
            raise ValueError("DATABASE_URL must be a valid PostgreSQL or SQLite URL")
        return v

    @field_validator("slot_step_minutes")
    @classmethod
    def validate_slot_step(cls, v):
        if v <= 0:
            raise ValueError("SLOT_STEP_MINUTES must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v):
        return (v or "INFO").upper()

    @field_validator("package_consuming_statuses", mode="before")
    @classmethod
    def parse_consuming_statuses(cls, v):
        if isinstance(v, str):
            v = [s for s in (part.strip() for part in v.split(",")) if s]
        statuses = [str(getattr(s, "value", s)).upper() for s in v]
        if not statuses:
            raise ValueError("PACKAGE_CONSUMING_STATUSES must name at least one status")
        for status in statuses:
            if status not in ("COMPLETED", "NO_SHOW"):
                raise ValueError(
                    f"'{status}' cannot consume a package session; use COMPLETED and/or NO_SHOW"
                )
        return ",".join(dict.fromkeys(statuses))

    @property
    def consuming_statuses(self) -> List[str]:
        return self.package_consuming_statuses.split(",")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Environment-specific configurations
class DevelopmentConfig(Settings):
    """Development environment configuration"""
    debug: bool = True
    environment: str = "development"


class ProductionConfig(Settings):
    """Production environment configuration"""
    debug: bool = False
    environment: str = "production"
    log_json: bool = True


class TestingConfig(Settings):
    """Testing environment configuration"""
    debug: bool = True
    environment: str = "testing"
    database_url: str = "sqlite://"
    slot_cache_enabled: bool = False


def get_config_by_env(env: str) -> Settings:
    """Get configuration by environment name"""
    configs = {
        "development": DevelopmentConfig,
        "production": ProductionConfig,
        "testing": TestingConfig
    }

    config_class = configs.get(env.lower(), Settings)
    return config_class()
