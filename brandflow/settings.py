from typing import Literal

from pydantic import computed_field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from brandflow.utils.settings_utils import DockerSecretsSettingsSource


class GeneralConfig(BaseSettings):
    PUBLIC_API_URL: str = "http://localhost:8000"
    RUN_MIGRATIONS_ON_STARTUP: bool = True
    SENTRY_DSN: str = ""
    SENTRY_ENVIRONMENT: str = ""
    LOG_FORMAT: Literal["json", "console"] = "json"
    LOG_LEVEL: str = "INFO"


class DatabaseConfig(BaseSettings):
    DATABASE_USER: str = "admin"
    DATABASE_PASSWORD: str = "secret"
    DATABASE_HOST: str = "db"
    DATABASE_PORT: int = 5432
    DATABASE_NAME: str = "postgres"
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10

    # Tests run against in-memory SQLite unless this points at a real database
    TEST_DATABASE_URL: str = "sqlite+aiosqlite:///:memory:"

    @computed_field
    @property
    def DATABASE_URL(self) -> str:
        return f"postgresql+asyncpg://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}"


class AuthConfig(BaseSettings):
    # Access tokens are issued by the hosted auth platform and signed with its JWT secret
    AUTH_JWT_SECRET: str = "brandflow-jwt-secret-change-in-production"
    AUTH_JWT_ALGORITHM: str = "HS256"
    AUTH_JWT_AUDIENCE: str | None = "authenticated"
    # Users signing in with one of these emails are created as administrators
    ADMIN_EMAILS: list[str] = []


class WorkflowConfig(BaseSettings):
    OUTBOUND_WEBHOOK_TIMEOUT_SECONDS: float = 10.0
    SESSION_TIMEOUT_MINUTES: int = 30
    API_KEY_LENGTH: int = 48


class StorageConfig(BaseSettings):
    STORAGE_TYPE: Literal["local", "s3"] = "local"
    STORAGE_LOCAL_ROOT: str = "./storage"
    STORAGE_BUCKET: str = "brandflow-assets"

    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_REGION: str = "us-east-1"


class BillingConfig(BaseSettings):
    STRIPE_SECRET_KEY: str = ""
    STRIPE_PUBLISHABLE_KEY: str = ""
    STRIPE_CURRENCY: str = "usd"
    CHECKOUT_SUCCESS_URL: str = "http://localhost:5173/payment-success"
    CHECKOUT_CANCEL_URL: str = "http://localhost:5173/settings"


class AIConfig(BaseSettings):
    OPENAI_API_KEY: str = ""
    AI_MODEL_POSTS: str = "openai/gpt-4o-mini"
    AI_MODEL_BRAND_ANALYSIS: str = "openai/gpt-4o-mini"


class SchedulerConfig(BaseSettings):
    SCHEDULER_ENABLED: bool = True
    SESSION_REAPER_INTERVAL_SECONDS: int = 60


class Settings(
    AuthConfig,
    DatabaseConfig,
    GeneralConfig,
    WorkflowConfig,
    StorageConfig,
    BillingConfig,
    AIConfig,
    SchedulerConfig,
    BaseSettings,
):
    model_config = SettingsConfigDict(
        env_file=(".env", ".env.prod", ".env.test"),
        extra="allow",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """
        Define the priority order for settings sources.

        Priority (highest to lowest):
        1. Docker secrets from files (reads *_FILE env vars)
        2. Environment variables
        3. .env files
        4. Default values
        """
        return (
            init_settings,
            DockerSecretsSettingsSource(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )


settings = Settings()
