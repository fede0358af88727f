from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.models.enums import BotType

ALLOWED_APP_MODES = {"demo", "pilot", "production"}


class Settings(BaseSettings):
    app_name: str = "Order Fulfillment Scheduler"
    app_mode: str = Field(default="demo", validation_alias="APP_MODE")

    database_url: str = Field(
        default="sqlite+pysqlite:///./fulfillment.db",
        validation_alias="FULFILLMENT_DATABASE_URL",
    )
    auto_create_schema: bool = Field(default=True, validation_alias="AUTO_CREATE_SCHEMA")
    cors_allowed_origins: str = "http://localhost:3000,http://localhost:5173"
    testing: bool = Field(default=False, validation_alias="FULFILLMENT_TESTING")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    normal_processing_delay_s: int = 10
    vip_processing_delay_s: int = 5
    resume_lock_ttl_s: int = 5

    app_base_url: str = Field(default="", validation_alias="APP_BASE_URL")
    qstash_url: str = Field(default="https://qstash.upstash.io", validation_alias="QSTASH_URL")
    qstash_token: str = Field(default="", validation_alias="QSTASH_TOKEN")
    qstash_current_signing_key: str = Field(
        default="", validation_alias="QSTASH_CURRENT_SIGNING_KEY"
    )
    qstash_next_signing_key: str = Field(default="", validation_alias="QSTASH_NEXT_SIGNING_KEY")
    qstash_timeout_s: float = 2.0
    qstash_max_retries: int = 2
    qstash_backoff_s: float = 0.2

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @field_validator("app_mode")
    @classmethod
    def validate_app_mode(cls, value: str) -> str:
        mode = value.lower().strip()
        if mode not in ALLOWED_APP_MODES:
            allowed = ", ".join(sorted(ALLOWED_APP_MODES))
            raise ValueError(f"APP_MODE must be one of: {allowed}")
        return mode

    @field_validator("normal_processing_delay_s", "vip_processing_delay_s", "resume_lock_ttl_s")
    @classmethod
    def validate_positive_seconds(cls, value: int) -> int:
        if value < 1:
            raise ValueError("delays and TTLs must be at least 1 second")
        return value


settings = Settings()


def is_production_mode() -> bool:
    return settings.app_mode == "production"


def allowed_origins() -> list[str]:
    return [origin.strip() for origin in settings.cors_allowed_origins.split(",") if origin.strip()]


def processing_delay_s(bot_type: BotType) -> int:
    if bot_type == BotType.VIP:
        return settings.vip_processing_delay_s
    return settings.normal_processing_delay_s


def push_scheduling_enabled() -> bool:
    return bool(settings.qstash_token.strip() and settings.app_base_url.strip())


def callback_signing_keys() -> tuple[str, str]:
    return settings.qstash_current_signing_key, settings.qstash_next_signing_key


def ensure_secure_runtime_settings() -> None:
    """Fail fast when production-like runtime is misconfigured."""
    if settings.testing:
        return
    if is_production_mode() and _is_sqlite_url(settings.database_url):
        raise RuntimeError("FULFILLMENT_DATABASE_URL must use postgres when APP_MODE=production")
    current_key, next_key = callback_signing_keys()
    if push_scheduling_enabled() and not (current_key and next_key):
        raise RuntimeError(
            "QSTASH_CURRENT_SIGNING_KEY and QSTASH_NEXT_SIGNING_KEY must be set "
            "when QStash scheduling is enabled"
        )


def _is_sqlite_url(database_url: str) -> bool:
    value = database_url.strip().lower()
    return value.startswith("sqlite")
