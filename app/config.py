"""Service configuration, read from the environment and ``.env``."""

from functools import lru_cache
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

CLOCK_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class Settings(BaseSettings):
    """Front-desk queue service settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_parse_none_str="null",
    )

    app_name: str = Field(default="Hospital Front Desk API", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    api_v1_prefix: str = Field(default="/api/v1", alias="API_V1_PREFIX")

    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    # Storage and caller identity
    database_url: str = Field(..., alias="DATABASE_URL")
    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=30, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Queue scheduling
    clinic_timezone: str = Field(default="Africa/Harare", alias="CLINIC_TIMEZONE")
    default_shift_start: str = Field(
        default="08:00", pattern=CLOCK_PATTERN, alias="DEFAULT_SHIFT_START"
    )
    default_shift_end: str = Field(default="16:00", pattern=CLOCK_PATTERN, alias="DEFAULT_SHIFT_END")
    consultation_duration_minutes: int = Field(
        default=25, ge=1, alias="CONSULTATION_DURATION_MINUTES"
    )
    # 8 hour shift at 25 minutes per patient
    default_max_patients_per_day: int = Field(
        default=19, ge=0, alias="DEFAULT_MAX_PATIENTS_PER_DAY"
    )
    reschedule_horizon_days: int = Field(default=30, ge=1, alias="RESCHEDULE_HORIZON_DAYS")
    queue_conflict_max_retries: int = Field(default=3, ge=1, alias="QUEUE_CONFLICT_MAX_RETRIES")

    # Push delivery
    push_notifications_enabled: bool = Field(
        default=False,
        alias="PUSH_NOTIFICATIONS_ENABLED",
        description="Fan in-app notifications out to FCM device tokens",
    )
    firebase_credentials_path: str | None = Field(
        default=None,
        alias="FIREBASE_CREDENTIALS_PATH",
        description="Path to Firebase service account JSON file",
    )
    firebase_config_json: str | None = Field(
        default=None,
        alias="FIREBASE_CONFIG_JSON",
        description="Raw JSON string of the Firebase service account",
    )

    cors_origins_str: str = Field(default="http://localhost:3000", alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: Literal["json", "console"] = Field(default="json", alias="LOG_FORMAT")

    @field_validator("clinic_timezone")
    @classmethod
    def check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value

    @property
    def cors_origins(self) -> list[str]:
        """Comma separated CORS_ORIGINS as a list."""
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()  # type: ignore[call-arg]


settings = get_settings()
