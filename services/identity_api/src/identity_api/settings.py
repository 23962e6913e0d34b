from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    app_env: str = "dev"
    log_level: str = "INFO"
    database_url: str = Field(..., validation_alias="DATABASE_URL")
    database_echo: bool = Field(default=False, validation_alias="DATABASE_ECHO")
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")
    refresh_token_secret: str = Field(..., validation_alias="REFRESH_TOKEN_SECRET")
    session_ttl_seconds: int = Field(default=2592000, validation_alias="SESSION_TTL_SECONDS")
    refresh_token_ttl_seconds: int = Field(
        default=2592000, validation_alias="REFRESH_TOKEN_TTL_SECONDS"
    )
    user_cache_ttl_seconds: int = Field(default=3600, validation_alias="USER_CACHE_TTL_SECONDS")
    token_history_limit: int = Field(default=1000, validation_alias="TOKEN_HISTORY_LIMIT")
    default_roles: dict[str, list[str]] = Field(
        default_factory=dict, validation_alias="DEFAULT_ROLES"
    )

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in _LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of: {', '.join(sorted(_LOG_LEVELS))}")
        return value

    @field_validator("refresh_token_secret")
    @classmethod
    def _secret_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("REFRESH_TOKEN_SECRET must not be blank")
        return value

    @field_validator(
        "session_ttl_seconds",
        "refresh_token_ttl_seconds",
        "user_cache_ttl_seconds",
        "token_history_limit",
    )
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("value must be positive")
        return value

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    return Settings()
