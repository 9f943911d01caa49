"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Watchshare", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./watchshare.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", alias="LOG_LEVEL"
    )

    request_timeout_seconds: float = Field(
        default=10.0, alias="REQUEST_TIMEOUT", gt=0, le=300
    )
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")

    id_generation_attempts: int = Field(
        default=16, alias="ID_GENERATION_ATTEMPTS", ge=1, le=1_000
    )

    api_url: HttpUrl = Field(
        default="http://localhost:3000", alias="WATCHSHARE_API_URL"
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse the comma separated CORS origins, defaulting to any origin."""

        cleaned: list[str] = []
        for entry in self.cors_origins.split(","):
            origin = entry.strip().rstrip("/")
            if origin and origin not in cleaned:
                cleaned.append(origin)
        return cleaned or ["*"]

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
