from functools import lru_cache
from typing import Annotated, List

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    app_name: str = Field(default="Jewelbill Invoicing Service")
    cors_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    )
    supabase_url: AnyHttpUrl | None = Field(
        default=None
    )
    supabase_service_key: str | None = Field(
        default=None
    )
    supabase_timeout: float = Field(
        default=10.0
    )
    use_mock_data: bool = Field(
        default=True
    )
    rate_limit_requests: int = Field(
        default=10
    )
    rate_limit_window_seconds: int = Field(
        default=60
    )
    revalidate_url: AnyHttpUrl | None = Field(
        default=None
    )
    revalidate_secret: str | None = Field(
        default=None
    )
    google_api_key: str | None = Field(
        default=None
    )
    item_description_model: str = Field(
        default="gemini-1.5-flash"
    )
    loyalty_balance_max_attempts: int = Field(
        default=3, ge=1
    )

    model_config = SettingsConfigDict(env_prefix="JEWELBILL_", case_sensitive=False)

    @field_validator("cors_origins", mode="before")
    def _split_origins(cls, value):
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()
