from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"

    # Hosted backend (auth, relational storage, stored procedures)
    supabase_url: str = "http://localhost:54321"
    supabase_anon_key: str = ""
    backend_timeout_seconds: float = 10.0

    # QR token protocol
    qr_freshness_window_seconds: int = 60
    qr_countdown_step_seconds: float = 1.0
    qr_obfuscation_key: str = "nailbliss-2024"
    qr_signing_secret: str | None = None
    qr_renderer: Literal["local", "remote"] = "local"
    qr_image_size: int = 200
    qr_remote_renderer_url: str = "https://api.qrserver.com/v1/create-qr-code/"

    # Loyalty programme
    loyalty_reward_threshold: int = Field(default=5, gt=0)

    # Internal API security
    observability_api_key: str = ""

    # CORS origin for the customer and staff web client
    frontend_url: str = "http://localhost:3000"

    @field_validator("supabase_url", mode="before")
    @classmethod
    def _strip_trailing_slash(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().rstrip("/")
        return value

    @field_validator("qr_signing_secret", mode="before")
    @classmethod
    def _blank_secret_is_unset(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def qr_freshness_window_ms(self) -> int:
        return self.qr_freshness_window_seconds * 1000


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
