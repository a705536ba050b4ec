"""Application configuration via Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Resolve .env from backend/ regardless of CWD
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./rental_platform.db"

    # AI extraction
    gemini_api_key: str = ""
    gemini_model: str = "gemini-3-flash-preview"
    extractor_timeout_seconds: float = 20.0
    extractor_regex_fallback: bool = False

    # Payment intake webhook
    payment_webhook_secret: str = ""

    # Auth / JWT (admin tooling)
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiration_minutes: int = 1440

    # Email (Communication Center)
    sendgrid_api_key: str = ""
    notification_from_email: str = ""

    # CORS / Frontend
    cors_origins: str = "http://localhost:3000"

    # General
    debug: bool = True

    model_config = {"env_file": str(_ENV_FILE), "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list.

        In debug mode, returns ["*"] to allow any origin (LAN IPs, etc.).
        """
        if self.debug:
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def email_configured(self) -> bool:
        return bool(self.sendgrid_api_key and self.notification_from_email)


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
