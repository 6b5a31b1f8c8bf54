import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

DEFAULT_CONFIG_PATH = "config.env"


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    node_env: str = "development"
    port: int = 3000
    database: str
    database_password: str = ""
    jwt_secret: str
    jwt_expires_in_days: int = 90
    jwt_cookie_expires_in_days: int = 90
    stripe_secret_key: str = ""
    stripe_publishable_key: str = ""
    stripe_webhook_secret: str = ""
    resend_api_key: str = ""
    email_from: str = "Natours <hello@natours.io>"
    cors_origins: List[str] = ["*"]
    rate_limit_max: int = 100
    rate_limit_window_seconds: int = 15 * 60
    log_level: str = "INFO"

    @property
    def is_development(self) -> bool:
        return self.node_env == "development"

    @property
    def is_production(self) -> bool:
        return self.node_env == "production"

    @property
    def database_url(self) -> str:
        return self.database.replace("<password>", self.database_password)


_cached_settings: Optional[Settings] = None


def load_config(path: Optional[str] = None) -> bool:
    config_path = path or os.getenv("NATOURS_CONFIG", DEFAULT_CONFIG_PATH)
    return load_dotenv(config_path)


def reset_settings() -> None:
    """Reset cached settings, for testing only."""
    global _cached_settings
    _cached_settings = None


def get_settings() -> Settings:
    global _cached_settings
    if _cached_settings is not None:
        return _cached_settings

    origins = os.getenv("CORS_ORIGINS", "*")
    _cached_settings = Settings(
        node_env=os.getenv("NODE_ENV", "development"),
        port=int(os.getenv("PORT", "3000")),
        database=os.environ["DATABASE"],
        database_password=os.getenv("DATABASE_PASSWORD", ""),
        jwt_secret=os.environ["JWT_SECRET"],
        jwt_expires_in_days=int(os.getenv("JWT_EXPIRES_IN_DAYS", "90")),
        jwt_cookie_expires_in_days=int(os.getenv("JWT_COOKIE_EXPIRES_IN_DAYS", "90")),
        stripe_secret_key=os.getenv("STRIPE_SECRET_KEY", ""),
        stripe_publishable_key=os.getenv("STRIPE_PUBLISHABLE_KEY", ""),
        stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET", ""),
        resend_api_key=os.getenv("RESEND_API_KEY", ""),
        email_from=os.getenv("EMAIL_FROM", "Natours <hello@natours.io>"),
        cors_origins=[origin.strip() for origin in origins.split(",") if origin.strip()],
        rate_limit_max=int(os.getenv("RATE_LIMIT_MAX", "100")),
        rate_limit_window_seconds=int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "900")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
    return _cached_settings
