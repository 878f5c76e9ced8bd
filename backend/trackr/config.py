"""Configuration management for Trackr notifications."""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = "sqlite:///./trackr.db"

    # Resend (e-mail delivery)
    resend_api_key: str = ""
    email_from: str = "Times10 <noreply@trackr.times10.net>"
    email_reply_to: str = "support@trackr.times10.net"

    # Links in notification bodies
    app_base_url: str = "http://localhost:4321"

    # Scheduling (external cron calling `trackr scan` is the default)
    scheduler_enabled: bool = False
    scan_time: str = "09:00"
    user_timezone: str = "UTC"

    # Engine tuning file (YAML)
    notification_config_path: str = ""

    # App
    log_level: str = "INFO"
    env: str = "development"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
