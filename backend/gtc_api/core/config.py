"""
Application configuration settings.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # Application
    APP_ENV: str = "development"
    DEBUG: bool = True
    APP_NAME: str = "GTC Membership API"
    API_V1_PREFIX: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./gtc.db"

    # JWT Authentication
    SECRET_KEY: str = "your-super-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 1 day

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Membership numbering
    MEMBERSHIP_NUMBER_FLOOR: int = 1

    # Email (SendGrid)
    SENDGRID_API_KEY: Optional[str] = None
    SENDGRID_API_URL: str = "https://api.sendgrid.com/v3/mail/send"
    FROM_EMAIL: str = "membership@gtc.org.uk"
    FROM_NAME: str = "GTC Membership"
    EMAIL_LOG_PATH: str = "/tmp/gtc_emails.log"
    IMPORT_NOTIFICATION_RECIPIENTS: list[str] = ["membership@gtc.org.uk"]

    # Mailchimp
    MAILCHIMP_API_KEY: Optional[str] = None
    MAILCHIMP_LIST_ID: Optional[str] = None
    MAILCHIMP_TIMEOUT: float = 10.0

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()
