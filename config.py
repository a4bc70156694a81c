import os
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = ""
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_SECONDS: int = 86400  # 24 hours

    # OTP config
    OTP_EXPIRY_SECONDS: int = 600  # 10 minutes
    OTP_LENGTH: int = 6
    OTP_RATE_LIMIT_ENABLED: bool = True
    OTP_MAX_REQUESTS_PER_HOUR: int = 15
    VERIFY_OTP_MAX_ATTEMPTS_PER_IP: int = 10
    VERIFY_OTP_WINDOW_SECONDS: int = 3600

    # Redis (OTP throttling only)
    REDIS_URL: str = "redis://localhost:6379/0"

    # SMTP
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "noreply@bondcrm.com"

    # Session tracking
    INACTIVITY_TIMEOUT_SECONDS: int = 900  # 15 minutes
    HIDDEN_TAB_TIMEOUT_SECONDS: int = 900  # 15 minutes
    STALE_SESSION_HOURS: int = 24
    SCHEDULER_ENABLED: bool = True
    SESSION_SWEEP_INTERVAL_MINUTES: int = 60

    # Seed data
    DEFAULT_ADMIN_EMAIL: str = "admin@bondcrm.com"
    DEFAULT_ADMIN_NAME: str = "Administrator"

    ENVIRONMENT: str = "development"
    ALLOWED_ORIGINS: str = "*"

    model_config = SettingsConfigDict(
        # Use absolute path to make sure .env is found
        env_file=os.path.join(os.path.dirname(__file__), ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


# Create the settings instance
settings = Settings()
