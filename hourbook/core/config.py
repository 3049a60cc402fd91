import os
from dotenv import load_dotenv


def _as_list(val: str | None) -> list[str]:
    return [v.strip() for v in (val or "").split(",") if v.strip()]


class Settings:
    def __init__(self) -> None:
        # Load variables from .env into environment
        load_dotenv()
        self.ENVIRONMENT: str = os.getenv("ENVIRONMENT", "production")
        self.SECRET_KEY: str = os.getenv("SECRET_KEY", "changeme")
        self.MONGODB_URI: str = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
        self.MONGODB_DB_NAME: str = os.getenv("MONGODB_DB_NAME", "hourbook")
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
        # Frontend base URL (used in CORS and in links inside reminder emails)
        self.FRONTEND_BASE_URL: str = os.getenv("FRONTEND_BASE_URL", "http://localhost:3000")
        # Optional comma-separated list of additional allowed origins for CORS
        self.ALLOWED_ORIGINS: list[str] = _as_list(os.getenv("ALLOWED_ORIGINS"))
        # Scheduled jobs
        self.CRON_SECRET: str = os.getenv("CRON_SECRET", "")
        self.PAUSE_CRON_JOBS: bool = os.getenv("PAUSE_CRON_JOBS", "false").lower() in {"1", "true", "yes"}
        # Addresses that must never receive automated email (lower-cased)
        self.DISALLOWED_EMAILS: list[str] = [e.lower() for e in _as_list(os.getenv("DISALLOWED_EMAILS"))]

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"


settings = Settings()
