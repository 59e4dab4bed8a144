import os
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    PROJECT_NAME: str = "Popup Admin API"
    VERSION: str = "1.0.0"

    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./popups.db")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT", "[%(asctime)s] %(levelname)s in %(module)s: %(message)s"
    )

    # Subscriber listing
    DEFAULT_PAGE_LIMIT: int = int(os.getenv("DEFAULT_PAGE_LIMIT", "50"))
    MAX_PAGE_LIMIT: int = int(os.getenv("MAX_PAGE_LIMIT", "250"))
    ACTIVE_SUBSCRIBER_DAYS: int = int(os.getenv("ACTIVE_SUBSCRIBER_DAYS", "30"))

    # Storefront-facing endpoints
    CORS_MAX_AGE: int = int(os.getenv("CORS_MAX_AGE", "86400"))


settings = Settings()
