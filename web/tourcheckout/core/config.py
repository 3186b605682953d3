import os
from typing import Optional, List
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()  # allow local development with a .env file


class Settings:
    """Application settings following Single Responsibility Principle"""

    # Marketplace backend
    MARKETPLACE_API_URL: str = ""
    MARKETPLACE_API_TOKEN: Optional[str] = None
    MARKETPLACE_TIMEOUT_SECONDS: float = 20.0

    # Pending booking cache
    REDIS_DSN: str = "redis://redis:6379/0"
    PENDING_BOOKING_TTL_SECONDS: int = 60 * 60 * 24 * 7  # 7 days
    CANCEL_PREVIEW_TTL_SECONDS: int = 60 * 15

    # Payment sessions
    PAYMENT_GUARD_TTL_SECONDS: int = 60 * 30

    # Business rules
    MARKET_TIMEZONE: str = "Asia/Ho_Chi_Minh"
    CURRENCY: str = "VND"

    # CORS
    CORS_ALLOW_ORIGINS: List[str] = []
    CORS_ALLOW_CREDENTIALS: bool = True

    # Rate Limiting
    RATE_LIMIT_DEFAULT: str = "100/minute"

    LOG_LEVEL: str = "INFO"

    def __init__(self):
        self.MARKETPLACE_API_URL = os.getenv("MARKETPLACE_API_URL", "").rstrip("/")
        self.MARKETPLACE_API_TOKEN = os.getenv("MARKETPLACE_API_TOKEN") or None
        self.MARKETPLACE_TIMEOUT_SECONDS = float(os.getenv("MARKETPLACE_TIMEOUT_SECONDS", "20"))
        self.REDIS_DSN = os.getenv("REDIS_DSN", "redis://redis:6379/0")
        self.PENDING_BOOKING_TTL_SECONDS = int(
            os.getenv("PENDING_BOOKING_TTL_SECONDS", str(60 * 60 * 24 * 7))
        )
        self.CANCEL_PREVIEW_TTL_SECONDS = int(os.getenv("CANCEL_PREVIEW_TTL_SECONDS", str(60 * 15)))
        self.PAYMENT_GUARD_TTL_SECONDS = int(os.getenv("PAYMENT_GUARD_TTL_SECONDS", str(60 * 30)))
        self.MARKET_TIMEZONE = os.getenv("MARKET_TIMEZONE", "Asia/Ho_Chi_Minh")
        self.CURRENCY = os.getenv("CURRENCY", "VND")
        self.RATE_LIMIT_DEFAULT = os.getenv("RATE_LIMIT_DEFAULT", "100/minute")
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self._validate()
        self._parse_cors_origins()

    def _validate(self):
        """Validate required settings"""
        if not self.MARKETPLACE_API_URL:
            raise ValueError("MARKETPLACE_API_URL environment variable must be set")
        if self.MARKETPLACE_TIMEOUT_SECONDS <= 0:
            raise ValueError("MARKETPLACE_TIMEOUT_SECONDS must be positive")

    def _parse_cors_origins(self):
        """Parse CORS origins from environment"""
        raw_origins = os.getenv("CORS_ALLOW_ORIGINS", "*")

        if raw_origins.strip() == "*":
            self.CORS_ALLOW_ORIGINS = ["*"]
            self.CORS_ALLOW_CREDENTIALS = False  # Security: wildcard forbids credentials
        else:
            self.CORS_ALLOW_ORIGINS = [o.strip() for o in raw_origins.split(",") if o.strip()]
            self.CORS_ALLOW_CREDENTIALS = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
