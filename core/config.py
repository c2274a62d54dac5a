# ==================================================================================
# core/config.py: SAKAN Configuration (Stripe + SendGrid + Pydantic v2)
# ==================================================================================
import logging
import sys
from typing import Dict, Optional

from pydantic import EmailStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # ------------------------
    # DATABASE CONFIG
    # ------------------------
    DATABASE_URL: str
    # Public schema kept for migrated rows; read-only fallback for resident lookups
    LEGACY_DATABASE_URL: Optional[str] = None

    # ------------------------
    # SECURITY CONFIG
    # ------------------------
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # ------------------------
    # SENDGRID EMAIL CONFIG
    # ------------------------
    SENDGRID_API_KEY: Optional[str] = None
    MAIL_FROM: Optional[EmailStr] = None

    # ------------------------
    # FRONTEND CONFIG
    # ------------------------
    FRONTEND_URL: str = "http://localhost:3000"

    # ------------------------
    # STRIPE / BILLING CONFIG
    # ------------------------
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None

    STRIPE_ESSENTIAL_MONTH_PRICE_ID: Optional[str] = None
    STRIPE_ESSENTIAL_YEAR_PRICE_ID: Optional[str] = None
    STRIPE_PREMIUM_MONTH_PRICE_ID: Optional[str] = None
    STRIPE_PREMIUM_YEAR_PRICE_ID: Optional[str] = None

    @property
    def PLAN_CATALOG(self) -> Dict[str, Dict[str, Optional[str]]]:
        """Static plan table used to name a subscription from its price id."""
        return {
            "essential": {
                "name": "Essential",
                "month_price_id": self.STRIPE_ESSENTIAL_MONTH_PRICE_ID,
                "year_price_id": self.STRIPE_ESSENTIAL_YEAR_PRICE_ID,
            },
            "premium": {
                "name": "Premium",
                "month_price_id": self.STRIPE_PREMIUM_MONTH_PRICE_ID,
                "year_price_id": self.STRIPE_PREMIUM_YEAR_PRICE_ID,
            },
        }

    # ------------------------
    # ACCESS CODES
    # ------------------------
    ACCESS_CODE_TTL_DAYS: int = 7
    ACCESS_CODE_MAX_ATTEMPTS: int = 3

    # ------------------------
    # ENVIRONMENT SETTINGS
    # ------------------------
    ENVIRONMENT: str = "development"  # 'development' | 'production'
    DEBUG: bool = True

    @property
    def IS_PRODUCTION(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# ------------------------
# Global Settings Loader
# ------------------------
try:
    settings = Settings()
    logger.info("✅ Environment variables loaded (environment=%s, debug=%s)", settings.ENVIRONMENT, settings.DEBUG)
except ValidationError as e:
    print("❌ Environment configuration error: missing or invalid settings!")
    print(e)
    sys.exit(1)
