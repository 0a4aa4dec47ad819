"""
Academy Backend Configuration
Environment-driven settings shared by every router and service
"""

import os
import logging
from typing import List

logger = logging.getLogger(__name__)


class Config:
    """Configuration read once from the environment"""

    def __init__(self):
        # MongoDB
        self.MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
        self.MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "academy_db")

        # Signed access tokens
        self.JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
        self.JWT_ALGORITHM = "HS256"
        self.ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))

        # Password hashing cost
        self.BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

        # Razorpay
        self.RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID", "")
        self.RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET", "")
        self.DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "INR")

        # HTTP
        self.CORS_ORIGINS = self._parse_list(os.getenv("CORS_ORIGINS", "*"))

        # Misc
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.SEED_DEMO_USERS = os.getenv("SEED_DEMO_USERS", "false").lower() in ("1", "true", "yes")

        if not self.JWT_SECRET_KEY:
            logger.warning("JWT_SECRET_KEY not set, using an insecure development secret")
            self.JWT_SECRET_KEY = "dev-secret-change-me"

    @staticmethod
    def _parse_list(value: str) -> List[str]:
        """Parse comma-separated values into a list"""
        return [item.strip() for item in value.split(",") if item.strip()]


config = Config()
