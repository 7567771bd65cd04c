"""Application settings and validation."""

import os
from decimal import Decimal
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent


class Settings:
    ENV: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_HOURS: int
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    DATABASE_URL: str
    MAX_UPLOAD_BYTES: int
    RATE_LIMIT_PER_MIN: int
    IMPORT_RATE_LIMIT_PER_MIN: int
    RATE_LIMIT_WINDOW_SECONDS: int
    RECURRING_SCHEDULER_ENABLED: bool
    SEED_DEFAULTS: bool
    AUDIT_THRESHOLD: Decimal
    LOG_LEVEL: str

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "24"))
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'app.db'}")
        self.MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))  # 10 MB default
        self.RATE_LIMIT_PER_MIN = int(os.getenv("RATE_LIMIT_PER_MIN", "300"))
        self.IMPORT_RATE_LIMIT_PER_MIN = int(os.getenv("IMPORT_RATE_LIMIT_PER_MIN", "10"))
        self.RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
        self.RECURRING_SCHEDULER_ENABLED = os.getenv("RECURRING_SCHEDULER_ENABLED", "true").lower() == "true"
        self.SEED_DEFAULTS = os.getenv("SEED_DEFAULTS", "true").lower() == "true"
        self.AUDIT_THRESHOLD = Decimal(os.getenv("AUDIT_THRESHOLD", "1000000"))
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.RATE_LIMIT_PER_MIN < 1 or self.IMPORT_RATE_LIMIT_PER_MIN < 1:
            raise RuntimeError("rate limits must be positive")


settings = Settings()
