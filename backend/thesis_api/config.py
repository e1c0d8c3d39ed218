"""Application settings and validation."""

import os
from pathlib import Path
from typing import List, Optional

BASE = Path(__file__).resolve().parent.parent

_DEFAULT_JWT_SECRET = "change_me_for_prod"
_DEFAULT_REFRESH_SECRET = "change_me_refresh_for_prod"


class Settings:
    ENV: str
    DATABASE_URL: str
    JWT_SECRET: str
    JWT_REFRESH_SECRET: str
    JWT_ALGORITHM: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int
    REFRESH_TOKEN_EXPIRE_DAYS: int
    MAX_UPLOAD_BYTES: int
    UPLOAD_DIR: Path
    UPLOAD_BASE_URL: str
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    CORS_ORIGINS: List[str]
    RATE_LIMIT_MAX: int
    RATE_LIMIT_WINDOW_SECONDS: int
    OPENAI_API_KEY: Optional[str]
    OPENAI_MODEL: str
    LOG_LEVEL: str

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'app.db'}")
        self.JWT_SECRET = os.getenv("JWT_SECRET", _DEFAULT_JWT_SECRET)
        self.JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET", _DEFAULT_REFRESH_SECRET)
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "15"))
        self.REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))
        self.MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))  # 10 MB default
        self.UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", str(BASE / "data" / "uploads"))).expanduser().resolve()
        self.UPLOAD_BASE_URL = os.getenv("UPLOAD_BASE_URL", "/uploads").rstrip("/")
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.CORS_ORIGINS = [
            o.strip()
            for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
            if o.strip()
        ]
        self.RATE_LIMIT_MAX = int(os.getenv("RATE_LIMIT_MAX", "100"))
        self.RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", str(15 * 60)))
        self.OPENAI_API_KEY = os.getenv("OPENAI_API_KEY") or None
        self.OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT:
            if self.JWT_SECRET == _DEFAULT_JWT_SECRET or self.JWT_REFRESH_SECRET == _DEFAULT_REFRESH_SECRET:
                raise RuntimeError("JWT_SECRET and JWT_REFRESH_SECRET must be set to non-default values in non-dev environments")
        if self.RATE_LIMIT_MAX < 1 or self.RATE_LIMIT_WINDOW_SECONDS < 1:
            raise RuntimeError("RATE_LIMIT_MAX and RATE_LIMIT_WINDOW_SECONDS must be positive")
