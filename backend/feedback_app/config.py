"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent
DEV_SECRET = "dev-only-secret-change-me-for-production-use"


class Settings:
    ENV: str
    DATABASE_URL: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    TOKEN_SECRET: str
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    STRICT_QUESTION_IDS: bool
    TOKEN_RATE_LIMIT_PER_MIN: int
    TOKEN_RATE_LIMIT_WINDOW_SECONDS: int

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'app.db'}")
        self.JWT_SECRET = os.getenv("JWT_SECRET", DEV_SECRET)
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.TOKEN_SECRET = os.getenv("TOKEN_SECRET", DEV_SECRET)
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        # reject the whole submission when it names a question outside the form
        self.STRICT_QUESTION_IDS = os.getenv("STRICT_QUESTION_IDS", "false").lower() == "true"
        self.TOKEN_RATE_LIMIT_PER_MIN = int(os.getenv("TOKEN_RATE_LIMIT_PER_MIN", "120"))
        self.TOKEN_RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("TOKEN_RATE_LIMIT_WINDOW_SECONDS", "60"))
        self._validate()

    def _validate(self):
        if self.ENV == "dev" or self.ALLOW_INSECURE_JWT:
            return
        if self.JWT_SECRET == DEV_SECRET:
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.TOKEN_SECRET == DEV_SECRET:
            raise RuntimeError("TOKEN_SECRET must be set to a non-default value in non-dev environments")


settings = Settings()
