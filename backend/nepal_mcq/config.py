"""Application settings and validation."""

import os
from pathlib import Path

_DEFAULT_DB = Path(__file__).resolve().parent.parent / "app.db"


class Settings:
    ENV: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_HOURS: int
    DATABASE_URL: str
    LOG_LEVEL: str
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    DAILY_ADVANCE_DELAY_SECONDS: float
    RUN_TTL_SECONDS: int
    LEADERBOARD_LIMIT: int
    QUIZ_TIMEZONE: str

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "24"))
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{_DEFAULT_DB}")
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        # pause between an answer and the next question, as the quiz screen shows feedback
        self.DAILY_ADVANCE_DELAY_SECONDS = float(os.getenv("DAILY_ADVANCE_DELAY_SECONDS", "3.0"))
        self.RUN_TTL_SECONDS = int(os.getenv("RUN_TTL_SECONDS", "3600"))
        self.LEADERBOARD_LIMIT = int(os.getenv("LEADERBOARD_LIMIT", "50"))
        # IANA zone for the daily key and countdown; empty means the server's local time
        self.QUIZ_TIMEZONE = os.getenv("QUIZ_TIMEZONE", "")
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.DAILY_ADVANCE_DELAY_SECONDS < 0:
            raise RuntimeError("DAILY_ADVANCE_DELAY_SECONDS must be >= 0")


settings = Settings()
