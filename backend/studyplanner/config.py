"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent


class Settings:
    ENV: str
    DATABASE_URL: str
    DOCUMENTS_DIR: Path
    MAX_UPLOAD_BYTES: int
    UPLOAD_RATE_LIMIT_PER_MIN: int
    ALLOW_DEV_CORS: bool
    ALLOW_DATA_RESET: bool

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
        self.DOCUMENTS_DIR = Path(os.getenv("DOCUMENTS_DIR", str(BASE / "data" / "documents"))).expanduser().resolve()
        self.MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(20 * 1024 * 1024)))  # 20 MB default
        self.UPLOAD_RATE_LIMIT_PER_MIN = int(os.getenv("UPLOAD_RATE_LIMIT_PER_MIN", "30"))
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        # seed/clear wipe every course, so they default to on only in dev
        self.ALLOW_DATA_RESET = os.getenv("ALLOW_DATA_RESET", "true" if self.ENV == "dev" else "false").lower() == "true"
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.DATABASE_URL:
            raise RuntimeError("DATABASE_URL must be set in non-dev environments")
        if self.MAX_UPLOAD_BYTES <= 0:
            raise RuntimeError("MAX_UPLOAD_BYTES must be positive")
        if not self.DATABASE_URL:
            self.DATABASE_URL = f"sqlite:///{BASE / 'studyplanner.db'}"

    @property
    def database_configured(self) -> bool:
        return bool(os.getenv("DATABASE_URL", "").strip())


settings = Settings()
