# drive/shared/config.py
from pathlib import Path
from pydantic import BaseModel
import os

ROOT = Path(__file__).resolve().parents[2]   # project root
STORAGE_DIR = ROOT / "storage"

_ENV = os.getenv("ENV", "dev")
_PROD = _ENV == "prod"

def _csv(raw: str) -> list[str]:
    return [s.strip() for s in raw.split(",") if s.strip()]

class Settings(BaseModel):
    ENV: str = _ENV
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    DATABASE_URL: str = os.getenv("DATABASE_URL", f"sqlite:///{(STORAGE_DIR / 'drive.db').as_posix()}")
    UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", str(STORAGE_DIR / "uploads"))
    MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", str(100 * 1024 * 1024)))

    # mount point of the /auth and /files routers ("/api" in the old deployment)
    API_PREFIX: str = os.getenv("API_PREFIX", "")
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:3000")
    CORS_ORIGINS: list[str] = _csv(os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:3001"))

    # session cookie
    SESSION_COOKIE_NAME: str = os.getenv("SESSION_COOKIE_NAME", "drive-session")
    SESSION_TTL_MIN: int = int(os.getenv("SESSION_TTL_MIN", "1440"))
    SESSION_STORE: str = os.getenv("SESSION_STORE", "database")  # database|memory
    COOKIE_SECURE: bool = os.getenv("COOKIE_SECURE", "true" if _PROD else "false").lower() == "true"
    COOKIE_SAMESITE: str = os.getenv("COOKIE_SAMESITE", "none" if _PROD else "lax")

    # Google OAuth
    SECRET_KEY: str = os.getenv("SECRET_KEY", "dev-secret")
    GOOGLE_CLIENT_ID: str | None = os.getenv("GOOGLE_CLIENT_ID")
    GOOGLE_CLIENT_SECRET: str | None = os.getenv("GOOGLE_CLIENT_SECRET")
    GOOGLE_CALLBACK_URL: str = os.getenv("GOOGLE_CALLBACK_URL", "http://localhost:8000/auth/google/callback")
    OAUTH_STATE_TTL_MIN: int = int(os.getenv("OAUTH_STATE_TTL_MIN", "10"))

    @property
    def google_configured(self) -> bool:
        return bool(self.GOOGLE_CLIENT_ID and self.GOOGLE_CLIENT_SECRET)

settings = Settings()
