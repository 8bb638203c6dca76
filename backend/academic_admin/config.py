from pydantic import BaseModel, Field
import os
from pathlib import Path
from typing import Iterable, List, Optional

from dotenv import load_dotenv


_ROOT_DIR = Path(__file__).resolve().parents[2]
load_dotenv(_ROOT_DIR / ".env")
load_dotenv()  # fallback to current working directory

SUPPORTED_LOCALES = ("es", "en")
DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://127.0.0.1:3000"


def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def _env_choice(name: str, choices: Iterable[str], default: str) -> str:
    value = (_env_str(name) or default).lower()
    return value if value in choices else default


def _env_positive_int(name: str) -> Optional[int]:
    """``None`` when unset, invalid or not positive."""
    try:
        value = int(_env_str(name, ""))
    except ValueError:
        return None
    return value if value > 0 else None


def _env_bool(name: str, default: bool) -> bool:
    value = (_env_str(name) or "").lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return default


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in (_env_str(name) or default).split(",") if item.strip()]


class Settings(BaseModel):
    app_name: str = "Academic Admin"
    secret_key: str = Field(default_factory=lambda: _env_str("SECRET_KEY", "dev-secret-key-change"))
    # None: tokens sin expiración
    access_token_expire_minutes: Optional[int] = Field(default_factory=lambda: _env_positive_int("ACCESS_TOKEN_EXPIRE_MINUTES"))
    algorithm: str = Field(default_factory=lambda: _env_str("ALGORITHM", "HS256"))
    database_url: str = Field(default_factory=lambda: _env_str("DATABASE_URL", "sqlite:///./data.db"))
    debug: bool = Field(default_factory=lambda: _env_bool("DEBUG", False))
    environment: str = Field(default_factory=lambda: (_env_str("APP_ENV") or _env_str("ENVIRONMENT") or "dev").lower())
    log_level: str = Field(default_factory=lambda: (_env_str("LOG_LEVEL") or "INFO").upper())
    default_locale: str = Field(default_factory=lambda: _env_choice("DEFAULT_LOCALE", SUPPORTED_LOCALES, "es"))
    # JSON [[letter, min_percentage, grade_points], ...]; None uses the built-in scale
    grade_scale: Optional[str] = Field(default_factory=lambda: _env_str("GRADE_SCALE"))
    cors_origins: List[str] = Field(default_factory=lambda: _env_list("CORS_ORIGINS", DEFAULT_CORS_ORIGINS))

    @property
    def is_production(self) -> bool:
        return self.environment in {"prod", "production"}


settings = Settings()
