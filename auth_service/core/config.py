# auth_service/core/config.py
import os
from functools import lru_cache
from typing import ClassVar, List

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

DEFAULT_SECRET = "CHANGE_ME_SUPER_SECRET"


def _env_bool(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _normalize_db_url(url: str) -> str:
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def _default_database_url() -> str:
    raw = os.getenv("DATABASE_URL")
    if raw and raw.strip():
        return _normalize_db_url(raw.strip())
    data_dir = os.path.abspath(os.getenv("DATA_DIR", "./data"))
    os.makedirs(data_dir, exist_ok=True)
    return f"sqlite:///{os.path.join(data_dir, 'auth.db')}"


def _app_env() -> str:
    return os.getenv("APP_ENV", "development").strip().lower()


class Settings(BaseModel):
    PRODUCTION_ENVS: ClassVar[set] = {"prod", "production"}

    APP_ENV: str = Field(default_factory=_app_env)
    DATABASE_URL: str = Field(default_factory=_default_database_url)
    RUN_MIGRATIONS_ON_STARTUP: bool = Field(default_factory=lambda: _env_bool("RUN_MIGRATIONS_ON_STARTUP"))

    # JWT access tokens
    SECRET_KEY: str = Field(default_factory=lambda: os.getenv("SECRET_KEY", DEFAULT_SECRET))
    ALGORITHM: str = Field(default_factory=lambda: os.getenv("JWT_ALGORITHM", "HS256"))
    JWT_ISSUER: str = Field(default_factory=lambda: os.getenv("JWT_ISSUER", "auth-service"))
    JWT_AUDIENCE: str = Field(default_factory=lambda: os.getenv("JWT_AUDIENCE", "budget-tracker-client"))
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default_factory=lambda: int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "15")))

    # Refresh tokens
    REFRESH_TOKEN_EXPIRE_DAYS: int = Field(default_factory=lambda: int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "30")))
    REFRESH_REUSE_REVOKES_FAMILY: bool = Field(default_factory=lambda: _env_bool("REFRESH_REUSE_REVOKES_FAMILY"))
    REFRESH_COOKIE_NAME: str = Field(default_factory=lambda: os.getenv("REFRESH_COOKIE_NAME", "refreshToken"))
    REFRESH_COOKIE_PATH: str = Field(default_factory=lambda: os.getenv("REFRESH_COOKIE_PATH", "/auth"))
    REFRESH_COOKIE_SAMESITE: str = Field(default_factory=lambda: os.getenv("REFRESH_COOKIE_SAMESITE", "strict").lower())
    COOKIE_SECURE: bool = Field(
        default_factory=lambda: _env_bool("COOKIE_SECURE", "1" if _app_env() in ("prod", "production") else "0")
    )
    # "body" (native apps) or "cookie" (web); used when the client sends no X-Client-Type
    DEFAULT_CLIENT_TRANSPORT: str = Field(default_factory=lambda: os.getenv("DEFAULT_CLIENT_TRANSPORT", "body").lower())

    # Identity providers
    GOOGLE_WEB_CLIENT_ID: str = Field(default_factory=lambda: os.getenv("GOOGLE_WEB_CLIENT_ID", ""))
    GOOGLE_IOS_CLIENT_ID: str = Field(default_factory=lambda: os.getenv("GOOGLE_IOS_CLIENT_ID", ""))
    GOOGLE_ANDROID_CLIENT_ID: str = Field(default_factory=lambda: os.getenv("GOOGLE_ANDROID_CLIENT_ID", ""))
    APPLE_BUNDLE_ID: str = Field(default_factory=lambda: os.getenv("APPLE_BUNDLE_ID", ""))
    APPLE_SERVICE_ID: str = Field(default_factory=lambda: os.getenv("APPLE_SERVICE_ID", ""))
    APPLE_ISSUER: str = Field(default_factory=lambda: os.getenv("APPLE_ISSUER", "https://appleid.apple.com"))
    APPLE_KEYS_URL: str = Field(default_factory=lambda: os.getenv("APPLE_KEYS_URL", "https://appleid.apple.com/auth/keys"))
    FACEBOOK_APP_ID: str = Field(default_factory=lambda: os.getenv("FACEBOOK_APP_ID", ""))
    FACEBOOK_APP_SECRET: str = Field(default_factory=lambda: os.getenv("FACEBOOK_APP_SECRET", ""))
    FACEBOOK_GRAPH_URL: str = Field(default_factory=lambda: os.getenv("FACEBOOK_GRAPH_URL", "https://graph.facebook.com"))
    FACEBOOK_GRAPH_VERSION: str = Field(default_factory=lambda: os.getenv("FACEBOOK_GRAPH_VERSION", "v18.0"))
    PROVIDER_TIMEOUT_SECONDS: float = Field(default_factory=lambda: float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "8")))

    # Ops
    CRON_SECRET: str = Field(default_factory=lambda: os.getenv("CRON_SECRET", ""))
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
    )
    LOG_LEVEL: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
    LOG_JSON: bool = Field(default_factory=lambda: _env_bool("LOG_JSON", "1"))

    @property
    def is_production(self) -> bool:
        return self.APP_ENV in self.PRODUCTION_ENVS

    @property
    def google_client_ids(self) -> List[str]:
        ids = [self.GOOGLE_WEB_CLIENT_ID, self.GOOGLE_IOS_CLIENT_ID, self.GOOGLE_ANDROID_CLIENT_ID]
        return [i for i in ids if i]

    @property
    def apple_client_ids(self) -> List[str]:
        return [i for i in (self.APPLE_BUNDLE_ID, self.APPLE_SERVICE_ID) if i]

    @property
    def facebook_enabled(self) -> bool:
        return bool(self.FACEBOOK_APP_ID and self.FACEBOOK_APP_SECRET)

    def check_production(self) -> None:
        """Refuse to boot a production instance with a weak signing secret."""
        if not self.is_production:
            return
        if self.SECRET_KEY == DEFAULT_SECRET or len(self.SECRET_KEY) < 32:
            raise RuntimeError("SECRET_KEY must be set to at least 32 characters in production")


@lru_cache()
def get_settings() -> Settings:
    return Settings()
