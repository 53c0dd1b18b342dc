"""
Environment-aware configuration.
Values are read from the process environment (and .env) once, at import time.
Token secrets and TTLs are frozen into TokenSettings by create_app().
"""
import os
from dotenv import load_dotenv
from datetime import timedelta

load_dotenv()  # Read .env if present

DEV_ACCESS_SECRET = "dev-access-secret-change-me"
DEV_REFRESH_SECRET = "dev-refresh-secret-change-me"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def samesite_default(secure: bool) -> str:
    """COOKIE_SAMESITE from the environment, else None for secure cookies and Lax otherwise.

    Browsers drop SameSite=None cookies that are not Secure.
    """
    return os.getenv("COOKIE_SAMESITE") or ("None" if secure else "Lax")


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")  # Set a strong key in production
    DEBUG = False
    TESTING = False
    # CORS: comma-separated list of origins allowed to send credentials
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    APP_ENV = os.getenv("APP_ENV", "dev")
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///videotube.db")

    # Tokens: access and refresh tokens are signed with different secrets
    ACCESS_TOKEN_SECRET = os.getenv("ACCESS_TOKEN_SECRET", DEV_ACCESS_SECRET)
    REFRESH_TOKEN_SECRET = os.getenv("REFRESH_TOKEN_SECRET", DEV_REFRESH_SECRET)
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv("ACCESS_TOKEN_EXPIRES_SECONDS", "86400")))
    REFRESH_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv("REFRESH_TOKEN_EXPIRES_SECONDS", "864000")))

    # Session cookies (same attributes for login, register and refresh)
    COOKIE_SECURE = _env_bool("COOKIE_SECURE", "true")
    COOKIE_SAMESITE = samesite_default(COOKIE_SECURE)
    COOKIE_MAX_AGE = int(os.getenv("COOKIE_MAX_AGE_SECONDS", str(7 * 24 * 60 * 60)))

    # Uploads land here before being pushed to the CDN
    UPLOAD_FOLDER = os.getenv("UPLOAD_FOLDER", os.path.join(".", "public", "temp"))
    # Video uploads go through the same request body limit
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_CONTENT_LENGTH", str(200 * 1024 * 1024)))

    CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME")
    CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY")
    CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    # In dev, propagate exceptions so our error handler has full context
    PROPAGATE_EXCEPTIONS = True
    COOKIE_SECURE = _env_bool("COOKIE_SECURE", "false")
    COOKIE_SAMESITE = samesite_default(COOKIE_SECURE)


class TestingConfig(BaseConfig):
    TESTING = True
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite://")
    COOKIE_SECURE = False
    COOKIE_SAMESITE = "Lax"
    ACCESS_TOKEN_SECRET = "test-access-secret"
    REFRESH_TOKEN_SECRET = "test-refresh-secret"


class ProductionConfig(BaseConfig):
    DEBUG = False
    # No development fallbacks: an empty secret aborts startup in create_app()
    ACCESS_TOKEN_SECRET = os.getenv("ACCESS_TOKEN_SECRET", "")
    REFRESH_TOKEN_SECRET = os.getenv("REFRESH_TOKEN_SECRET", "")


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/test/prod).
    """
    if name:
        name = name.lower()
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig
