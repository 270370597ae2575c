"""
Environment-aware configuration.

The Flask config classes read the environment (and .env); create_app turns
the selected class into a frozen AppSettings once, and that object is what
the token issuer, the services and the HTTP layer receive.
"""
import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Tuple

from dotenv import load_dotenv

load_dotenv()  # Read .env if present


def _split(value: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


class BaseConfig:
    DEBUG = False
    TESTING = False
    APP_ENV = os.getenv("APP_ENV", "dev")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    # JSON log lines instead of console output
    LOG_JSON = os.getenv("LOG_JSON", "false").lower() in ("1", "true", "yes")
    # CORS: in dev we usually allow '*', in prod supply a comma-separated list in env
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///accounts.db")
    # JWT; the secret has no default on purpose, create_app refuses to start without it
    JWT_SECRET = os.getenv("JWT_SECRET")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_ISSUER = os.getenv("JWT_ISSUER", "account-api")
    JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "account-api-clients")
    ACCESS_TOKEN_TTL_MINUTES = int(os.getenv("ACCESS_TOKEN_TTL_MINUTES", "15"))
    REFRESH_TOKEN_TTL_DAYS = int(os.getenv("REFRESH_TOKEN_TTL_DAYS", "30"))
    ALLOWED_ROLES = os.getenv("ALLOWED_ROLES", "admin,user")
    # Cache-Control max-age (seconds) for tagged responses
    CACHE_MAX_AGE_RESOURCE = int(os.getenv("CACHE_MAX_AGE_RESOURCE", "300"))
    CACHE_MAX_AGE_COLLECTION = int(os.getenv("CACHE_MAX_AGE_COLLECTION", "120"))
    # Argon2 cost; unset means argon2-cffi defaults
    ARGON2_TIME_COST = int(os.getenv("ARGON2_TIME_COST", "0"))
    ARGON2_MEMORY_COST = int(os.getenv("ARGON2_MEMORY_COST", "0"))


class DevelopmentConfig(BaseConfig):
    DEBUG = True


class TestingConfig(BaseConfig):
    TESTING = True
    APP_ENV = "test"
    DATABASE_URL = "sqlite://"
    JWT_SECRET = "test-secret-key-for-testing-only-0123456789"
    LOG_LEVEL = "WARNING"
    ARGON2_TIME_COST = 1
    ARGON2_MEMORY_COST = 8


class ProductionConfig(BaseConfig):
    DEBUG = False
    LOG_JSON = os.getenv("LOG_JSON", "true").lower() in ("1", "true", "yes")


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/test/prod).
    """
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig


@dataclass(frozen=True)
class AppSettings:
    jwt_secret: str
    jwt_algorithm: str
    jwt_issuer: str
    jwt_audience: str
    access_token_ttl: timedelta
    refresh_token_ttl: timedelta
    database_url: str
    cors_origins: Tuple[str, ...]
    allowed_roles: Tuple[str, ...]
    cache_max_age_resource: int
    cache_max_age_collection: int
    argon2_time_cost: int
    argon2_memory_cost: int
    log_level: str
    log_json: bool = False

    @classmethod
    def from_mapping(cls, config) -> "AppSettings":
        """Build from a Flask config (or any mapping with the same keys)."""
        return cls(
            jwt_secret=config.get("JWT_SECRET") or "",
            jwt_algorithm=config["JWT_ALGORITHM"],
            jwt_issuer=config["JWT_ISSUER"],
            jwt_audience=config["JWT_AUDIENCE"],
            access_token_ttl=timedelta(minutes=int(config["ACCESS_TOKEN_TTL_MINUTES"])),
            refresh_token_ttl=timedelta(days=int(config["REFRESH_TOKEN_TTL_DAYS"])),
            database_url=config["DATABASE_URL"],
            cors_origins=_split(config.get("CORS_ORIGINS") or "*"),
            allowed_roles=_split(config["ALLOWED_ROLES"]),
            cache_max_age_resource=int(config["CACHE_MAX_AGE_RESOURCE"]),
            cache_max_age_collection=int(config["CACHE_MAX_AGE_COLLECTION"]),
            argon2_time_cost=int(config.get("ARGON2_TIME_COST") or 0),
            argon2_memory_cost=int(config.get("ARGON2_MEMORY_COST") or 0),
            log_level=str(config.get("LOG_LEVEL") or "INFO"),
            log_json=bool(config.get("LOG_JSON", False)),
        )
