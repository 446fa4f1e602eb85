"""
Process-wide configuration, read from the environment once at startup.
"""
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List

from app.core.exceptions import ConfigurationError


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    database_url: str
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    jwt_expire_days: int = 30
    cors_origins: List[str] = field(default_factory=list)
    celery_broker_url: str = "redis://localhost:6379/0"
    sweep_interval_seconds: int = 300
    bcrypt_rounds: int = 12


def load_settings() -> Settings:
    """Build Settings from environment variables. JWT_SECRET is mandatory."""
    jwt_secret = os.getenv("JWT_SECRET")
    if not jwt_secret:
        raise ConfigurationError("JWT_SECRET is not set")

    db_url = os.getenv("DATABASE_URL", "sqlite:///./daftlink.db")
    # Normalize postgres:// -> postgresql:// for SQLAlchemy
    if db_url.startswith("postgres://"):
        db_url = "postgresql://" + db_url[10:]

    return Settings(
        database_url=db_url,
        jwt_secret=jwt_secret,
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        jwt_expire_days=int(os.getenv("JWT_EXPIRE_DAYS", "30")),
        cors_origins=_split_csv(os.getenv(
            "CORS_ORIGINS", "http://localhost:5173,http://localhost:3000"
        )),
        celery_broker_url=os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0"),
        sweep_interval_seconds=int(os.getenv("SWEEP_INTERVAL_SECONDS", "300")),
        bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", "12")),
    )


@lru_cache()
def get_settings() -> Settings:
    return load_settings()
