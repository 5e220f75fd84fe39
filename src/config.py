"""
Settings loaded from the environment (and a `.env` file, if present).

Environment Variables:
    DATABASE_URL  Required. SQLAlchemy async URL; `postgresql://` is upgraded to `postgresql+asyncpg://`.
                  `sqlite://` URLs become `sqlite+aiosqlite://` and need the `sqlite` extra
                  (pip install "bug-tracker[sqlite]")
    HOST          Bind address (default: 0.0.0.0)
    PORT          HTTP port (default: 5000)
    API_PREFIX    Prefix for every route (default: api)
    APP_ENV       development | test | production (default: development); passed to DatabaseGateway,
                  which refuses clean_database in production
    LOG_LEVEL     Root log level (default: INFO)
    DB_ECHO       Echo SQL statements (default: false)
    CORS_ORIGIN   Value for Access-Control-Allow-Origin (default: *)
"""
import os
from typing import Mapping, Optional
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.domain.exceptions import ConfigurationException

_ASYNC_DRIVERS = {
    "postgresql://": "postgresql+asyncpg://",
    "postgres://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    database_url: str = Field(..., min_length=1)
    host: str = "0.0.0.0"
    port: int = Field(5000, ge=1, le=65535)
    api_prefix: str = "api"
    app_env: str = "development"
    log_level: str = "INFO"
    db_echo: bool = False
    cors_origin: str = "*"

    @field_validator("database_url")
    @classmethod
    def _use_async_driver(cls, value: str) -> str:
        for prefix, replacement in _ASYNC_DRIVERS.items():
            if value.startswith(prefix):
                return replacement + value[len(prefix):]
        return value

    @field_validator("api_prefix")
    @classmethod
    def _strip_slashes(cls, value: str) -> str:
        return value.strip("/")

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {value!r}")
        return level


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Builds Settings from `environ` (defaults to os.environ after loading `.env`).

    Raises:
        ConfigurationException: If DATABASE_URL is missing or any value is malformed.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    if not environ.get("DATABASE_URL"):
        raise ConfigurationException("DATABASE_URL is not set in the environment.")

    raw = {
        "database_url": environ.get("DATABASE_URL"),
        "host": environ.get("HOST"),
        "port": environ.get("PORT"),
        "api_prefix": environ.get("API_PREFIX"),
        "app_env": environ.get("APP_ENV"),
        "log_level": environ.get("LOG_LEVEL"),
        "db_echo": environ.get("DB_ECHO"),
        "cors_origin": environ.get("CORS_ORIGIN"),
    }
    try:
        return Settings(**{key: value for key, value in raw.items() if value is not None})
    except ValidationError as e:
        raise ConfigurationException(f"Invalid configuration: {e}") from e
