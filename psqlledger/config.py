"""
Configuration settings for the ledger service.

Uses Pydantic Settings to load environment variables for the database
connection, the connection pool, migrations, HTTP and logging. Values may also
come from a local `.env` file.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_backend: Literal["postgres", "memory"] = Field("postgres", alias="DB_BACKEND")
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("root", alias="DB_USER")
    db_password: str = Field("secret", alias="DB_PASSWORD")
    db_name: str = Field("bank", alias="DB_NAME")
    db_connect_timeout: int = Field(10, alias="DB_CONNECT_TIMEOUT")
    migrations_path: str = Field("db/migrations", alias="MIGRATIONS_PATH")

    # Pool size; one live connection per slot.
    max_threads: int = Field(1, ge=1, alias="MAX_THREADS")

    # Application
    port: int = Field(8080, alias="PORT")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_format: Literal["plain", "json"] = Field("plain", alias="LOG_FORMAT")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


def build_dsn(settings: Settings | None = None) -> str:
    """Compose a PostgreSQL DSN from settings."""
    settings = settings or get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


__all__ = ["Settings", "get_settings", "build_dsn"]
