"""
Configuration settings for the rental report.

Uses Pydantic Settings to load environment variables for database connections,
logging, the report store backend, and ingestion/refresh tuning.
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("dvdrental", alias="DB_NAME")
    db_statement_timeout_ms: int = Field(0, alias="DB_STATEMENT_TIMEOUT_MS")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Report stores
    report_backend: str = Field("postgres", alias="REPORT_BACKEND")
    ingest_batch_size: int = Field(1_000, alias="INGEST_BATCH_SIZE", gt=0)
    upsert_max_attempts: int = Field(3, alias="UPSERT_MAX_ATTEMPTS", ge=1)
    insert_wait_timeout_seconds: float = Field(30.0, alias="INSERT_WAIT_TIMEOUT_SECONDS", ge=0)

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


__all__ = ["Settings", "get_settings"]
