"""Configuration management for the handoff queue."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class HandoffSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    db_path: Path = Field(default=Path("./storage/handoff.sqlite3"), validation_alias="HANDOFF_DB_PATH")
    chroma_persist_path: Path = Field(
        default=Path("./storage/chroma"), validation_alias="CHROMA_PERSIST_PATH"
    )
    batch_paths: Annotated[tuple[Path, ...], NoDecode] = Field(
        default=(Path("batches"),), validation_alias="HANDOFF_BATCH_PATHS"
    )
    journal_enabled: bool = Field(default=True, validation_alias="HANDOFF_JOURNAL_ENABLED")
    log_level: str = Field(default="INFO", validation_alias="HANDOFF_LOG_LEVEL")
    default_user: str = Field(default="anonymous", validation_alias="HANDOFF_DEFAULT_USER")
    teammates: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(), validation_alias="HANDOFF_TEAMMATES"
    )
    queue_limit: int = Field(default=20, validation_alias="HANDOFF_QUEUE_LIMIT")
    busy_timeout: float = Field(default=30.0, validation_alias="HANDOFF_BUSY_TIMEOUT")
    api_host: str = Field(default="127.0.0.1", validation_alias="HANDOFF_API_HOST")
    api_port: int = Field(default=8787, validation_alias="HANDOFF_API_PORT")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "HANDOFF_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("default_user")
    @classmethod
    def _normalize_default_user(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("HANDOFF_DEFAULT_USER must not be empty")
        return normalized

    @field_validator("teammates", mode="before")
    @classmethod
    def _parse_teammates(cls, value):
        if value is None or value == "":
            return ()
        if isinstance(value, (list, tuple)):
            return tuple(str(item).strip() for item in value if str(item).strip())
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        raise TypeError("HANDOFF_TEAMMATES must be a list of names or a comma-separated string")

    @field_validator("batch_paths", mode="before")
    @classmethod
    def _parse_batch_paths(cls, value):
        if value is None or value == "":
            return (Path("batches"),)
        if isinstance(value, (list, tuple)):
            return tuple(Path(str(item)) for item in value)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
            return tuple(Path(part) for part in parts) or (Path("batches"),)
        raise TypeError("HANDOFF_BATCH_PATHS must be a list of paths or a path-separated string")

    @field_validator("queue_limit")
    @classmethod
    def _validate_queue_limit(cls, value: int) -> int:
        if value < 1:
            raise ValueError("HANDOFF_QUEUE_LIMIT must be >= 1")
        return value

    @field_validator("busy_timeout")
    @classmethod
    def _validate_busy_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("HANDOFF_BUSY_TIMEOUT must be > 0")
        return value


@lru_cache(maxsize=1)
def get_settings() -> HandoffSettings:
    """Return cached settings instance."""

    settings = HandoffSettings()
    settings.db_path = settings.db_path.expanduser().resolve()
    settings.chroma_persist_path = settings.chroma_persist_path.expanduser().resolve()
    settings.batch_paths = tuple(path.expanduser().resolve() for path in settings.batch_paths)
    return settings


__all__ = ["HandoffSettings", "get_settings"]
