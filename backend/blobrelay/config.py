"""blobrelay configuration — Pydantic BaseSettings loaded from .env."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

MIB = 1024 * 1024
GIB = 1024 * MIB


class Settings(BaseSettings):
    """Application settings."""

    app_name: str = "blobrelay"
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"

    # Network
    host: str = "127.0.0.1"
    port: int = 8000
    api_prefix: str = "/api"
    cors_origins: Annotated[list[str], NoDecode] = [
        "http://localhost:5173",
        "http://localhost:8000",
    ]

    # Storage paths (relative resolved from backend/ at runtime)
    data_dir: str = "./data"
    database_path: str = "./data/blobrelay.db"
    max_db_connections: int = 5

    # Blob sink: one Telegram bot token per backend node
    bot_tokens: Annotated[list[str], NoDecode] = []
    storage_chat_id: str = ""
    telegram_api_url: str = "https://api.telegram.org"
    backend_timeout_seconds: float = 600.0  # large documents are slow to ingest

    # Retry / backoff for a single blob transfer
    max_retries: int = 5  # additional attempts beyond the first
    retry_initial_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 10.0
    retry_backoff_multiplier: float = 2.0
    retry_jitter: float = 0.1

    # Node health
    node_recovery_seconds: float = 60.0  # per consecutive failure
    node_failure_limit: int = 5  # consecutive failures before retirement

    # Size-limit chunker (backend hard ceiling)
    max_single_blob_bytes: int = 48 * MIB
    blob_part_bytes: int = 19 * MIB

    # Resumable upload sessions (client-driven chunking)
    upload_chunk_bytes: int = 10 * MIB
    upload_session_ttl_hours: int = 24
    session_sweep_interval_minutes: int = 30  # 0 disables the sweeper

    # Direct (single request) uploads
    direct_upload_max_bytes: int = 100 * MIB

    # Quota defaults for owners without a quota row
    default_storage_limit_bytes: int = 20 * GIB
    default_upload_limit: int = -1  # -1 = unlimited

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        env_prefix="BLOBRELAY_",
        extra="ignore",
    )

    @field_validator("cors_origins", "bot_tokens", mode="before")
    @classmethod
    def split_comma_list(cls, value: list[str] | str | None) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            if value.startswith("["):
                return json.loads(value)
            return [v.strip() for v in value.split(",") if v.strip()]
        return value

    @model_validator(mode="after")
    def _check_chunk_sizes(self) -> "Settings":
        if self.blob_part_bytes > self.max_single_blob_bytes:
            raise ValueError("blob_part_bytes must not exceed max_single_blob_bytes")
        if self.upload_chunk_bytes > self.max_single_blob_bytes:
            raise ValueError("upload_chunk_bytes must not exceed max_single_blob_bytes")
        return self

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Ensure data paths are absolute."""
        base = Path(__file__).resolve().parent.parent  # backend/
        for field in ("data_dir", "database_path"):
            val = getattr(self, field)
            if not Path(val).is_absolute():
                setattr(self, field, str(base / val))
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
