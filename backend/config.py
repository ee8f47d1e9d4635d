"""Runtime configuration for the transport bookkeeping API.

Values are read from environment variables (or a local ``.env`` file) so the
same build can run against SQLite in development and a hosted database in
production. ``get_settings`` caches the validated settings per process.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TransportSettings(BaseSettings):
    """Runtime configuration for the API and its storage backends."""

    host: str = Field("0.0.0.0", description="Network interface the server binds to.")
    port: int = Field(5000, ge=1, le=65535, description="Port the HTTP API listens on.")
    frontend_url: str = Field(
        "*",
        description="Origin allowed by CORS. Use '*' to accept any origin.",
    )
    database_url: str = Field(
        "sqlite:///./transport.db",
        description="SQLAlchemy URL used by the relational store.",
    )
    store_backend: str = Field(
        "sql",
        pattern="^(sql|json)$",
        description="Which repository backend serves the API: 'sql' or 'json'.",
    )
    json_store_path: Path = Field(
        Path("transport_store.json"),
        description="Location of the key-value document used by the 'json' backend.",
    )
    driver_portion_rate: float = Field(
        0.30,
        ge=0.0,
        le=1.0,
        description="Share of trip revenue paid to the driver.",
    )
    log_level: str = Field("INFO", description="Root logging level.")

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @field_validator("store_backend", mode="before")
    @classmethod
    def _lower_backend(cls, value: str) -> str:
        return str(value).strip().lower()

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return str(value).strip().upper()

    @field_validator("json_store_path", mode="before")
    @classmethod
    def _expand_path(cls, value: str | Path) -> Path:
        return Path(value).expanduser()

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.frontend_url.split(",") if origin.strip()] or ["*"]


@lru_cache()
def get_settings() -> TransportSettings:
    """Return cached settings, ensuring consistent configuration across modules."""

    return TransportSettings()


__all__ = ["TransportSettings", "get_settings"]
