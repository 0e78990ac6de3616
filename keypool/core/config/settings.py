from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[3]

DEFAULT_HOME_DIR = Path.home() / ".keypool-lb"
DEFAULT_DB_PATH = DEFAULT_HOME_DIR / "store.db"


class ModelPolicySettings(BaseModel):
    cooldown_seconds: int = Field(default=30, ge=0)
    # None = unbounded
    daily_quota: int | None = Field(default=None, ge=0)


def _default_model_policies() -> dict[str, ModelPolicySettings]:
    return {
        "gemini-2.5-pro": ModelPolicySettings(cooldown_seconds=60),
        "gemini-2.5-flash": ModelPolicySettings(cooldown_seconds=10),
    }


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="KEYPOOL_",
        env_file=(BASE_DIR / ".env", BASE_DIR / ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_keys: Annotated[list[str], NoDecode] = Field(default_factory=list)
    access_tokens: Annotated[list[str], NoDecode] = Field(default_factory=list)
    model_policies: dict[str, ModelPolicySettings] = Field(default_factory=_default_model_policies)
    default_cooldown_seconds: int = Field(default=30, ge=0)
    default_daily_quota: int | None = Field(default=None, ge=0)

    ordering: Literal["shuffle", "round_robin"] = "shuffle"
    advisory_lock_enabled: bool = True
    lock_ttl_seconds: int = Field(default=10, gt=0)
    usage_ttl_seconds: int = Field(default=3600, gt=0)
    counter_ttl_seconds: int = Field(default=2 * 24 * 60 * 60, gt=0)
    ban_ttl_seconds: int = Field(default=3600, gt=0)
    cursor_ttl_seconds: int = Field(default=24 * 60 * 60, gt=0)
    quota_timezone: str = "America/Los_Angeles"

    # Store backend:
    # - "memory": per-process only, lost on restart. Fine for a single worker and for tests.
    # - "db": shared across processes/instances through the configured database.
    store_backend: Literal["memory", "db"] = "db"
    database_url: str = f"sqlite+aiosqlite:///{DEFAULT_DB_PATH}"
    database_pool_size: int = Field(default=15, gt=0)
    database_max_overflow: int = Field(default=10, ge=0)
    database_pool_timeout_seconds: float = Field(default=30.0, gt=0)
    store_timeout_seconds: float = Field(default=2.0, gt=0)
    store_purge_interval_seconds: float = Field(default=300.0, ge=0)

    upstream_base_url: str = "https://generativelanguage.googleapis.com"
    upstream_connect_timeout_seconds: float = 30.0
    upstream_timeout_seconds: float = Field(default=300.0, gt=0)
    http_client_connector_limit: int = Field(default=100, gt=0)
    http_client_connector_limit_per_host: int = Field(default=50, gt=0)
    http_client_keepalive_timeout_seconds: float = Field(default=15.0, gt=0)
    http_client_dns_cache_ttl_seconds: int = Field(default=300, ge=0)

    verify_model: str = "gemini-2.0-flash-lite"
    verify_delay_seconds: float = Field(default=2.0, ge=0)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    access_log_enabled: bool = False
    startup_log_config: bool = False

    @field_validator("database_url")
    @classmethod
    def _expand_database_url(cls, value: str) -> str:
        for prefix in ("sqlite+aiosqlite:///", "sqlite:///"):
            if value.startswith(prefix):
                path = value[len(prefix) :]
                if path.startswith("~"):
                    return f"{prefix}{Path(path).expanduser()}"
        return value

    @field_validator("api_keys", "access_tokens", mode="before")
    @classmethod
    def _split_comma_separated(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            entries = [entry.strip() for entry in value.split(",")]
        elif isinstance(value, (list, tuple)):
            entries = [entry.strip() for entry in value if isinstance(entry, str)]
        else:
            raise TypeError("value must be a list or comma-separated string")
        normalized: list[str] = []
        for entry in entries:
            if entry and entry not in normalized:
                normalized.append(entry)
        return normalized

    @field_validator("quota_timezone")
    @classmethod
    def _validate_time_zone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown time zone: {value}") from exc
        return value

    @field_validator("upstream_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
