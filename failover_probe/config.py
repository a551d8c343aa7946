"""
Configuration for failover-probe.

`Settings` loads environment variables (and an optional `.env` file) with
Pydantic Settings. The CLI combines them with command-line flags into the
frozen `InitConfig`, `LoadConfig` and `CompareConfig` values that the
generator loop and the reconciler are constructed with; nothing downstream
reads process-wide option state.
"""
from __future__ import annotations

import re
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: Any) -> float:
    """
    Parse a duration into seconds.

    Accepts Go-style duration strings (``"500ms"``, ``"5s"``, ``"1m30s"``,
    ``"1.5h"``), bare numbers of seconds (``"2"``, ``0.25``) and
    ``timedelta`` objects. Negative durations are rejected.
    """
    if isinstance(value, timedelta):
        seconds = value.total_seconds()
    elif isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    elif isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("invalid duration: empty string")
        try:
            seconds = float(text)
        except ValueError:
            seconds = 0.0
            pos = 0
            for match in _DURATION_PART.finditer(text):
                if match.start() != pos:
                    raise ValueError(f"invalid duration: {value!r}") from None
                seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
                pos = match.end()
            if pos != len(text):
                raise ValueError(f"invalid duration: {value!r}") from None
    else:
        raise ValueError(f"invalid duration: {value!r}")

    if seconds < 0:
        raise ValueError(f"invalid duration: {value!r} is negative")
    return seconds


Duration = Annotated[float, BeforeValidator(parse_duration)]


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("postgres", alias="DB_NAME")
    database_url: Optional[str] = Field(None, alias="DATABASE_URL")

    # Application
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    store_path: Path = Field(Path("/tmp/failover_probe.data"), alias="PROBE_STORE")

    # Load defaults
    timeout: str = Field("5s", alias="PROBE_TIMEOUT")
    pause: str = Field("500ms", alias="PROBE_PAUSE")
    payload_size: int = Field(10, alias="PROBE_PAYLOAD_SIZE")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def dsn(self) -> str:
        """Connection string: `DATABASE_URL` when set, otherwise built from the parts."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


class InitConfig(BaseModel):
    """Options of the `init` command."""

    model_config = ConfigDict(frozen=True)

    dsn: str
    timeout: Annotated[Duration, Field(gt=0)] = 5.0

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "InitConfig":
        values: dict[str, Any] = {"dsn": settings.dsn}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


class LoadConfig(BaseModel):
    """
    Options of the generate loop.

    Attributes
    ----------
    timeout : float
        Seconds allowed for each remote operation (connect, next id, insert).
    pause : float
        Fixed pacing interval between cycles, also used as retry delay.
    truncate : bool
        Restart from id 1: truncate the local log and the remote tables.
    payload_size : int
        Length of the random printable payload sent with every record.
    """

    model_config = ConfigDict(frozen=True)

    dsn: str
    store_path: Path
    timeout: Annotated[Duration, Field(gt=0)] = 5.0
    pause: Annotated[Duration, Field(ge=0)] = 0.5
    truncate: bool = False
    payload_size: int = Field(10, gt=0)
    fsync: bool = True

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "LoadConfig":
        values: dict[str, Any] = {
            "dsn": settings.dsn,
            "store_path": settings.store_path,
            "timeout": settings.timeout,
            "pause": settings.pause,
            "payload_size": settings.payload_size,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


class CompareConfig(BaseModel):
    """Options of the reconciliation run."""

    model_config = ConfigDict(frozen=True)

    dsn: str
    store_path: Path
    no_load: bool = False
    timeout: Annotated[Duration, Field(gt=0)] = 30.0
    connect_attempts: int = Field(3, ge=1)

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "CompareConfig":
        values: dict[str, Any] = {"dsn": settings.dsn, "store_path": settings.store_path}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


__all__ = [
    "CompareConfig",
    "Duration",
    "InitConfig",
    "LoadConfig",
    "Settings",
    "get_settings",
    "parse_duration",
]
