"""Runtime configuration for the packing tracker."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _resolved(value: Any) -> Path:
    path_value = value if isinstance(value, Path) else Path(str(value))
    return path_value.expanduser().resolve()


class Settings(BaseSettings):
    """Store locations and tuning values, loaded from the environment.

    Instances are passed explicitly to the components that need them; there
    is no process-wide settings object.
    """

    model_config = SettingsConfigDict(
        env_prefix="PACKTRACK_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Packing Tracker"
    data_root: Path = Field(
        default=Path("data"),
        validate_default=True,
        description="Root directory for tracker data.",
    )
    customers_dir: Optional[Path] = Field(
        default=None,
        description="Parent directory of customer working directories (default: <data_root>/customers).",
    )
    backup_dir: Optional[Path] = Field(
        default=None,
        description="Directory holding backup artifacts (default: <data_root>/backup).",
    )
    database_path: Optional[Path] = Field(
        default=None,
        description="SQLite database file (default: <data_root>/tracker.sqlite3).",
    )
    packages_file_name: str = Field(
        default="packages.json",
        description="Name of the scan record file inside a working directory.",
    )
    suffix_key_length: int = Field(
        default=5,
        ge=1,
        description="Number of trailing id characters the scan station reports.",
    )
    lock_timeout_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="How long a command waits for a busy customer before reporting a conflict.",
    )
    default_operator: str = "system"

    @field_validator("data_root", mode="before")
    @classmethod
    def _expand_data_root(cls, value: Any) -> Path:
        if value is None or value == "":
            value = "data"
        return _resolved(value)

    @field_validator("customers_dir", "backup_dir", "database_path", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Optional[Path]:
        if value is None or value == "":
            return None
        return _resolved(value)

    @model_validator(mode="after")
    def _derive_paths(self) -> "Settings":
        if self.customers_dir is None:
            self.customers_dir = self.data_root / "customers"
        if self.backup_dir is None:
            self.backup_dir = self.data_root / "backup"
        if self.database_path is None:
            self.database_path = self.data_root / "tracker.sqlite3"
        return self

    def ensure_directories(self) -> None:
        for directory in (self.data_root, self.customers_dir, self.backup_dir):
            directory.mkdir(parents=True, exist_ok=True)


def load_settings(**overrides: Any) -> Settings:
    """Build settings from the environment, with keyword overrides on top."""

    return Settings(**overrides)


__all__ = ["Settings", "load_settings"]
