from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StoreBackend(str, Enum):
    memory = "memory"
    sqlite = "sqlite"


class StoreConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    schema_version: int = Field(default=1, ge=1, le=10)
    backend: StoreBackend = StoreBackend.memory
    sqlite_path: str = "data/dynorm.sqlite3"

    @field_validator("backend", mode="before")
    @classmethod
    def _norm_backend(cls, v):  # noqa: ANN001
        if v is None or v == "":
            return StoreBackend.memory
        return str(v).strip().lower() if not isinstance(v, StoreBackend) else v


class InstallerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    schema_version: int = Field(default=1, ge=1, le=10)
    # When true, a best-effort provider call that *fails* (not merely unsupported) aborts the module.
    strict_best_effort: bool = False
    log_schema_changes: bool = True
    event_log_path: str = "logs/install_events.jsonl"


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    log_dir: str = "logs"
    level: str = "INFO"
    max_bytes: int = Field(default=1_000_000, ge=1024)
    backup_count: int = Field(default=5, ge=0, le=50)

    @field_validator("level")
    @classmethod
    def _level_known(cls, v: str) -> str:
        vv = str(v or "").strip().upper()
        if vv not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return vv


class DynormConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    store: StoreConfig = Field(default_factory=StoreConfig)
    installer: InstallerConfig = Field(default_factory=InstallerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
