from __future__ import annotations

import os
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from dynorm.core.config.io import atomic_write_json, quarantine_corrupt, read_json_file
from dynorm.core.config.models import DynormConfig, InstallerConfig, LoggingConfig, StoreConfig
from dynorm.core.config.paths import ConfigFsPaths
from dynorm.core.errors import ConfigError


CONFIG_FILES: Dict[str, Type[BaseModel]] = {
    "store.json": StoreConfig,
    "installer.json": InstallerConfig,
    "logging.json": LoggingConfig,
}

_SECTION_FOR_FILE = {
    "store.json": "store",
    "installer.json": "installer",
    "logging.json": "logging",
}


class ConfigManager:
    def __init__(
        self,
        *,
        fs: Optional[ConfigFsPaths] = None,
        logger=None,
        read_only: bool = False,
        max_backups: int = 10,
    ):
        self.fs = fs or ConfigFsPaths(".")
        self.logger = logger
        self.read_only = read_only
        self.max_backups = int(max_backups)
        self._cfg: Optional[DynormConfig] = None

    # ---------- public API ----------
    def load_all(self) -> DynormConfig:
        if not self.read_only:
            os.makedirs(self.fs.config_dir, exist_ok=True)
            os.makedirs(self.fs.backups_dir, exist_ok=True)

        sections: Dict[str, Any] = {}
        for name, model in CONFIG_FILES.items():
            raw = self._load_raw(name, model)
            try:
                sections[_SECTION_FOR_FILE[name]] = model.model_validate(raw)
            except PydanticValidationError as e:
                raise ConfigError(f"Invalid {name}: {e.errors()[0].get('msg', 'invalid')}", file=name) from e

        self._cfg = DynormConfig(**sections)
        return self._cfg

    def get(self) -> DynormConfig:
        if self._cfg is None:
            return self.load_all()
        return self._cfg

    def read(self, name: str) -> Dict[str, Any]:
        if name not in CONFIG_FILES:
            raise ConfigError(f"Unknown config file: {name}", file=name)
        rr = read_json_file(os.path.join(self.fs.config_dir, name))
        return dict(rr.data) if rr.ok else {}

    def save(self, name: str, data: Dict[str, Any]) -> None:
        model = CONFIG_FILES.get(name)
        if model is None:
            raise ConfigError(f"Unknown config file: {name}", file=name)
        if self.read_only:
            raise ConfigError("Config is read-only.", file=name)
        try:
            validated = model.model_validate(data)
        except PydanticValidationError as e:
            raise ConfigError(f"Invalid {name}: {e.errors()[0].get('msg', 'invalid')}", file=name) from e
        atomic_write_json(
            os.path.join(self.fs.config_dir, name),
            validated.model_dump(mode="json"),
            self.fs.backups_dir,
            max_backups=self.max_backups,
        )
        self._cfg = None

    # ---------- internals ----------
    def _load_raw(self, name: str, model: Type[BaseModel]) -> Dict[str, Any]:
        path = os.path.join(self.fs.config_dir, name)
        rr = read_json_file(path)
        if rr.ok:
            return rr.data

        default = model().model_dump(mode="json")
        if not rr.missing:
            moved = quarantine_corrupt(path, self.fs.backups_dir) if not self.read_only else None
            if self.logger:
                self.logger.warning(f"Config {name} unreadable ({rr.error}); using defaults (moved to {moved}).")
        if not self.read_only:
            atomic_write_json(path, default, self.fs.backups_dir, max_backups=self.max_backups)
        return default
