from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ConfigFsPaths:
    root: str = "."

    @property
    def config_dir(self) -> str:
        return os.path.join(self.root, "config")

    @property
    def data_dir(self) -> str:
        return os.path.join(self.root, "data")

    @property
    def logs_dir(self) -> str:
        return os.path.join(self.root, "logs")

    @property
    def backups_dir(self) -> str:
        return os.path.join(self.config_dir, "backups")

    # Files
    @property
    def store(self) -> str:
        return os.path.join(self.config_dir, "store.json")

    @property
    def installer(self) -> str:
        return os.path.join(self.config_dir, "installer.json")

    @property
    def logging(self) -> str:
        return os.path.join(self.config_dir, "logging.json")
